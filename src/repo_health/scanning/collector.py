"""Repository collector.

Walks the analysis root once and produces the immutable
``RepositorySnapshot`` every analyzer reads. The collector is the only stage
whose failure aborts a run.
"""

from __future__ import annotations

import os
import stat
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Optional

from ..exceptions import PathNotFoundError, PermissionDeniedError
from ..logging_config import get_logger
from ..models import FileEntry, RepositorySnapshot
from .ecosystems import (
    DEFAULT_EXCLUDED_DIRS,
    ECOSYSTEM_PRIORITY,
    find_markers,
    select_primary,
)

if TYPE_CHECKING:
    from ..config import HealthConfig

logger = get_logger(__name__)

ALWAYS_EXCLUDED = frozenset({".git", ".hg", ".svn"})


def collect(root: Path, config: Optional["HealthConfig"] = None) -> RepositorySnapshot:
    """Walk ``root`` and build a snapshot.

    Symlinked directories are never descended into. Symlinked files are kept
    only when their target resolves inside the root.

    Raises:
        PathNotFoundError: root is missing or not a directory
        PermissionDeniedError: root cannot be listed
    """
    root = Path(root)
    if not root.exists():
        raise PathNotFoundError(root, "Path does not exist")
    if not root.is_dir():
        raise PathNotFoundError(root, "Path is not a directory")
    try:
        with os.scandir(root):
            pass
    except PermissionError as e:
        raise PermissionDeniedError(root, f"Cannot list directory: {e.strerror or e}")

    root = root.resolve()
    excluded_names = frozenset(config.exclude_dirs if config else DEFAULT_EXCLUDED_DIRS)
    max_files = config.max_files if config else None

    files: List[FileEntry] = []
    excluded: List[str] = []
    skipped_symlinks: List[str] = []
    unreadable: List[str] = []
    truncated = False

    def on_error(err: OSError) -> None:
        path = Path(err.filename) if err.filename else root
        rel = _relative(path, root)
        logger.debug(f"Unreadable path {rel}: {err.strerror}")
        unreadable.append(rel)

    for dirpath, dirnames, filenames in os.walk(root, topdown=True, onerror=on_error):
        current = Path(dirpath)

        kept_dirs = []
        for name in sorted(dirnames):
            full = current / name
            rel = _relative(full, root)
            if name in ALWAYS_EXCLUDED:
                continue
            if full.is_symlink():
                skipped_symlinks.append(rel)
                continue
            if name in excluded_names:
                excluded.append(rel)
                continue
            kept_dirs.append(name)
        dirnames[:] = kept_dirs

        for name in sorted(filenames):
            if max_files is not None and len(files) >= max_files:
                truncated = True
                break
            full = current / name
            rel = _relative(full, root)
            entry = _file_entry(full, rel, root, skipped_symlinks, unreadable)
            if entry is not None:
                files.append(entry)
        if truncated:
            logger.warning(f"File limit {max_files} reached; remaining files not collected")
            break

    files.sort(key=lambda f: f.path)
    histogram: Dict[str, int] = {}
    for entry in files:
        if entry.suffix:
            histogram[entry.suffix] = histogram.get(entry.suffix, 0) + 1

    markers = find_markers(files)
    ecosystems = tuple(e for e in ECOSYSTEM_PRIORITY if e in markers)
    primary = select_primary(ecosystems, histogram)

    logger.info(
        f"Collected {len(files)} files from {root} "
        f"(ecosystems: {', '.join(ecosystems) or 'none'}, primary: {primary or 'none'})"
    )

    return RepositorySnapshot(
        root=root,
        files=tuple(files),
        markers=markers,
        ecosystems=ecosystems,
        primary_ecosystem=primary,
        extension_histogram=histogram,
        excluded_dirs=tuple(sorted(excluded)),
        skipped_symlinks=tuple(sorted(skipped_symlinks)),
        unreadable_paths=tuple(sorted(set(unreadable))),
        truncated=truncated,
    )


def _file_entry(
    full: Path,
    rel: str,
    root: Path,
    skipped_symlinks: List[str],
    unreadable: List[str],
) -> Optional[FileEntry]:
    try:
        if full.is_symlink():
            target = full.resolve()
            if not _is_within(target, root) or not target.is_file():
                skipped_symlinks.append(rel)
                return None
            st = target.stat()
        else:
            st = full.lstat()
            if not stat.S_ISREG(st.st_mode):
                return None
    except (OSError, RuntimeError) as e:
        logger.debug(f"Cannot stat {rel}: {e}")
        unreadable.append(rel)
        return None

    return FileEntry(
        path=rel,
        size=st.st_size,
        suffix=full.suffix.lower(),
        mode=stat.S_IMODE(st.st_mode),
    )


def _is_within(path: Path, root: Path) -> bool:
    try:
        path.relative_to(root)
    except ValueError:
        return False
    return True


def _relative(path: Path, root: Path) -> str:
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return path.as_posix()
