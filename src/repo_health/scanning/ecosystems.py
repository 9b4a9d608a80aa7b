"""Ecosystem marker and extension tables.

One entry per supported ecosystem. Detection reads marker files first; shell
has no manifest so any shell script counts as its marker.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Optional, Tuple

from ..models import FileEntry, RepositorySnapshot


@dataclass(frozen=True)
class EcosystemConfig:
    name: str
    display_name: str
    extensions: Tuple[str, ...]
    marker_files: Tuple[str, ...] = ()
    lockfiles: Tuple[str, ...] = ()
    # Shell is detected through its source files alone.
    marker_extensions: Tuple[str, ...] = ()


ECOSYSTEMS: Dict[str, EcosystemConfig] = {
    "javascript": EcosystemConfig(
        name="javascript",
        display_name="JavaScript/TypeScript",
        extensions=(".js", ".jsx", ".ts", ".tsx", ".mjs", ".cjs"),
        marker_files=(
            "package.json",
            "package-lock.json",
            "yarn.lock",
            "pnpm-lock.yaml",
            "bun.lockb",
            "tsconfig.json",
        ),
        lockfiles=("package-lock.json", "yarn.lock", "pnpm-lock.yaml", "bun.lockb"),
    ),
    "python": EcosystemConfig(
        name="python",
        display_name="Python",
        extensions=(".py", ".pyi"),
        marker_files=(
            "pyproject.toml",
            "setup.py",
            "setup.cfg",
            "requirements.txt",
            "Pipfile",
            "poetry.lock",
        ),
        lockfiles=("poetry.lock", "Pipfile.lock", "uv.lock"),
    ),
    "go": EcosystemConfig(
        name="go",
        display_name="Go",
        extensions=(".go",),
        marker_files=("go.mod",),
        lockfiles=("go.sum",),
    ),
    "rust": EcosystemConfig(
        name="rust",
        display_name="Rust",
        extensions=(".rs",),
        marker_files=("Cargo.toml",),
        lockfiles=("Cargo.lock",),
    ),
    "shell": EcosystemConfig(
        name="shell",
        display_name="Shell",
        extensions=(".sh", ".bash"),
        marker_extensions=(".sh", ".bash"),
    ),
}

# Tie-break order for the primary ecosystem.
ECOSYSTEM_PRIORITY: Tuple[str, ...] = ("javascript", "python", "go", "rust", "shell")

MARKER_TABLE: Dict[str, str] = {
    marker: eco.name for eco in ECOSYSTEMS.values() for marker in eco.marker_files
}

ALL_LOCKFILES = frozenset(
    lock for eco in ECOSYSTEMS.values() for lock in eco.lockfiles
) | {"Gemfile.lock", "composer.lock"}

DEFAULT_EXCLUDED_DIRS: Tuple[str, ...] = (
    "node_modules",
    "vendor",
    "dist",
    "build",
    "target",
    ".venv",
    "venv",
    "env",
    "__pycache__",
    ".tox",
    ".nox",
    ".mypy_cache",
    ".pytest_cache",
    ".ruff_cache",
    ".next",
    ".nuxt",
    ".cache",
    "coverage",
    "htmlcov",
    ".eggs",
    "bower_components",
)


def ecosystem_for_marker(filename: str) -> Optional[str]:
    return MARKER_TABLE.get(filename)


def ecosystem_for_extension(suffix: str) -> Optional[str]:
    suffix = suffix.lower()
    for name in ECOSYSTEM_PRIORITY:
        if suffix in ECOSYSTEMS[name].extensions:
            return name
    return None


def find_markers(files: Iterable[FileEntry]) -> Dict[str, Tuple[str, ...]]:
    """Map ecosystem name to the marker paths found for it, sorted."""
    found: Dict[str, list] = {}
    for entry in files:
        eco = ecosystem_for_marker(entry.name)
        if eco is None:
            for candidate in ECOSYSTEMS.values():
                if entry.suffix and entry.suffix in candidate.marker_extensions:
                    eco = candidate.name
                    break
        if eco is not None:
            found.setdefault(eco, []).append(entry.path)
    return {eco: tuple(sorted(paths)) for eco, paths in found.items()}


def source_counts(histogram: Mapping[str, int]) -> Dict[str, int]:
    """Source-file count per ecosystem from an extension histogram."""
    counts = {name: 0 for name in ECOSYSTEM_PRIORITY}
    for suffix, count in histogram.items():
        eco = ecosystem_for_extension(suffix)
        if eco is not None:
            counts[eco] += count
    return counts


def select_primary(
    detected: Iterable[str], histogram: Mapping[str, int]
) -> Optional[str]:
    """Largest source-file share among detected ecosystems; ties by priority."""
    detected = [e for e in ECOSYSTEM_PRIORITY if e in set(detected)]
    if not detected:
        return None
    counts = source_counts(histogram)
    best = detected[0]
    for eco in detected[1:]:
        if counts[eco] > counts[best]:
            best = eco
    return best


def source_files(snapshot: RepositorySnapshot, ecosystem: str) -> Tuple[FileEntry, ...]:
    return snapshot.files_with_suffix(*ECOSYSTEMS[ecosystem].extensions)
