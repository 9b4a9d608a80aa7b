"""Collection errors: the only failures that abort a health run."""

from pathlib import Path

from .base import RepoHealthError


class CollectionError(RepoHealthError):
    """Base class for errors raised while collecting the repository snapshot."""

    def __init__(self, path: Path, reason: str):
        super().__init__(
            f"Cannot analyze repository: {path}",
            details={"path": str(path), "reason": reason},
        )
        self.path = path
        self.reason = reason


class PathNotFoundError(CollectionError):
    """Raised when the analysis root does not exist or is not a directory."""


class PermissionDeniedError(CollectionError):
    """Raised when the analysis root cannot be read or listed."""
