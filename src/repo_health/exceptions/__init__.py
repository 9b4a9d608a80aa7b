"""Exception hierarchy for repo-health."""

from .analysis import AnalysisError, AnalyzerTimeoutError, ToolExecutionError
from .base import RepoHealthError
from .collection import CollectionError, PathNotFoundError, PermissionDeniedError
from .config import ConfigurationError, InvalidConfigError

__all__ = [
    "RepoHealthError",
    "CollectionError",
    "PathNotFoundError",
    "PermissionDeniedError",
    "ConfigurationError",
    "InvalidConfigError",
    "AnalysisError",
    "ToolExecutionError",
    "AnalyzerTimeoutError",
]
