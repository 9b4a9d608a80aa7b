"""Repository collection and ecosystem detection."""

from .collector import collect
from .ecosystems import (
    DEFAULT_EXCLUDED_DIRS,
    ECOSYSTEM_PRIORITY,
    ECOSYSTEMS,
    EcosystemConfig,
    select_primary,
    source_files,
)

__all__ = [
    "collect",
    "DEFAULT_EXCLUDED_DIRS",
    "ECOSYSTEM_PRIORITY",
    "ECOSYSTEMS",
    "EcosystemConfig",
    "select_primary",
    "source_files",
]
