"""Configuration loading and management for repo-health.

Configuration sources are merged in priority order:
    1. Defaults (defined in HealthConfig)
    2. Global config (~/.repo-health.toml)
    3. Project config (./repo-health.toml)
    4. Explicit config file (--config)
    5. Environment variables (REPO_HEALTH_* prefix, plus VERBOSE)
    6. CLI overrides (passed as kwargs)

Example:
    >>> config = load_config(analyzer_timeout_seconds=30)
    >>> config.analyzer_timeout_seconds
    30
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal, Optional, get_type_hints

from .exceptions import ConfigurationError, InvalidConfigError
from .logging_config import verbose_from_env
from .models import ScoreModel
from .scanning.ecosystems import DEFAULT_EXCLUDED_DIRS

Verbosity = Literal["quiet", "normal", "verbose"]

ENV_PREFIX = "REPO_HEALTH_"
GLOBAL_CONFIG_NAME = ".repo-health.toml"
PROJECT_CONFIG_NAME = "repo-health.toml"


@dataclass(frozen=True)
class HealthConfig:
    """Configuration for one health run.

    Attributes:
        Time limits:
            analyzer_timeout_seconds: Deadline per analyzer, from its start
            total_timeout_seconds: Budget for the whole parallel phase
            tool_timeout_seconds: Limit for each external tool invocation
            workers: Parallel analyzers (None = one per analyzer)

        Thresholds:
            large_file_threshold_kb: Files above this are flagged
            max_scan_file_size_kb: Secret scanning skips larger files
            outlier_min_kb: Size outliers below this are ignored
            regression_ratio: Growth versus a prior report that counts as a regression

        Scope:
            exclude_dirs: Directory names not traversed by the collector
            disabled_analyzers: Analyzers never run
            only_analyzers: When non-empty, run just these analyzers
            max_files: Collection stops after this many files

        Output:
            verbosity: Logging verbosity level
            score_model: Severity weights, floor and ceiling
    """

    analyzer_timeout_seconds: float = 120.0
    total_timeout_seconds: float = 600.0
    tool_timeout_seconds: float = 90.0
    workers: Optional[int] = None

    large_file_threshold_kb: int = 1024
    max_scan_file_size_kb: int = 1024
    outlier_min_kb: int = 256
    regression_ratio: float = 1.5

    exclude_dirs: list[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDED_DIRS))
    disabled_analyzers: list[str] = field(default_factory=list)
    only_analyzers: list[str] = field(default_factory=list)
    max_files: int = 100_000

    verbosity: Verbosity = "normal"
    score_model: ScoreModel = field(default_factory=ScoreModel)

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        for name in (
            "analyzer_timeout_seconds",
            "total_timeout_seconds",
            "tool_timeout_seconds",
        ):
            value = getattr(self, name)
            if value <= 0:
                raise InvalidConfigError(name, value, "must be positive")

        if self.workers is not None and self.workers < 1:
            raise InvalidConfigError("workers", self.workers, "must be at least 1")

        for name in ("large_file_threshold_kb", "max_scan_file_size_kb"):
            value = getattr(self, name)
            if value < 1:
                raise InvalidConfigError(name, value, "must be at least 1")
        if self.outlier_min_kb < 0:
            raise InvalidConfigError("outlier_min_kb", self.outlier_min_kb, "must be non-negative")

        if self.regression_ratio <= 1.0:
            raise InvalidConfigError(
                "regression_ratio", self.regression_ratio, "must be greater than 1.0"
            )
        if self.max_files < 1:
            raise InvalidConfigError("max_files", self.max_files, "must be at least 1")
        if self.verbosity not in ("quiet", "normal", "verbose"):
            raise InvalidConfigError(
                "verbosity", self.verbosity, "expected quiet, normal or verbose"
            )

    @property
    def large_file_threshold_bytes(self) -> int:
        return self.large_file_threshold_kb * 1024

    @property
    def max_scan_file_size_bytes(self) -> int:
        return self.max_scan_file_size_kb * 1024

    @property
    def outlier_min_bytes(self) -> int:
        return self.outlier_min_kb * 1024

    def analyzer_enabled(self, name: str) -> bool:
        if name in self.disabled_analyzers:
            return False
        return not self.only_analyzers or name in self.only_analyzers


def load_config(config_file: Optional[Path] = None, **overrides) -> HealthConfig:
    """Load configuration with auto-discovery and merging.

    Args:
        config_file: Optional explicit config file path
        **overrides: Direct overrides (typically from CLI flags). ``None``
            values are ignored so unset CLI options keep lower layers.

    Returns:
        Validated HealthConfig instance

    Raises:
        ConfigurationError: If a config file is unreadable or has unknown keys
        InvalidConfigError: If a value fails validation
    """
    merged: dict = {}

    global_config = Path.home() / GLOBAL_CONFIG_NAME
    if global_config.exists():
        merged.update(_load_layer(global_config, "global config"))

    project_config = Path.cwd() / PROJECT_CONFIG_NAME
    if project_config.exists():
        merged.update(_load_layer(project_config, "project config"))

    if config_file is not None:
        config_file = Path(config_file)
        if not config_file.exists():
            raise ConfigurationError(f"Config file not found: {config_file}")
        merged.update(_load_layer(config_file, "config file"))

    merged.update(_load_env_vars())
    if verbose_from_env():
        merged["verbosity"] = "verbose"

    overrides = {k: v for k, v in overrides.items() if v is not None}
    if overrides.pop("verbose", False):
        overrides["verbosity"] = "verbose"
    if overrides.pop("quiet", False):
        overrides["verbosity"] = "quiet"
    merged.update(overrides)

    weights = merged.pop("weights", None)
    if weights is not None:
        if isinstance(weights, ScoreModel):
            merged["score_model"] = weights
        elif isinstance(weights, dict):
            try:
                merged["score_model"] = ScoreModel.from_mapping(weights)
            except (TypeError, ValueError) as e:
                raise InvalidConfigError("weights", weights, str(e))
        else:
            raise InvalidConfigError("weights", weights, "expected a table")

    for list_field in ("exclude_dirs", "disabled_analyzers", "only_analyzers"):
        if list_field in merged:
            merged[list_field] = list(merged[list_field])

    try:
        return HealthConfig(**merged)
    except TypeError as e:
        raise ConfigurationError(f"Invalid configuration: {e}")


def _load_layer(path: Path, label: str) -> dict:
    try:
        return _load_toml_file(path)
    except (OSError, ValueError) as e:
        raise ConfigurationError(f"Invalid {label} '{path}': {e}")


def _load_env_vars() -> dict[str, Any]:
    """Load configuration from REPO_HEALTH_* environment variables.

    List fields accept comma-separated values, e.g.
    ``REPO_HEALTH_DISABLED_ANALYZERS=performance,shell``.
    """
    type_hints = get_type_hints(HealthConfig)

    result: dict[str, Any] = {}

    for field_name in HealthConfig.__dataclass_fields__:
        env_key = f"{ENV_PREFIX}{field_name.upper()}"
        env_value = os.environ.get(env_key)

        if env_value is None:
            continue

        type_hint = type_hints.get(field_name)
        if type_hint is None:
            continue

        try:
            parsed = _parse_env_value(env_value, type_hint)
        except ValueError as e:
            raise InvalidConfigError(env_key, env_value, str(e))
        if parsed is not None:
            result[field_name] = parsed

    return result


def _parse_env_value(value: str, type_hint: Any) -> Any:
    """Parse an environment variable string to the field's type.

    Returns None for types that cannot come from the environment.
    """
    origin = getattr(type_hint, "__origin__", None)

    args = getattr(type_hint, "__args__", ())
    if type(None) in args:
        non_none_types = [t for t in args if t is not type(None)]
        if non_none_types:
            type_hint = non_none_types[0]
            origin = getattr(type_hint, "__origin__", None)

    if origin is list or type_hint is list:
        return [item.strip() for item in value.split(",") if item.strip()]

    if type_hint is bool:
        lower = value.lower()
        if lower in ("true", "1", "yes", "on"):
            return True
        elif lower in ("false", "0", "no", "off"):
            return False
        else:
            raise ValueError(f"expected true/false, got '{value}'")

    if type_hint is int:
        return int(value)

    if type_hint is float:
        return float(value)

    if type_hint is str or origin is Literal:
        return value

    return None


def _load_toml_file(path: Path) -> dict:
    """Load TOML file and return parsed dict."""
    try:
        import tomllib
    except ModuleNotFoundError:
        # Python 3.9-3.10
        import tomli as tomllib  # type: ignore

    with open(path, "rb") as f:
        return tomllib.load(f)
