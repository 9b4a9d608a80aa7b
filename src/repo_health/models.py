"""Data models for repo-health.

Every model here is a frozen value object. The collector builds one
``RepositorySnapshot`` per run, analyzers emit ``Finding`` objects, and the
scorer folds them into a ``HealthReport`` that the formatters render.
"""

from __future__ import annotations

import stat
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple


class Severity(str, Enum):
    """Five-level severity scale, most severe first."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"

    @property
    def rank(self) -> int:
        """Numeric rank: critical=4 down to info=0."""
        return _SEVERITY_RANK[self]

    @classmethod
    def parse(cls, value: Any) -> "Severity":
        if isinstance(value, Severity):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(
                f"Unknown severity {value!r}; expected one of "
                f"{', '.join(s.value for s in cls)}"
            ) from None


_SEVERITY_RANK = {
    Severity.CRITICAL: 4,
    Severity.HIGH: 3,
    Severity.MEDIUM: 2,
    Severity.LOW: 1,
    Severity.INFO: 0,
}

SEVERITY_ORDER: Tuple[Severity, ...] = tuple(sorted(Severity, key=lambda s: -s.rank))


class FindingKind(str, Enum):
    MISSING_DOC = "missing-doc"
    MISSING_CONFIG = "missing-config"
    VULNERABILITY = "vulnerability"
    STYLE_VIOLATION = "style-violation"
    LARGE_FILE = "large-file"
    SECRET_EXPOSURE = "secret-exposure"
    OUTDATED_DEPENDENCY = "outdated-dependency"
    INSECURE_PERMISSION = "insecure-permission"
    SENSITIVE_FILE = "sensitive-file"
    INSECURE_CONFIG = "insecure-config"
    TEST_GAP = "test-gap"
    BUILD_CONFIG = "build-config"
    PERFORMANCE_REGRESSION = "performance-regression"
    CAPABILITY_SKIPPED = "capability-skipped"
    ANALYZER_TIMEOUT = "analyzer-timeout"
    ANALYZER_ERROR = "analyzer-error"
    PARSE_ERROR = "parse-error"
    COLLECTION_WARNING = "collection-warning"


@dataclass(frozen=True)
class Location:
    path: str  # POSIX path relative to the analyzed root
    line: Optional[int] = None  # 1-based

    def __str__(self) -> str:
        return f"{self.path}:{self.line}" if self.line else self.path

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"path": self.path}
        if self.line is not None:
            data["line"] = self.line
        return data


@dataclass(frozen=True)
class Finding:
    """A single detected issue."""

    kind: FindingKind
    severity: Severity
    source: str  # analyzer that produced it
    message: str
    location: Optional[Location] = None

    @property
    def dedup_key(self) -> Tuple[str, str, int, str]:
        """Structural identity: same kind, location and message."""
        path = self.location.path if self.location else ""
        line = self.location.line or 0 if self.location else 0
        return (self.kind.value, path, line, self.message)

    @property
    def sort_key(self) -> Tuple[int, str, str, int, str, str]:
        kind, path, line, message = self.dedup_key
        return (-self.severity.rank, kind, path, line, message, self.source)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "kind": self.kind.value,
            "severity": self.severity.value,
            "source": self.source,
            "message": self.message,
        }
        if self.location is not None:
            data["location"] = self.location.to_dict()
        return data


@dataclass(frozen=True)
class FileEntry:
    path: str  # POSIX, relative to root
    size: int
    suffix: str  # lowercased, with leading dot ("" when none)
    mode: int = 0o644

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    @property
    def parent(self) -> str:
        return self.path.rsplit("/", 1)[0] if "/" in self.path else ""

    @property
    def is_world_writable(self) -> bool:
        return bool(self.mode & stat.S_IWOTH)


@dataclass(frozen=True)
class RepositorySnapshot:
    """Immutable inventory of the scanned tree.

    ``files`` excludes vendor and build directories; those are only listed in
    ``excluded_dirs`` for diagnostics.
    """

    root: Path
    files: Tuple[FileEntry, ...] = ()
    markers: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)
    ecosystems: Tuple[str, ...] = ()
    primary_ecosystem: Optional[str] = None
    extension_histogram: Mapping[str, int] = field(default_factory=dict)
    excluded_dirs: Tuple[str, ...] = ()
    skipped_symlinks: Tuple[str, ...] = ()
    unreadable_paths: Tuple[str, ...] = ()
    truncated: bool = False
    _index: Mapping[str, FileEntry] = field(
        default_factory=dict, init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "markers", MappingProxyType(dict(self.markers)))
        object.__setattr__(
            self, "extension_histogram", MappingProxyType(dict(self.extension_histogram))
        )
        object.__setattr__(self, "_index", MappingProxyType({f.path: f for f in self.files}))

    @property
    def file_count(self) -> int:
        return len(self.files)

    @property
    def total_bytes(self) -> int:
        return sum(f.size for f in self.files)

    def has_file(self, path: str) -> bool:
        return path in self._index

    def get(self, path: str) -> Optional[FileEntry]:
        return self._index.get(path)

    def has_any(self, *paths: str) -> bool:
        return any(p in self._index for p in paths)

    def has_dir(self, path: str) -> bool:
        """True when at least one collected file lives under ``path``."""
        prefix = path.rstrip("/") + "/"
        return any(f.path.startswith(prefix) for f in self.files)

    def files_named(self, *names: str) -> Tuple[FileEntry, ...]:
        wanted = set(names)
        return tuple(f for f in self.files if f.name in wanted)

    def files_with_suffix(self, *suffixes: str) -> Tuple[FileEntry, ...]:
        wanted = {s.lower() for s in suffixes}
        return tuple(f for f in self.files if f.suffix in wanted)

    def files_under(self, directory: str) -> Tuple[FileEntry, ...]:
        if not directory:
            return self.files
        prefix = directory.rstrip("/") + "/"
        return tuple(f for f in self.files if f.path.startswith(prefix))

    def abs_path(self, path: str) -> Path:
        return self.root / path

    def read_text(self, path: str, max_bytes: Optional[int] = None) -> Optional[str]:
        """Read a collected file as text; None when unreadable or too large."""
        entry = self._index.get(path)
        if entry is not None and max_bytes is not None and entry.size > max_bytes:
            return None
        try:
            with open(self.root / path, "r", encoding="utf-8", errors="replace") as f:
                return f.read()
        except OSError:
            return None


DEFAULT_WEIGHTS: Mapping[Severity, int] = MappingProxyType(
    {
        Severity.CRITICAL: 20,
        Severity.HIGH: 10,
        Severity.MEDIUM: 5,
        Severity.LOW: 2,
        Severity.INFO: 0,
    }
)


@dataclass(frozen=True)
class ScoreModel:
    """Severity -> point deduction, clamped to [floor, ceiling]."""

    weights: Mapping[Severity, int] = field(default_factory=lambda: DEFAULT_WEIGHTS)
    floor: int = 0
    ceiling: int = 100

    def __post_init__(self) -> None:
        merged = dict(DEFAULT_WEIGHTS)
        merged.update({Severity.parse(k): int(v) for k, v in self.weights.items()})
        for severity, weight in merged.items():
            if weight < 0:
                raise ValueError(f"weight for {severity.value} must be non-negative")
        if self.floor > self.ceiling:
            raise ValueError("score floor must not exceed ceiling")
        object.__setattr__(self, "weights", MappingProxyType(merged))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ScoreModel":
        """Build from a config table such as ``{"critical": 25, "floor": 0}``."""
        data = dict(data)
        floor = int(data.pop("floor", 0))
        ceiling = int(data.pop("ceiling", 100))
        return cls(weights=data, floor=floor, ceiling=ceiling)

    def weight(self, severity: Severity) -> int:
        return self.weights[severity]

    def deduction(self, findings: Iterable[Finding]) -> int:
        return sum(self.weight(f.severity) for f in findings)

    def score(self, findings: Iterable[Finding]) -> int:
        raw = self.ceiling - self.deduction(findings)
        return max(self.floor, min(self.ceiling, raw))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "weights": {s.value: self.weights[s] for s in SEVERITY_ORDER},
            "floor": self.floor,
            "ceiling": self.ceiling,
        }


class RunStatus(str, Enum):
    OK = "ok"
    SKIPPED = "skipped"  # not applicable to this repository
    TIMED_OUT = "timed_out"
    FAILED = "failed"
    ABANDONED = "abandoned"  # total budget expired before completion


@dataclass(frozen=True)
class AnalyzerRun:
    name: str
    status: RunStatus
    duration_seconds: float = 0.0
    findings: int = 0
    detail: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.name,
            "status": self.status.value,
            "duration_seconds": round(self.duration_seconds, 3),
            "findings": self.findings,
        }
        if self.detail:
            data["detail"] = self.detail
        return data


@dataclass(frozen=True)
class HealthSummary:
    critical_issues: int = 0
    high_issues: int = 0
    medium_issues: int = 0
    low_issues: int = 0
    info_items: int = 0

    @property
    def total_findings(self) -> int:
        return (
            self.critical_issues
            + self.high_issues
            + self.medium_issues
            + self.low_issues
            + self.info_items
        )

    def count(self, severity: Severity) -> int:
        return {
            Severity.CRITICAL: self.critical_issues,
            Severity.HIGH: self.high_issues,
            Severity.MEDIUM: self.medium_issues,
            Severity.LOW: self.low_issues,
            Severity.INFO: self.info_items,
        }[severity]

    def to_dict(self) -> Dict[str, int]:
        return {
            "critical_issues": self.critical_issues,
            "high_issues": self.high_issues,
            "medium_issues": self.medium_issues,
            "low_issues": self.low_issues,
            "info_items": self.info_items,
            "total_findings": self.total_findings,
        }


# Status bands used by the CI comment bot.
STATUS_BANDS: Tuple[Tuple[int, str], ...] = (
    (90, "Excellent"),
    (70, "Good"),
    (50, "Needs Attention"),
    (0, "Critical"),
)


@dataclass(frozen=True)
class HealthReport:
    """Terminal aggregate of one analysis run."""

    overall_score: int
    summary: HealthSummary
    findings: Tuple[Finding, ...]
    generated_at: datetime
    analyzed_path: str
    primary_ecosystem: Optional[str] = None
    ecosystems: Tuple[str, ...] = ()
    category_scores: Mapping[str, int] = field(default_factory=dict)
    analyzers: Tuple[AnalyzerRun, ...] = ()
    metrics: Mapping[str, int] = field(default_factory=dict)
    score_model: ScoreModel = field(default_factory=ScoreModel)

    def __post_init__(self) -> None:
        object.__setattr__(self, "category_scores", MappingProxyType(dict(self.category_scores)))
        object.__setattr__(self, "metrics", MappingProxyType(dict(self.metrics)))

    @property
    def status(self) -> str:
        for threshold, label in STATUS_BANDS:
            if self.overall_score >= threshold:
                return label
        return STATUS_BANDS[-1][1]

    def findings_by_severity(self, severity: Severity) -> Tuple[Finding, ...]:
        return tuple(f for f in self.findings if f.severity is severity)

    def to_dict(self, include_timestamp: bool = True) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "overall_score": self.overall_score,
            "status": self.status,
            "summary": self.summary.to_dict(),
            "analyzed_path": self.analyzed_path,
            "primary_ecosystem": self.primary_ecosystem,
            "ecosystems": list(self.ecosystems),
            "category_scores": dict(self.category_scores),
            "metrics": dict(self.metrics),
            "analyzers": [a.to_dict() for a in self.analyzers],
            "score_model": self.score_model.to_dict(),
            "findings": [f.to_dict() for f in self.findings],
        }
        if include_timestamp:
            data["generated_at"] = self.generated_at.isoformat(timespec="seconds")
        return data
