"""Performance analyzer.

File-size heuristics, front-end build configuration, CI dependency caching
and regressions against a prior JSON report. Everything here is best effort:
an unreadable file only means fewer findings.
"""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Pattern

import numpy as np

from ..exceptions import ConfigurationError
from ..logging_config import get_logger
from ..models import Finding, FindingKind, RepositorySnapshot, Severity
from ..scanning.ecosystems import ALL_LOCKFILES, ECOSYSTEMS
from .base import AnalyzerContext, BaseAnalyzer
from .javascript import package_json

logger = get_logger(__name__)

IMAGE_SUFFIXES = (".png", ".jpg", ".jpeg", ".gif", ".bmp", ".tiff")
LARGE_IMAGE_BYTES = 500 * 1024
MAX_LARGE_IMAGES = 5
OUTLIER_IQR_FACTOR = 3.0
MIN_OUTLIER_SAMPLE = 8
# Analyzers faster than this are too noisy to compare between runs.
MIN_TIMING_BASELINE_SECONDS = 1.0

OPTIMIZATION_HINTS = (
    "terser", "uglify", "minify", "esbuild", "vite", "webpack", "rollup", "parcel",
    "next", "nuxt", "react-scripts", "@angular/cli", "compression", "gzip", "brotli",
)
FRONTEND_FRAMEWORKS = ("react", "vue", "@angular/core", "svelte", "preact", "solid-js")
WEBPACK_CONFIGS = ("webpack.config.js", "webpack.config.ts", "webpack.config.mjs", "webpack.config.cjs")

_WEBPACK_PRODUCTION = re.compile(r"mode\s*:\s*[^,\n]*production|optimization\s*:")
_GENERIC_CACHE = re.compile(r"actions/cache@|cache-dependency-path")
CI_CACHE_HINTS: Dict[str, Pattern[str]] = {
    "javascript": re.compile(r"cache:\s*['\"]?(?:npm|yarn|pnpm)\b"),
    "python": re.compile(r"cache:\s*['\"]?(?:pip|pipenv|poetry)\b|enable-cache:\s*true"),
    "go": re.compile(r"actions/setup-go@v(?:[4-9]|\d{2,})"),
    "rust": re.compile(r"rust-cache@|sccache"),
}


@dataclass(frozen=True)
class PriorReport:
    """The parts of an earlier JSON report used for regression checks."""

    overall_score: Optional[int] = None
    metrics: Mapping[str, int] = field(default_factory=dict)
    analyzer_durations: Mapping[str, float] = field(default_factory=dict)
    generated_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping) -> "PriorReport":
        """Extract the comparable fields.

        Raises:
            ValueError: a field is present but has the wrong shape
        """
        runs = data.get("analyzers") or []
        if not isinstance(runs, list):
            raise ValueError("'analyzers' must be a list")
        durations = {}
        for run in runs:
            if not isinstance(run, dict):
                raise ValueError("'analyzers' entries must be objects")
            if "name" in run and "duration_seconds" in run:
                name = str(run["name"])
                durations[name] = _number(run["duration_seconds"], f"duration_seconds of '{name}'")

        raw_metrics = data.get("metrics") or {}
        if not isinstance(raw_metrics, dict):
            raise ValueError("'metrics' must be an object")
        metrics = {
            str(k): int(v)
            for k, v in raw_metrics.items()
            if isinstance(v, (int, float)) and not isinstance(v, bool)
        }

        score = data.get("overall_score")
        generated_at = data.get("generated_at")
        if generated_at is not None and not isinstance(generated_at, str):
            raise ValueError("'generated_at' must be a string")
        return cls(
            overall_score=None if score is None else int(_number(score, "overall_score")),
            metrics=metrics,
            analyzer_durations=durations,
            generated_at=generated_at,
        )


def _number(value, label: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise ValueError(f"{label} must be a number, got {value!r}")
    return float(value)


def load_prior_report(path: Path) -> PriorReport:
    """Read a JSON report produced by an earlier run.

    Raises:
        ConfigurationError: file missing or not a repo-health JSON report
    """
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise ConfigurationError(f"Cannot read prior report '{path}': {e}")
    except ValueError as e:
        raise ConfigurationError(f"Prior report '{path}' is not valid JSON: {e}")
    if not isinstance(data, dict) or "overall_score" not in data:
        raise ConfigurationError(f"Prior report '{path}' is not a repo-health JSON report")
    try:
        return PriorReport.from_dict(data)
    except ValueError as e:
        raise ConfigurationError(f"Prior report '{path}' is malformed: {e}")


def timing_regressions(
    prior: Optional[PriorReport], durations: Mapping[str, float], ratio: float
) -> List[Finding]:
    """Findings for analyzers that ran more than ``ratio`` times slower than before."""
    if prior is None:
        return []
    findings = []
    for name in sorted(durations):
        before = prior.analyzer_durations.get(name)
        now = durations[name]
        if before is None or before < MIN_TIMING_BASELINE_SECONDS:
            continue
        if now > before * ratio:
            findings.append(
                Finding(
                    kind=FindingKind.PERFORMANCE_REGRESSION,
                    severity=Severity.LOW,
                    source=PerformanceAnalyzer.name,
                    message=(
                        f"Analyzer '{name}' took {now:.1f}s versus {before:.1f}s "
                        f"in the prior report ({now / before:.1f}x)"
                    ),
                )
            )
    return findings


def size_outliers(sizes: Iterable[int], factor: float = OUTLIER_IQR_FACTOR) -> Optional[float]:
    """Upper outlier fence ``Q3 + factor * IQR``, or None for small samples."""
    arr = np.asarray(list(sizes), dtype=float)
    if arr.size < MIN_OUTLIER_SAMPLE:
        return None
    q1, q3 = np.percentile(arr, [25, 75])
    return float(q3 + factor * (q3 - q1))


class PerformanceAnalyzer(BaseAnalyzer):
    name = "performance"

    def analyze(self, snapshot: RepositorySnapshot, context: AnalyzerContext) -> Iterable[Finding]:
        findings: List[Finding] = []
        checks = (
            lambda: self._check_sizes(snapshot, context),
            lambda: self._check_images(snapshot),
            lambda: self._check_frontend(snapshot),
            lambda: self._check_ci_caching(snapshot),
            lambda: self._check_growth(snapshot, context),
        )
        for check in checks:
            try:
                findings.extend(check())
            except (OSError, ValueError, ZeroDivisionError) as e:
                logger.warning(f"Performance check skipped: {e}")
        return findings

    def _check_sizes(self, snapshot: RepositorySnapshot, context: AnalyzerContext) -> List[Finding]:
        config = context.config
        findings = []
        for entry in snapshot.files:
            if entry.size > config.large_file_threshold_bytes and entry.name not in ALL_LOCKFILES:
                findings.append(
                    self.finding(
                        FindingKind.LARGE_FILE,
                        Severity.MEDIUM,
                        f"File is {_human_size(entry.size)} "
                        f"(threshold {config.large_file_threshold_kb} KB)",
                        path=entry.path,
                    )
                )

        source_exts = {ext for eco in ECOSYSTEMS.values() for ext in eco.extensions}
        sources = [f for f in snapshot.files if f.suffix in source_exts]
        fence = size_outliers(f.size for f in sources)
        if fence is None:
            return findings
        for entry in sources:
            if (
                entry.size > fence
                and entry.size >= config.outlier_min_bytes
                and entry.size <= config.large_file_threshold_bytes
            ):
                findings.append(
                    self.finding(
                        FindingKind.LARGE_FILE,
                        Severity.LOW,
                        f"Source file is unusually large for this repository ({_human_size(entry.size)})",
                        path=entry.path,
                    )
                )
        return findings

    def _check_images(self, snapshot: RepositorySnapshot) -> List[Finding]:
        large = [f for f in snapshot.files_with_suffix(*IMAGE_SUFFIXES) if f.size > LARGE_IMAGE_BYTES]
        if len(large) > MAX_LARGE_IMAGES:
            return [
                self.finding(
                    FindingKind.LARGE_FILE,
                    Severity.LOW,
                    f"{len(large)} images larger than 500 KB; consider WebP/AVIF or compression",
                )
            ]
        return []

    def _check_frontend(self, snapshot: RepositorySnapshot) -> List[Finding]:
        pkg = package_json(snapshot)
        if pkg is None:
            return []
        findings = []
        deps = {}
        for section in ("dependencies", "devDependencies"):
            if isinstance(pkg.get(section), dict):
                deps.update(pkg[section])
        scripts = pkg.get("scripts") if isinstance(pkg.get("scripts"), dict) else {}

        is_frontend = any(fw in deps for fw in FRONTEND_FRAMEWORKS) or "build" in scripts
        haystack = " ".join(list(deps) + [str(v) for v in scripts.values()]).lower()
        if is_frontend and not any(hint in haystack for hint in OPTIMIZATION_HINTS):
            findings.append(
                self.finding(
                    FindingKind.BUILD_CONFIG,
                    Severity.LOW,
                    "No minification or compression tooling for the JavaScript build",
                    path="package.json",
                )
            )

        for name in WEBPACK_CONFIGS:
            if snapshot.has_file(name):
                text = snapshot.read_text(name) or ""
                if not _WEBPACK_PRODUCTION.search(text):
                    findings.append(
                        self.finding(
                            FindingKind.BUILD_CONFIG,
                            Severity.MEDIUM,
                            "Webpack is not configured for production mode",
                            path=name,
                        )
                    )
        return findings

    def _check_ci_caching(self, snapshot: RepositorySnapshot) -> List[Finding]:
        workflows = [
            f for f in snapshot.files_under(".github/workflows") if f.suffix in (".yml", ".yaml")
        ]
        relevant = [eco for eco in snapshot.ecosystems if eco in CI_CACHE_HINTS]
        if not workflows or not relevant:
            return []
        text = "\n".join(snapshot.read_text(f.path) or "" for f in workflows)
        if _GENERIC_CACHE.search(text):
            return []
        uncached = [eco for eco in relevant if not CI_CACHE_HINTS[eco].search(text)]
        if not uncached:
            return []
        return [
            self.finding(
                FindingKind.BUILD_CONFIG,
                Severity.LOW,
                "CI workflows do not cache dependencies for: " + ", ".join(uncached),
            )
        ]

    def _check_growth(self, snapshot: RepositorySnapshot, context: AnalyzerContext) -> List[Finding]:
        prior = context.prior
        if prior is None:
            return []
        before = prior.metrics.get("total_bytes")
        now = snapshot.total_bytes
        if not before or now <= before * context.config.regression_ratio:
            return []
        logger.debug(f"Repository grew from {before} to {now} bytes")
        return [
            self.finding(
                FindingKind.PERFORMANCE_REGRESSION,
                Severity.MEDIUM,
                f"Repository size grew from {_human_size(before)} to {_human_size(now)} "
                f"({now / before:.1f}x) since the prior report",
            )
        ]


def _human_size(size: float) -> str:
    for unit in ("B", "KB", "MB"):
        if size < 1024:
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GB"
