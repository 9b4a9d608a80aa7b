"""Aggregate findings into a HealthReport.

Pure functions: no I/O, no clock unless ``generated_at`` is omitted. Input
order never matters; duplicates collapse to their most severe copy.
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence

from .models import (
    AnalyzerRun,
    Finding,
    HealthReport,
    HealthSummary,
    RepositorySnapshot,
    RunStatus,
    ScoreModel,
    Severity,
)
from .scanning.ecosystems import ECOSYSTEMS


def deduplicate(findings: Iterable[Finding]) -> List[Finding]:
    """Collapse findings sharing a ``dedup_key``, keeping the most severe.

    Among equally severe copies the one whose source sorts first wins, so
    the result does not depend on input order.
    """
    best: Dict[tuple, Finding] = {}
    for finding in findings:
        key = finding.dedup_key
        current = best.get(key)
        if current is None or finding.sort_key < current.sort_key:
            best[key] = finding
    return sorted(best.values(), key=lambda f: f.sort_key)


def summarize(findings: Sequence[Finding]) -> HealthSummary:
    counts = Counter(f.severity for f in findings)
    return HealthSummary(
        critical_issues=counts[Severity.CRITICAL],
        high_issues=counts[Severity.HIGH],
        medium_issues=counts[Severity.MEDIUM],
        low_issues=counts[Severity.LOW],
        info_items=counts[Severity.INFO],
    )


def category_scores(
    findings: Sequence[Finding],
    score_model: ScoreModel,
    sources: Iterable[str] = (),
) -> Dict[str, int]:
    """Score each finding source on its own, plus any ``sources`` with no findings."""
    by_source: Dict[str, List[Finding]] = {name: [] for name in sources}
    for finding in findings:
        by_source.setdefault(finding.source, []).append(finding)
    return {name: score_model.score(items) for name, items in sorted(by_source.items())}


def snapshot_metrics(snapshot: RepositorySnapshot) -> Dict[str, int]:
    source_exts = {ext for eco in ECOSYSTEMS.values() for ext in eco.extensions}
    return {
        "file_count": snapshot.file_count,
        "source_files": sum(1 for f in snapshot.files if f.suffix in source_exts),
        "total_bytes": snapshot.total_bytes,
    }


def aggregate(
    findings: Iterable[Finding],
    snapshot: RepositorySnapshot,
    score_model: Optional[ScoreModel] = None,
    analyzer_runs: Sequence[AnalyzerRun] = (),
    generated_at: Optional[datetime] = None,
) -> HealthReport:
    """Fold findings into the terminal report.

    ``overall_score`` is ``clamp(ceiling - sum(weight), floor, ceiling)`` over
    the deduplicated findings, and ``summary.critical_issues`` counts the
    deduplicated critical findings.
    """
    score_model = score_model or ScoreModel()
    unique = deduplicate(findings)
    completed = [r.name for r in analyzer_runs if r.status is RunStatus.OK]
    return HealthReport(
        overall_score=score_model.score(unique),
        summary=summarize(unique),
        findings=tuple(unique),
        generated_at=generated_at or datetime.now(timezone.utc),
        analyzed_path=str(snapshot.root),
        primary_ecosystem=snapshot.primary_ecosystem,
        ecosystems=tuple(snapshot.ecosystems),
        category_scores=category_scores(unique, score_model, completed),
        analyzers=tuple(analyzer_runs),
        metrics=snapshot_metrics(snapshot),
        score_model=score_model,
    )
