"""Public API for repo-health.

Example:
    >>> from repo_health import analyze, run_analysis
    >>>
    >>> # JSON string, the same document the CLI prints
    >>> text = analyze("/path/to/repo")
    >>>
    >>> # Report object
    >>> report = run_analysis("/path/to/repo")
    >>> report.overall_score, report.summary.critical_issues
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence, Union

from .analyzers import BaseAnalyzer, PriorReport
from .config import HealthConfig, load_config
from .formatters import get_formatter
from .logging_config import get_logger
from .models import HealthReport
from .pipeline import AnalysisPipeline
from .scanning import collect
from .scoring import aggregate
from .tools import ToolRunner

logger = get_logger(__name__)


def run_analysis(
    root_path: Union[str, Path] = ".",
    config: Optional[HealthConfig] = None,
    prior: Optional[PriorReport] = None,
    runner: Optional[ToolRunner] = None,
    analyzers: Optional[Sequence[BaseAnalyzer]] = None,
) -> HealthReport:
    """Collect, analyze and score one repository.

    Args:
        root_path: Repository root
        config: Configuration (default: ``load_config()``)
        prior: Earlier report used for regression checks
        runner: External tool runner (tests pass a fake)
        analyzers: Analyzer set (default: every built-in analyzer)

    Returns:
        The aggregated HealthReport

    Raises:
        CollectionError: If the root is missing or unreadable; nothing is scored
        ConfigurationError: If no config was passed and the loaded one is invalid
    """
    if config is None:
        config = load_config()

    snapshot = collect(Path(root_path), config)
    logger.info(
        f"Collected {snapshot.file_count} files; ecosystems: "
        f"{', '.join(snapshot.ecosystems) or 'none'}"
    )

    pipeline = AnalysisPipeline(config, analyzers=analyzers, runner=runner, prior=prior)
    result = pipeline.run(snapshot)
    report = aggregate(result.findings, snapshot, config.score_model, result.runs)
    logger.info(
        f"Score {report.overall_score} ({report.summary.total_findings} findings, "
        f"{report.summary.critical_issues} critical)"
    )
    return report


def analyze(
    root_path: Union[str, Path] = ".",
    output_format: str = "json",
    config: Optional[HealthConfig] = None,
    prior: Optional[PriorReport] = None,
) -> str:
    """Analyze a repository and return the rendered report.

    ``output_format`` is one of ``json``, ``human`` or ``markdown``.
    """
    # Unknown formats fail before the analysis runs.
    formatter = get_formatter(output_format)
    report = run_analysis(root_path, config=config, prior=prior)
    return formatter.format(report)


__all__ = ["analyze", "run_analysis"]
