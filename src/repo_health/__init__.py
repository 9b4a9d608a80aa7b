"""
repo-health - Repository health assessment

Walks a repository, detects its ecosystems, runs per-ecosystem, security,
performance and hygiene checks in parallel, and folds the findings into a
0-100 health score with JSON, human and markdown reports for CI.
"""

__version__ = "0.1.0"

from .api import analyze, run_analysis
from .config import HealthConfig, load_config
from .models import Finding, FindingKind, HealthReport, Severity

__all__ = [
    "analyze",  # Rendered report
    "run_analysis",  # HealthReport object
    "HealthConfig",
    "load_config",
    "Finding",
    "FindingKind",
    "HealthReport",
    "Severity",
]
