"""Health analyzers: per-ecosystem, security, performance and hygiene."""

from typing import List, Tuple

from ..tools import ToolRequirement
from .base import AnalyzerContext, BaseAnalyzer
from .go import GoAnalyzer
from .hygiene import HygieneAnalyzer
from .javascript import JavaScriptAnalyzer
from .performance import PerformanceAnalyzer, PriorReport, load_prior_report, timing_regressions
from .python import PythonAnalyzer
from .rust import RustAnalyzer
from .security import SecurityAnalyzer
from .shell import ShellAnalyzer


def get_default_analyzers() -> List[BaseAnalyzer]:
    """Every built-in analyzer, language analyzers first."""
    return [
        JavaScriptAnalyzer(),
        PythonAnalyzer(),
        GoAnalyzer(),
        RustAnalyzer(),
        ShellAnalyzer(),
        SecurityAnalyzer(),
        PerformanceAnalyzer(),
        HygieneAnalyzer(),
    ]


def analyzer_names() -> Tuple[str, ...]:
    return tuple(a.name for a in get_default_analyzers())


def required_tools(analyzers: List[BaseAnalyzer]) -> List[ToolRequirement]:
    return [tool for analyzer in analyzers for tool in analyzer.tools]


__all__ = [
    "AnalyzerContext",
    "BaseAnalyzer",
    "GoAnalyzer",
    "HygieneAnalyzer",
    "JavaScriptAnalyzer",
    "PerformanceAnalyzer",
    "PriorReport",
    "PythonAnalyzer",
    "RustAnalyzer",
    "SecurityAnalyzer",
    "ShellAnalyzer",
    "analyzer_names",
    "get_default_analyzers",
    "load_prior_report",
    "required_tools",
    "timing_regressions",
]
