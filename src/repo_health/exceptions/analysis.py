"""Analyzer-local errors.

These never escape the pipeline: the runner converts them into findings so a
misconfigured CI runner reports reduced confidence instead of crashing.
"""

from typing import Optional, Sequence

from .base import RepoHealthError


class AnalysisError(RepoHealthError):
    """Base class for analyzer-local errors."""

    pass


class ToolExecutionError(AnalysisError):
    """Raised when an external tool runs but cannot be used."""

    def __init__(self, tool: str, reason: str, command: Optional[Sequence[str]] = None):
        details = {"tool": tool, "reason": reason}
        if command:
            details["command"] = " ".join(command)
        super().__init__(f"External tool '{tool}' failed", details=details)
        self.tool = tool
        self.reason = reason
        self.command = list(command) if command else []


class AnalyzerTimeoutError(AnalysisError):
    """Raised when an analyzer or one of its tools exceeds its time limit."""

    def __init__(self, name: str, timeout: float):
        super().__init__(
            f"'{name}' exceeded {timeout:g}s timeout",
            details={"name": name, "timeout": f"{timeout:g}"},
        )
        self.name = name
        self.timeout = timeout
