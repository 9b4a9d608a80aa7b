"""Base class for health analyzers.

An analyzer reads the snapshot (never writes), runs its offline checks, then
any external tools it declares. Tool problems become ``info`` findings; only
genuine defects propagate to the pipeline.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, FrozenSet, Iterable, List, Optional, Tuple

from ..exceptions import AnalyzerTimeoutError, ToolExecutionError
from ..logging_config import get_logger
from ..models import Finding, FindingKind, Location, RepositorySnapshot, Severity
from ..tools import ToolRequirement, ToolRunner

if TYPE_CHECKING:
    from ..config import HealthConfig
    from .performance import PriorReport

logger = get_logger(__name__)

_MIN_TOOL_TIMEOUT = 0.1


@dataclass(frozen=True)
class AnalyzerContext:
    """Shared, read-only run state handed to every analyzer."""

    config: "HealthConfig"
    runner: ToolRunner = field(default_factory=ToolRunner)
    available_tools: FrozenSet[str] = frozenset()
    prior: Optional["PriorReport"] = None
    # time.monotonic() at which the running analyzer is abandoned
    deadline: Optional[float] = None

    def tool_timeout(self) -> float:
        """Configured tool timeout, clamped to the time left before ``deadline``."""
        timeout = self.config.tool_timeout_seconds
        if self.deadline is not None:
            timeout = min(timeout, max(self.deadline - time.monotonic(), _MIN_TOOL_TIMEOUT))
        return timeout


class BaseAnalyzer(ABC):
    name: str = ""
    ecosystem: Optional[str] = None  # None = runs on every repository
    tools: Tuple[ToolRequirement, ...] = ()
    # Severity of the finding the pipeline emits if this analyzer crashes.
    failure_severity: Severity = Severity.LOW

    def applies_to(self, snapshot: RepositorySnapshot) -> bool:
        return self.ecosystem is None or self.ecosystem in snapshot.ecosystems

    def run(self, snapshot: RepositorySnapshot, context: AnalyzerContext) -> List[Finding]:
        context = replace(context, deadline=time.monotonic() + context.config.analyzer_timeout_seconds)
        findings = list(self.analyze(snapshot, context))
        for tool in self.tools:
            if not self.wants_tool(tool, snapshot):
                continue
            if tool.executable not in context.available_tools:
                findings.append(
                    self.finding(
                        FindingKind.CAPABILITY_SKIPPED,
                        Severity.INFO,
                        f"{tool.name} skipped: '{tool.executable}' is not installed"
                        + (f" ({tool.purpose})" if tool.purpose else ""),
                    )
                )
                continue
            try:
                findings.extend(self.run_tool(tool, snapshot, context))
            except AnalyzerTimeoutError as e:
                logger.warning(f"{self.name}: {e}")
                findings.append(
                    self.finding(
                        FindingKind.CAPABILITY_SKIPPED,
                        Severity.INFO,
                        f"{tool.name} timed out after {e.timeout:g}s",
                    )
                )
            except (ToolExecutionError, ValueError) as e:
                reason = e.reason if isinstance(e, ToolExecutionError) else str(e)
                logger.warning(f"{self.name}: {tool.name} failed: {reason}")
                findings.append(
                    self.finding(
                        FindingKind.CAPABILITY_SKIPPED,
                        Severity.INFO,
                        f"{tool.name} could not complete: {reason}",
                    )
                )
        return findings

    @abstractmethod
    def analyze(self, snapshot: RepositorySnapshot, context: AnalyzerContext) -> Iterable[Finding]:
        """Offline checks against the snapshot."""

    def wants_tool(self, tool: ToolRequirement, snapshot: RepositorySnapshot) -> bool:
        return True

    def run_tool(
        self, tool: ToolRequirement, snapshot: RepositorySnapshot, context: AnalyzerContext
    ) -> Iterable[Finding]:
        """Invoke ``tool`` and translate its output.

        Raise ``ToolExecutionError`` or ``ValueError`` for unusable output.
        """
        return []

    def finding(
        self,
        kind: FindingKind,
        severity: Severity,
        message: str,
        path: Optional[str] = None,
        line: Optional[int] = None,
    ) -> Finding:
        return Finding(
            kind=kind,
            severity=severity,
            source=self.name,
            message=message,
            location=Location(path, line) if path is not None else None,
        )
