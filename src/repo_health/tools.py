"""External tool probing and execution.

Availability is probed once per run; analyzers only ever see the resulting
set of executable names. Each invocation is bounded by a subprocess timeout.
"""

from __future__ import annotations

import os
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import FrozenSet, Iterable, Optional, Sequence

from .exceptions import AnalyzerTimeoutError, ToolExecutionError
from .logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ToolRequirement:
    name: str  # capability label, e.g. "npm audit"
    executable: str
    purpose: str = ""


@dataclass(frozen=True)
class ToolResult:
    command: tuple
    returncode: int
    stdout: str
    stderr: str


class ToolRunner:
    """Thin wrapper over ``shutil.which`` and ``subprocess.run``."""

    def which(self, executable: str) -> Optional[str]:
        return shutil.which(executable)

    def run(self, command: Sequence[str], cwd: Path, timeout: float) -> ToolResult:
        """Run ``command`` in ``cwd``.

        Raises:
            AnalyzerTimeoutError: the process exceeded ``timeout``
            ToolExecutionError: the process could not be started
        """
        logger.debug(f"Running {' '.join(command)} in {cwd}")
        env = dict(os.environ)
        # Keep tool output parseable.
        env.setdefault("NO_COLOR", "1")
        env.setdefault("CI", "true")
        try:
            result = subprocess.run(
                list(command),
                cwd=str(cwd),
                capture_output=True,
                text=True,
                timeout=timeout,
                env=env,
            )
        except subprocess.TimeoutExpired:
            raise AnalyzerTimeoutError(" ".join(command), timeout)
        except OSError as e:
            raise ToolExecutionError(command[0], str(e), command)
        return ToolResult(
            command=tuple(command),
            returncode=result.returncode,
            stdout=result.stdout or "",
            stderr=result.stderr or "",
        )


def probe_tools(runner: ToolRunner, requirements: Iterable[ToolRequirement]) -> FrozenSet[str]:
    """Return the executables from ``requirements`` found on PATH."""
    available = set()
    for executable in sorted({r.executable for r in requirements}):
        if runner.which(executable):
            available.add(executable)
        else:
            logger.info(f"Tool not found: {executable}")
    logger.debug(f"Available tools: {', '.join(sorted(available)) or 'none'}")
    return frozenset(available)
