"""Shell script checks."""

from __future__ import annotations

import json
import re
from typing import Iterable, List

from ..exceptions import ToolExecutionError
from ..models import Finding, FindingKind, RepositorySnapshot, Severity
from ..scanning.ecosystems import source_files
from ..tools import ToolRequirement
from .base import AnalyzerContext, BaseAnalyzer

SHELLCHECK = ToolRequirement("shellcheck", "shellcheck", "shell script linting")

SHELLCHECK_LEVELS = {
    "error": Severity.MEDIUM,
    "warning": Severity.LOW,
    "info": Severity.INFO,
    "style": Severity.INFO,
}
# Keep the shellcheck invocation bounded on large script collections.
SHELLCHECK_BATCH = 50

_ERREXIT = re.compile(r"^\s*set\s+(-[a-zA-Z]*e[a-zA-Z]*|-o\s+errexit)", re.MULTILINE)


class ShellAnalyzer(BaseAnalyzer):
    name = "shell"
    ecosystem = "shell"
    tools = (SHELLCHECK,)

    def analyze(self, snapshot: RepositorySnapshot, context: AnalyzerContext) -> Iterable[Finding]:
        findings: List[Finding] = []
        limit = context.config.max_scan_file_size_bytes
        for entry in source_files(snapshot, "shell"):
            text = snapshot.read_text(entry.path, max_bytes=limit)
            if text is None:
                continue
            first = text.split("\n", 1)[0]
            if not first.startswith("#!"):
                findings.append(
                    self.finding(
                        FindingKind.STYLE_VIOLATION, Severity.LOW, "Script has no shebang line", path=entry.path, line=1
                    )
                )
            if not _ERREXIT.search(text):
                findings.append(
                    self.finding(
                        FindingKind.STYLE_VIOLATION,
                        Severity.LOW,
                        "Script does not use 'set -e' (consider 'set -euo pipefail')",
                        path=entry.path,
                    )
                )
        return findings

    def wants_tool(self, tool, snapshot: RepositorySnapshot) -> bool:
        return bool(source_files(snapshot, "shell"))

    def run_tool(self, tool, snapshot: RepositorySnapshot, context: AnalyzerContext) -> Iterable[Finding]:
        paths = [f.path for f in source_files(snapshot, "shell")]
        findings: List[Finding] = []
        for start in range(0, len(paths), SHELLCHECK_BATCH):
            batch = paths[start : start + SHELLCHECK_BATCH]
            result = context.runner.run(
                ["shellcheck", "-f", "json", *batch],
                cwd=snapshot.root,
                timeout=context.tool_timeout(),
            )
            # Exit 1 means issues were reported; anything above is a tool failure.
            if result.returncode > 1:
                raise ToolExecutionError(
                    "shellcheck", result.stderr.strip() or f"exit status {result.returncode}", result.command
                )
            findings.extend(self._parse(result.stdout))
        return findings

    def _parse(self, output: str) -> List[Finding]:
        if not output.strip():
            return []
        comments = json.loads(output)
        if not isinstance(comments, list):
            raise ValueError("shellcheck output is not a list")
        findings = []
        for comment in comments:
            if not isinstance(comment, dict):
                raise ValueError("shellcheck comment is not an object")
            line = comment.get("line")
            if line is not None and (isinstance(line, bool) or not isinstance(line, int)):
                raise ValueError(f"shellcheck line is not an integer: {line!r}")
            level = SHELLCHECK_LEVELS.get(str(comment.get("level")), Severity.INFO)
            findings.append(
                self.finding(
                    FindingKind.STYLE_VIOLATION,
                    level,
                    f"SC{comment.get('code')}: {comment.get('message', '').strip()}",
                    path=str(comment.get("file", "")),
                    line=line,
                )
            )
        return findings
