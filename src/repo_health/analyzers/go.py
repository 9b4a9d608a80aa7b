"""Go module checks."""

from __future__ import annotations

import re
from typing import Iterable, List

from ..exceptions import ToolExecutionError
from ..models import Finding, FindingKind, RepositorySnapshot, Severity
from ..scanning.ecosystems import source_files
from ..tools import ToolRequirement
from .base import AnalyzerContext, BaseAnalyzer

GOFMT = ToolRequirement("gofmt", "gofmt", "formatting check")

MIN_TEST_RATIO = 0.3
MAX_ROOT_GO_FILES = 5
MIN_GODOC_RATIO = 0.5

_REPLACE = re.compile(r"^\s*replace\b", re.MULTILINE)
_EXPORTED_FUNC = re.compile(r"^func (?:\([^)]*\)\s*)?[A-Z]\w*", re.MULTILINE)


class GoAnalyzer(BaseAnalyzer):
    name = "go"
    ecosystem = "go"
    tools = (GOFMT,)

    def analyze(self, snapshot: RepositorySnapshot, context: AnalyzerContext) -> Iterable[Finding]:
        findings: List[Finding] = []

        if snapshot.has_file("go.mod"):
            if not snapshot.has_file("go.sum"):
                findings.append(
                    self.finding(FindingKind.MISSING_CONFIG, Severity.MEDIUM, "Missing go.sum", path="go.mod")
                )
            gomod = snapshot.read_text("go.mod") or ""
            replaces = len(_REPLACE.findall(gomod))
            if replaces:
                findings.append(
                    self.finding(
                        FindingKind.BUILD_CONFIG,
                        Severity.LOW,
                        f"{replaces} replace directive(s) in go.mod",
                        path="go.mod",
                    )
                )

        go_files = source_files(snapshot, "go")
        tests = [f for f in go_files if f.name.endswith("_test.go")]
        sources = [f for f in go_files if not f.name.endswith("_test.go")]
        if sources and not tests:
            findings.append(self.finding(FindingKind.TEST_GAP, Severity.MEDIUM, "No *_test.go files"))
        elif sources and len(tests) / len(sources) < MIN_TEST_RATIO:
            findings.append(
                self.finding(
                    FindingKind.TEST_GAP,
                    Severity.LOW,
                    f"Low test file ratio ({len(tests)} tests for {len(sources)} source files)",
                )
            )

        if not snapshot.has_any(".golangci.yml", ".golangci.yaml", ".golangci.toml", ".golangci.json"):
            findings.append(
                self.finding(FindingKind.MISSING_CONFIG, Severity.LOW, "No golangci-lint configuration")
            )

        root_files = [f for f in go_files if "/" not in f.path]
        if len(go_files) > 10 and len(root_files) > MAX_ROOT_GO_FILES:
            findings.append(
                self.finding(
                    FindingKind.BUILD_CONFIG,
                    Severity.LOW,
                    f"{len(root_files)} Go files in the repository root; consider cmd/ and internal/ packages",
                )
            )

        if not snapshot.has_any("Makefile", "Taskfile.yml", "magefile.go"):
            findings.append(
                self.finding(FindingKind.BUILD_CONFIG, Severity.INFO, "No Makefile for build automation")
            )

        exported = documented = 0
        limit = context.config.max_scan_file_size_bytes
        for entry in sources:
            text = snapshot.read_text(entry.path, max_bytes=limit)
            if not text:
                continue
            lines = text.splitlines()
            for match in _EXPORTED_FUNC.finditer(text):
                exported += 1
                lineno = text.count("\n", 0, match.start())
                if lineno > 0 and lines[lineno - 1].lstrip().startswith("//"):
                    documented += 1
        if exported and documented / exported < MIN_GODOC_RATIO:
            findings.append(
                self.finding(
                    FindingKind.MISSING_DOC,
                    Severity.LOW,
                    f"Low godoc coverage ({documented} of {exported} exported functions)",
                )
            )
        return findings

    def wants_tool(self, tool, snapshot: RepositorySnapshot) -> bool:
        return bool(source_files(snapshot, "go"))

    def run_tool(self, tool, snapshot: RepositorySnapshot, context: AnalyzerContext) -> Iterable[Finding]:
        result = context.runner.run(
            ["gofmt", "-l", "."], cwd=snapshot.root, timeout=context.tool_timeout()
        )
        if result.returncode != 0 and not result.stdout.strip():
            raise ToolExecutionError("gofmt", result.stderr.strip() or f"exit status {result.returncode}")
        findings = []
        for line in sorted(set(result.stdout.splitlines())):
            path = line.strip()
            if path.startswith("./"):
                path = path[2:]
            # gofmt walks vendor/ too; only report collected files.
            if path and snapshot.has_file(path):
                findings.append(
                    self.finding(
                        FindingKind.STYLE_VIOLATION, Severity.LOW, "File is not gofmt-formatted", path=path
                    )
                )
        return findings
