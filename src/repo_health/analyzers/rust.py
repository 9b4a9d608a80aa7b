"""Rust crate checks."""

from __future__ import annotations

import re
from typing import Iterable, List

from ..advisories import parse_cargo_audit
from ..exceptions import ToolExecutionError
from ..models import Finding, FindingKind, RepositorySnapshot, Severity
from ..scanning.ecosystems import source_files
from ..tools import ToolRequirement
from .base import AnalyzerContext, BaseAnalyzer

try:
    import tomllib
except ModuleNotFoundError:
    # Python 3.9-3.10
    import tomli as tomllib  # type: ignore

CARGO_AUDIT = ToolRequirement("cargo audit", "cargo-audit", "RustSec advisory audit")

CURRENT_EDITION = 2021
MAX_UNWRAPS = 10

_TEST_ATTR = re.compile(r"#\[(?:cfg\()?test\)?\]")


class RustAnalyzer(BaseAnalyzer):
    name = "rust"
    ecosystem = "rust"
    tools = (CARGO_AUDIT,)

    def analyze(self, snapshot: RepositorySnapshot, context: AnalyzerContext) -> Iterable[Finding]:
        findings: List[Finding] = []
        text = snapshot.read_text("Cargo.toml")
        manifest: dict = {}
        if text is not None:
            try:
                manifest = tomllib.loads(text)
            except tomllib.TOMLDecodeError as e:
                return [
                    self.finding(
                        FindingKind.PARSE_ERROR, Severity.HIGH, f"Invalid Cargo.toml: {e}", path="Cargo.toml"
                    )
                ]

        package = manifest.get("package")
        if text is not None and isinstance(package, dict):
            for key in ("name", "version"):
                if key not in package:
                    findings.append(
                        self.finding(
                            FindingKind.MISSING_CONFIG,
                            Severity.LOW,
                            f"Cargo.toml [package] has no '{key}'",
                            path="Cargo.toml",
                        )
                    )
            # A table here means edition.workspace = true.
            edition = package.get("edition")
            if edition is None:
                findings.append(
                    self.finding(
                        FindingKind.BUILD_CONFIG, Severity.LOW, "No Rust edition specified", path="Cargo.toml"
                    )
                )
            elif isinstance(edition, str) and edition.isdigit() and int(edition) < CURRENT_EDITION:
                findings.append(
                    self.finding(
                        FindingKind.OUTDATED_DEPENDENCY,
                        Severity.LOW,
                        f"Outdated Rust edition {edition}",
                        path="Cargo.toml",
                    )
                )

            is_binary = snapshot.has_file("src/main.rs") or bool(manifest.get("bin"))
            if is_binary and not snapshot.has_file("Cargo.lock"):
                findings.append(
                    self.finding(
                        FindingKind.MISSING_CONFIG,
                        Severity.MEDIUM,
                        "Binary crate without a committed Cargo.lock",
                        path="Cargo.toml",
                    )
                )

        rs_files = source_files(snapshot, "rust")
        limit = context.config.max_scan_file_size_bytes
        has_tests = snapshot.has_dir("tests") and any(f.path.startswith("tests/") for f in rs_files)
        unwraps = 0
        for entry in rs_files:
            content = snapshot.read_text(entry.path, max_bytes=limit)
            if not content:
                continue
            if not has_tests and _TEST_ATTR.search(content):
                has_tests = True
            if not entry.path.startswith(("tests/", "benches/", "examples/")):
                unwraps += content.count(".unwrap()")

        if rs_files and not has_tests:
            findings.append(self.finding(FindingKind.TEST_GAP, Severity.MEDIUM, "No Rust tests found"))

        if not snapshot.has_any("rustfmt.toml", ".rustfmt.toml"):
            findings.append(
                self.finding(FindingKind.MISSING_CONFIG, Severity.LOW, "No rustfmt configuration")
            )

        if unwraps > MAX_UNWRAPS:
            findings.append(
                self.finding(
                    FindingKind.STYLE_VIOLATION,
                    Severity.LOW,
                    f"Excessive use of .unwrap() ({unwraps} occurrences)",
                )
            )
        return findings

    def wants_tool(self, tool, snapshot: RepositorySnapshot) -> bool:
        return snapshot.has_file("Cargo.lock")

    def run_tool(self, tool, snapshot: RepositorySnapshot, context: AnalyzerContext) -> Iterable[Finding]:
        result = context.runner.run(
            ["cargo-audit", "audit", "--json"],
            cwd=snapshot.root,
            timeout=context.tool_timeout(),
        )
        if not result.stdout.strip():
            raise ToolExecutionError(
                "cargo-audit", result.stderr.strip() or f"exit status {result.returncode}", result.command
            )
        return [r.to_finding(self.name, "Cargo.lock") for r in parse_cargo_audit(result.stdout)]
