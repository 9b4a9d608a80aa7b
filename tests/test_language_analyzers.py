"""Tests for the per-ecosystem analyzers and their external tools."""

import json
import time

import pytest
from conftest import FakeToolRunner, npm_audit_clean

from repo_health.analyzers import (
    GoAnalyzer,
    JavaScriptAnalyzer,
    PythonAnalyzer,
    RustAnalyzer,
    ShellAnalyzer,
)
from repo_health.analyzers.base import AnalyzerContext
from repo_health.analyzers.javascript import strip_json_comments
from repo_health.config import HealthConfig
from repo_health.analyzers.python import _has_docstring
from repo_health.exceptions import AnalyzerTimeoutError
from repo_health.models import FindingKind, Severity
from repo_health.scanning import collect
from repo_health.tools import ToolResult


def _messages(findings, kind=None):
    return sorted(f.message for f in findings if kind is None or f.kind is kind)


def _skipped(findings):
    return [f for f in findings if f.kind is FindingKind.CAPABILITY_SKIPPED]


COMPLETE_PACKAGE = json.dumps(
    {
        "name": "app",
        "version": "1.0.0",
        "description": "Example app",
        "scripts": {"test": "jest", "lint": "eslint ."},
        "dependencies": {"express": "^4.18.2"},
    }
)

COMPLETE_JS = {
    "package.json": COMPLETE_PACKAGE,
    "package-lock.json": json.dumps({"lockfileVersion": 3, "packages": {}}),
    ".eslintrc.json": "{}",
    ".prettierrc": "{}",
    "src/index.js": "module.exports = {};\n",
}


class TestApplicability:
    def test_only_detected_ecosystems(self, make_repo):
        snapshot = collect(make_repo({"go.mod": "module x\n"}))
        assert GoAnalyzer().applies_to(snapshot)
        assert not JavaScriptAnalyzer().applies_to(snapshot)
        assert not ShellAnalyzer().applies_to(snapshot)


class TestJavaScript:
    def test_complete_project_is_clean(self, run_analyzer):
        runner = FakeToolRunner({"npm": npm_audit_clean})
        assert run_analyzer(JavaScriptAnalyzer(), COMPLETE_JS, runner=runner) == []
        assert runner.calls == [["npm", "audit", "--json"]]

    def test_empty_manifest(self, run_analyzer):
        findings = run_analyzer(JavaScriptAnalyzer(), {"package.json": "{}"})
        assert _messages(findings) == [
            "No ESLint configuration",
            "No Prettier or Biome configuration",
            "No lint script defined",
            "No lockfile; installs are not reproducible",
            "No test script defined",
            "package.json has no 'name' field",
            "package.json has no 'version' field",
            "package.json has no description",
        ]
        test_gap = [f for f in findings if f.kind is FindingKind.TEST_GAP]
        assert test_gap[0].severity is Severity.MEDIUM

    def test_npm_default_test_script(self, run_analyzer):
        pkg = json.dumps({"scripts": {"test": 'echo "Error: no test specified" && exit 1'}})
        findings = run_analyzer(JavaScriptAnalyzer(), {"package.json": pkg})
        assert "No test script defined" in _messages(findings)

    def test_invalid_manifest(self, run_analyzer):
        findings = run_analyzer(JavaScriptAnalyzer(), {"package.json": "{ not json"})
        assert len(findings) == 1
        assert findings[0].kind is FindingKind.PARSE_ERROR
        assert findings[0].severity is Severity.HIGH

    def test_duplicate_dependencies(self, run_analyzer):
        files = dict(COMPLETE_JS)
        files["package.json"] = json.dumps(
            dict(json.loads(COMPLETE_PACKAGE), devDependencies={"express": "^4.18.2"})
        )
        findings = run_analyzer(JavaScriptAnalyzer(), files, runner=FakeToolRunner({"npm": npm_audit_clean}))
        assert _messages(findings) == ["Listed in both dependencies and devDependencies: express"]

    def test_typescript_without_tsconfig(self, run_analyzer):
        files = dict(COMPLETE_JS)
        files["package.json"] = json.dumps(
            dict(json.loads(COMPLETE_PACKAGE), devDependencies={"typescript": "^5.0.0"})
        )
        findings = run_analyzer(JavaScriptAnalyzer(), files, runner=FakeToolRunner({"npm": npm_audit_clean}))
        assert _messages(findings) == ["TypeScript is a dependency but there is no tsconfig.json"]

    def test_tsconfig_not_strict(self, run_analyzer):
        files = dict(COMPLETE_JS, **{"tsconfig.json": '{"compilerOptions": {"target": "es2020"}}'})
        findings = run_analyzer(JavaScriptAnalyzer(), files, runner=FakeToolRunner({"npm": npm_audit_clean}))
        assert _messages(findings) == [
            "No build script for a compiled project",
            "TypeScript strict mode is not enabled",
        ]

    def test_tsconfig_with_comments(self, run_analyzer):
        tsconfig = '{\n  // compiler\n  "compilerOptions": {"strict": true, /* x */},\n}\n'
        files = dict(COMPLETE_JS, **{"tsconfig.json": tsconfig})
        findings = run_analyzer(JavaScriptAnalyzer(), files, runner=FakeToolRunner({"npm": npm_audit_clean}))
        assert "TypeScript strict mode is not enabled" not in _messages(findings)

    def test_tsconfig_extends(self, run_analyzer):
        files = dict(COMPLETE_JS, **{"tsconfig.json": '{"extends": "@tsconfig/node20/tsconfig.json"}'})
        findings = run_analyzer(JavaScriptAnalyzer(), files, runner=FakeToolRunner({"npm": npm_audit_clean}))
        assert "TypeScript strict mode is not enabled" not in _messages(findings)

    def test_root_configs_apply_to_nested_packages(self, run_analyzer):
        files = {
            "package.json": COMPLETE_PACKAGE,
            "package-lock.json": "{}",
            ".eslintrc.json": "{}",
            ".prettierrc": "{}",
            "web/package.json": COMPLETE_PACKAGE,
        }
        findings = run_analyzer(JavaScriptAnalyzer(), files, runner=FakeToolRunner({"npm": npm_audit_clean}))
        assert findings == []


class TestStripJsonComments:
    def test_comments_and_trailing_commas(self):
        text = '{"a": "http://x", // c\n "b": [1, 2,], /* block */}'
        assert json.loads(strip_json_comments(text)) == {"a": "http://x", "b": [1, 2]}

    def test_escaped_quotes(self):
        text = '{"a": "say \\"hi\\" // not a comment"}'
        assert json.loads(strip_json_comments(text)) == {"a": 'say "hi" // not a comment'}


class TestNpmAudit:
    def test_missing_npm(self, run_analyzer, no_tools):
        findings = run_analyzer(JavaScriptAnalyzer(), COMPLETE_JS, runner=no_tools)
        assert len(findings) == 1
        assert findings[0].kind is FindingKind.CAPABILITY_SKIPPED
        assert findings[0].severity is Severity.INFO
        assert findings[0].message == "npm audit skipped: 'npm' is not installed (dependency vulnerability audit)"

    def test_not_wanted_without_lockfile(self, run_analyzer, no_tools):
        files = {k: v for k, v in COMPLETE_JS.items() if k != "package-lock.json"}
        findings = run_analyzer(JavaScriptAnalyzer(), files, runner=no_tools)
        assert not _skipped(findings)

    def test_vulnerabilities(self, run_analyzer):
        audit = json.dumps(
            {"vulnerabilities": {"minimist": {"severity": "critical", "via": [{"title": "Prototype Pollution"}]}}}
        )
        runner = FakeToolRunner({"npm": lambda cmd, cwd: ToolResult(tuple(cmd), 1, audit, "")})
        findings = run_analyzer(JavaScriptAnalyzer(), COMPLETE_JS, runner=runner)
        assert len(findings) == 1
        assert findings[0].kind is FindingKind.VULNERABILITY
        assert findings[0].severity is Severity.CRITICAL
        assert findings[0].location.path == "package-lock.json"

    def test_unparseable_output(self, run_analyzer):
        runner = FakeToolRunner({"npm": "npm ERR! cb() never called"})
        findings = run_analyzer(JavaScriptAnalyzer(), COMPLETE_JS, runner=runner)
        assert len(findings) == 1
        assert findings[0].severity is Severity.INFO
        assert findings[0].message.startswith("npm audit could not complete")

    def test_empty_output(self, run_analyzer):
        runner = FakeToolRunner({"npm": lambda cmd, cwd: ToolResult(tuple(cmd), 254, "", "registry down")})
        findings = run_analyzer(JavaScriptAnalyzer(), COMPLETE_JS, runner=runner)
        assert _messages(findings) == ["npm audit could not complete: registry down"]

    def test_timeout(self, run_analyzer):
        runner = FakeToolRunner({"npm": AnalyzerTimeoutError("npm audit --json", 5)})
        findings = run_analyzer(JavaScriptAnalyzer(), COMPLETE_JS, runner=runner)
        assert _messages(findings) == ["npm audit timed out after 5s"]


    def test_tool_timeout_clamped_to_analyzer_deadline(self, run_analyzer):
        runner = FakeToolRunner({"npm": npm_audit_clean})
        cfg = HealthConfig(analyzer_timeout_seconds=2, tool_timeout_seconds=90)
        run_analyzer(JavaScriptAnalyzer(), COMPLETE_JS, runner=runner, cfg=cfg)
        assert len(runner.timeouts) == 1
        assert 0 < runner.timeouts[0] <= 2


class TestToolTimeout:
    def test_without_deadline(self):
        context = AnalyzerContext(config=HealthConfig(tool_timeout_seconds=90))
        assert context.tool_timeout() == 90

    def test_tool_limit_below_time_left(self):
        context = AnalyzerContext(
            config=HealthConfig(tool_timeout_seconds=5), deadline=time.monotonic() + 100
        )
        assert context.tool_timeout() == 5

    def test_clamped_to_time_left(self):
        context = AnalyzerContext(
            config=HealthConfig(tool_timeout_seconds=90), deadline=time.monotonic() + 10
        )
        assert 0 < context.tool_timeout() <= 10

    def test_deadline_passed(self):
        context = AnalyzerContext(
            config=HealthConfig(tool_timeout_seconds=90), deadline=time.monotonic() - 5
        )
        assert context.tool_timeout() == pytest.approx(0.1)

class TestPython:
    COMPLETE = {
        "pyproject.toml": "[project]\nname = 'x'\n\n[tool.ruff]\n\n[tool.coverage.run]\nbranch = true\n",
        "pkg/__init__.py": "",
        "pkg/core.py": '"""Core module."""\n\nVALUE = 1\n',
        "tests/test_core.py": "def test_value():\n    assert True\n",
    }

    def test_complete_project_is_clean(self, run_analyzer):
        assert run_analyzer(PythonAnalyzer(), self.COMPLETE) == []

    def test_bare_project(self, run_analyzer):
        findings = run_analyzer(PythonAnalyzer(), {"setup.py": "from setuptools import setup\nsetup()\n"})
        kinds = sorted(f.kind.value for f in findings)
        assert kinds == ["missing-config", "missing-doc", "test-gap"]

    def test_invalid_pyproject(self, run_analyzer):
        files = dict(self.COMPLETE, **{"pyproject.toml": "[tool\n"})
        findings = run_analyzer(PythonAnalyzer(), files)
        parse_errors = [f for f in findings if f.kind is FindingKind.PARSE_ERROR]
        assert len(parse_errors) == 1
        assert parse_errors[0].severity is Severity.HIGH

    def test_missing_coverage_config(self, run_analyzer):
        files = dict(self.COMPLETE, **{"pyproject.toml": "[tool.ruff]\n"})
        assert _messages(run_analyzer(PythonAnalyzer(), files)) == ["No test coverage configuration"]

    def test_unpinned_requirements(self, run_analyzer):
        files = dict(self.COMPLETE, **{"requirements.txt": "# deps\nflask\nrequests\nclick>=8\nrich\nnumpy==1.26.0\n"})
        findings = run_analyzer(PythonAnalyzer(), files)
        assert "4 unpinned requirements" in _messages(findings, FindingKind.BUILD_CONFIG)

    def test_env_without_example(self, run_analyzer):
        files = dict(self.COMPLETE, **{"pkg/settings.py": '"""Settings."""\nfrom dotenv import load_dotenv\n'})
        findings = run_analyzer(PythonAnalyzer(), files)
        assert _messages(findings) == ["Code loads a .env file but no .env.example documents the variables"]

    def test_venv_not_ignored(self, run_analyzer):
        files = dict(self.COMPLETE, **{".venv/bin/python": "x"})
        findings = run_analyzer(PythonAnalyzer(), files)
        assert _messages(findings) == ["Virtual environment '.venv' is not listed in .gitignore"]

    def test_venv_ignored(self, run_analyzer):
        files = dict(self.COMPLETE, **{".venv/bin/python": "x", ".gitignore": ".venv/\n"})
        assert run_analyzer(PythonAnalyzer(), files) == []

    def test_low_docstring_coverage(self, run_analyzer):
        files = dict(self.COMPLETE)
        files.update({f"pkg/m{i}.py": "X = 1\n" for i in range(3)})
        findings = run_analyzer(PythonAnalyzer(), files)
        assert _messages(findings, FindingKind.MISSING_DOC) == ["Low docstring coverage (25% of modules)"]

    def test_missing_init(self, run_analyzer):
        files = {k: v for k, v in self.COMPLETE.items() if k != "pkg/__init__.py"}
        findings = run_analyzer(PythonAnalyzer(), files)
        assert _messages(findings) == ["Python packages have no __init__.py files"]

    def test_pip_audit(self, run_analyzer):
        audit = json.dumps(
            {"dependencies": [{"name": "requests", "version": "2.25.0", "vulns": [{"id": "PYSEC-1", "fix_versions": ["2.31.0"]}]}]}
        )
        runner = FakeToolRunner({"pip-audit": audit})
        files = dict(self.COMPLETE, **{"requirements.txt": "requests==2.25.0\n"})
        findings = run_analyzer(PythonAnalyzer(), files, runner=runner)
        vulns = [f for f in findings if f.kind is FindingKind.VULNERABILITY]
        assert [f.location.path for f in vulns] == ["requirements.txt"]
        assert runner.calls[0][:3] == ["pip-audit", "-r", "requirements.txt"]

    def test_pip_audit_unexpected_shape_keeps_offline_findings(self, run_analyzer):
        audit = json.dumps({"dependencies": [{"name": "requests", "version": "2.25.0", "vulns": ["PYSEC-1"]}]})
        runner = FakeToolRunner({"pip-audit": audit})
        files = {k: v for k, v in self.COMPLETE.items() if k != "pkg/__init__.py"}
        files["requirements.txt"] = "requests==2.25.0\n"
        findings = run_analyzer(PythonAnalyzer(), files, runner=runner)
        assert "Python packages have no __init__.py files" in _messages(findings)
        skipped = _skipped(findings)
        assert len(skipped) == 1
        assert skipped[0].message.startswith("pip-audit could not complete: pip-audit vulnerability entry")

    def test_pip_audit_missing(self, run_analyzer, no_tools):
        files = dict(self.COMPLETE, **{"requirements.txt": "requests==2.31.0\n"})
        findings = run_analyzer(PythonAnalyzer(), files, runner=no_tools)
        assert [f.message for f in _skipped(findings)] == [
            "pip-audit skipped: 'pip-audit' is not installed (dependency vulnerability audit)"
        ]

    @pytest.mark.parametrize(
        "source,expected",
        [
            ('"""Module."""\n', True),
            ("def f():\n    '''Doc.'''\n", True),
            ("class A:\n    pass\n", False),
            ("def broken(:\n", False),
        ],
    )
    def test_has_docstring(self, source, expected):
        assert _has_docstring(source) is expected


class TestGo:
    def test_bare_module(self, run_analyzer, no_tools):
        findings = run_analyzer(GoAnalyzer(), {"go.mod": "module x\n", "main.go": "package main\n"}, runner=no_tools)
        by_message = {f.message: f.severity for f in findings}
        assert by_message["Missing go.sum"] is Severity.MEDIUM
        assert by_message["No *_test.go files"] is Severity.MEDIUM
        assert by_message["No golangci-lint configuration"] is Severity.LOW
        assert by_message["No Makefile for build automation"] is Severity.INFO
        assert len(_skipped(findings)) == 1

    def test_complete_module(self, run_analyzer):
        files = {
            "go.mod": "module x\n",
            "go.sum": "",
            ".golangci.yml": "",
            "Makefile": "all:\n",
            "main.go": "package main\n\n// Run starts the server.\nfunc Run() {}\n",
            "main_test.go": "package main\n",
        }
        assert run_analyzer(GoAnalyzer(), files, runner=FakeToolRunner({"gofmt": ""})) == []

    def test_replace_directives(self, run_analyzer):
        files = {"go.mod": "module x\n\nreplace a => ../a\nreplace b => ../b\n", "go.sum": ""}
        assert "2 replace directive(s) in go.mod" in _messages(run_analyzer(GoAnalyzer(), files))

    def test_godoc_coverage(self, run_analyzer):
        source = "package x\n\n// A does a.\nfunc A() {}\n\nfunc B() {}\n\nfunc (s *S) C() {}\n\nfunc private() {}\n"
        findings = run_analyzer(GoAnalyzer(), {"go.mod": "module x\n", "x.go": source})
        assert "Low godoc coverage (1 of 3 exported functions)" in _messages(findings, FindingKind.MISSING_DOC)

    def test_low_test_ratio(self, run_analyzer):
        files = {"go.mod": "module x\n", "a_test.go": "package x\n"}
        files.update({f"pkg/f{i}.go": "package pkg\n" for i in range(4)})
        findings = run_analyzer(GoAnalyzer(), files)
        assert "Low test file ratio (1 tests for 4 source files)" in _messages(findings, FindingKind.TEST_GAP)

    def test_gofmt_reports_collected_files_only(self, run_analyzer):
        runner = FakeToolRunner({"gofmt": "./main.go\nvendor/dep/x.go\n"})
        files = {"go.mod": "module x\n", "main.go": "package main\n", "vendor/dep/x.go": "package dep\n"}
        findings = run_analyzer(GoAnalyzer(), files, runner=runner)
        style = [f for f in findings if f.kind is FindingKind.STYLE_VIOLATION]
        assert [f.location.path for f in style] == ["main.go"]


class TestRust:
    MANIFEST = '[package]\nname = "x"\nversion = "0.1.0"\nedition = "2021"\n'

    def test_old_binary_crate(self, run_analyzer):
        files = {
            "Cargo.toml": '[package]\nname = "x"\nversion = "0.1.0"\nedition = "2018"\n',
            "src/main.rs": "fn main() {}\n",
        }
        assert _messages(run_analyzer(RustAnalyzer(), files)) == [
            "Binary crate without a committed Cargo.lock",
            "No Rust tests found",
            "No rustfmt configuration",
            "Outdated Rust edition 2018",
        ]

    def test_missing_package_fields(self, run_analyzer):
        files = {"Cargo.toml": "[package]\n", "rustfmt.toml": "", "src/lib.rs": "#[test]\nfn t() {}\n"}
        assert _messages(run_analyzer(RustAnalyzer(), files)) == [
            "Cargo.toml [package] has no 'name'",
            "Cargo.toml [package] has no 'version'",
            "No Rust edition specified",
        ]

    def test_workspace_edition(self, run_analyzer):
        manifest = '[package]\nname = "x"\nversion = "0.1.0"\nedition.workspace = true\n'
        files = {"Cargo.toml": manifest, "rustfmt.toml": "", "tests/it.rs": "fn t() {}\n"}
        assert run_analyzer(RustAnalyzer(), files) == []

    def test_invalid_manifest(self, run_analyzer):
        findings = run_analyzer(RustAnalyzer(), {"Cargo.toml": "[package\n"})
        assert [f.kind for f in findings] == [FindingKind.PARSE_ERROR]

    def test_unwraps(self, run_analyzer):
        body = "".join(f"    let v{i} = x.unwrap();\n" for i in range(11))
        files = {
            "Cargo.toml": self.MANIFEST,
            "rustfmt.toml": "",
            "src/lib.rs": f"fn f() {{\n{body}}}\n\n#[cfg(test)]\nmod tests {{}}\n",
        }
        assert _messages(run_analyzer(RustAnalyzer(), files)) == ["Excessive use of .unwrap() (11 occurrences)"]

    def test_cargo_audit(self, run_analyzer):
        audit = json.dumps(
            {
                "vulnerabilities": {
                    "list": [
                        {
                            "advisory": {"id": "RUSTSEC-2020-0071", "title": "time segfault", "package": "time"},
                            "package": {"name": "time", "version": "0.1.43"},
                        }
                    ]
                }
            }
        )
        files = {"Cargo.toml": self.MANIFEST, "Cargo.lock": "", "rustfmt.toml": "", "src/lib.rs": "#[test]\nfn t() {}\n"}
        findings = run_analyzer(RustAnalyzer(), files, runner=FakeToolRunner({"cargo-audit": audit}))
        assert [(f.kind, f.location.path) for f in findings] == [(FindingKind.VULNERABILITY, "Cargo.lock")]


class TestShell:
    def test_script_checks(self, run_analyzer, no_tools):
        findings = run_analyzer(ShellAnalyzer(), {"deploy.sh": "echo hi\n"}, runner=no_tools)
        assert _messages(findings, FindingKind.STYLE_VIOLATION) == [
            "Script does not use 'set -e' (consider 'set -euo pipefail')",
            "Script has no shebang line",
        ]
        assert len(_skipped(findings)) == 1

    @pytest.mark.parametrize("strict", ["set -euo pipefail", "set -e", "set -o errexit"])
    def test_strict_scripts(self, run_analyzer, no_tools, strict):
        findings = run_analyzer(ShellAnalyzer(), {"run.sh": f"#!/bin/bash\n{strict}\n"}, runner=no_tools)
        assert not _messages(findings, FindingKind.STYLE_VIOLATION)

    def test_shellcheck_output(self, run_analyzer):
        output = json.dumps(
            [{"file": "run.sh", "line": 3, "level": "warning", "code": 2086, "message": "Double quote to prevent globbing."}]
        )
        runner = FakeToolRunner({"shellcheck": lambda cmd, cwd: ToolResult(tuple(cmd), 1, output, "")})
        findings = run_analyzer(ShellAnalyzer(), {"run.sh": "#!/bin/sh\nset -e\necho $1\n"}, runner=runner)
        assert len(findings) == 1
        assert findings[0].message == "SC2086: Double quote to prevent globbing."
        assert findings[0].severity is Severity.LOW
        assert (findings[0].location.path, findings[0].location.line) == ("run.sh", 3)
        assert runner.calls == [["shellcheck", "-f", "json", "run.sh"]]

    def test_shellcheck_failure(self, run_analyzer):
        runner = FakeToolRunner({"shellcheck": lambda cmd, cwd: ToolResult(tuple(cmd), 3, "", "invalid option")})
        findings = run_analyzer(ShellAnalyzer(), {"run.sh": "#!/bin/sh\nset -e\n"}, runner=runner)
        assert _messages(findings) == ["shellcheck could not complete: invalid option"]

    def test_shellcheck_bad_json(self, run_analyzer):
        runner = FakeToolRunner({"shellcheck": '{"comments": []}'})
        findings = run_analyzer(ShellAnalyzer(), {"run.sh": "#!/bin/sh\nset -e\n"}, runner=runner)
        assert _messages(findings) == ["shellcheck could not complete: shellcheck output is not a list"]

    @pytest.mark.parametrize(
        "output,reason",
        [
            ('["SC2086"]', "shellcheck comment is not an object"),
            ('[{"file": "run.sh", "line": "3", "code": 2086}]', "shellcheck line is not an integer: '3'"),
        ],
    )
    def test_shellcheck_unexpected_items(self, run_analyzer, output, reason):
        runner = FakeToolRunner({"shellcheck": output})
        findings = run_analyzer(ShellAnalyzer(), {"run.sh": "echo hi\n"}, runner=runner)
        assert f"shellcheck could not complete: {reason}" in _messages(findings)
        assert "Script has no shebang line" in _messages(findings)
