"""Shared test fixtures for repo-health tests."""

import json
import os
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Union

import pytest

from repo_health.analyzers import AnalyzerContext
from repo_health.config import HealthConfig
from repo_health.scanning import collect
from repo_health.tools import ToolResult, ToolRunner

Files = Dict[str, Union[str, bytes]]


def write_tree(root: Path, files: Files) -> Path:
    """Create ``files`` (relative path -> content) under ``root``."""
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
        # Independent of the umask; world-writable files are findings.
        path.chmod(0o644)
    return root


class FakeToolRunner(ToolRunner):
    """Tool runner with canned results.

    ``tools`` maps an executable name to a ToolResult-producing callable, a
    stdout string, or an exception instance to raise.
    """

    def __init__(self, tools: Optional[Dict[str, object]] = None):
        self.tools = dict(tools or {})
        self.calls: List[Sequence[str]] = []
        self.timeouts: List[float] = []

    def which(self, executable: str) -> Optional[str]:
        return f"/usr/bin/{executable}" if executable in self.tools else None

    def run(self, command: Sequence[str], cwd: Path, timeout: float) -> ToolResult:
        self.calls.append(list(command))
        self.timeouts.append(timeout)
        behaviour = self.tools[command[0]]
        if isinstance(behaviour, Exception):
            raise behaviour
        if callable(behaviour):
            return behaviour(command, cwd)
        return ToolResult(tuple(command), 0, str(behaviour), "")


def npm_audit_clean(command, cwd) -> ToolResult:
    stdout = json.dumps({"auditReportVersion": 2, "vulnerabilities": {}, "metadata": {}})
    return ToolResult(tuple(command), 0, stdout, "")


@pytest.fixture
def make_repo(tmp_path) -> Callable[[Files], Path]:
    """Factory building a repository tree in a fresh temporary directory."""
    counter = {"n": 0}

    def _make(files: Optional[Files] = None) -> Path:
        counter["n"] += 1
        root = tmp_path / f"repo{counter['n']}"
        root.mkdir()
        return write_tree(root, files or {})

    return _make


@pytest.fixture
def config() -> HealthConfig:
    return HealthConfig()


@pytest.fixture
def no_tools() -> FakeToolRunner:
    """Runner on which no external tool is installed."""
    return FakeToolRunner()


@pytest.fixture
def run_analyzer(make_repo, config):
    """Collect a tree and run one analyzer against it."""

    def _run(analyzer, files: Files, runner: Optional[ToolRunner] = None, cfg=None):
        root = make_repo(files)
        snapshot = collect(root, cfg or config)
        runner = runner or FakeToolRunner()
        available = frozenset(t.executable for t in analyzer.tools if runner.which(t.executable))
        context = AnalyzerContext(config=cfg or config, runner=runner, available_tools=available)
        return analyzer.run(snapshot, context)

    return _run


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Keep user config files and REPO_HEALTH_* variables out of tests."""
    for key in list(os.environ):
        if key.startswith("REPO_HEALTH_") or key == "VERBOSE":
            monkeypatch.delenv(key, raising=False)
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    work = tmp_path / "cwd"
    work.mkdir()
    monkeypatch.chdir(work)

