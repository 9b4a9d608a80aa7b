"""Python project checks."""

from __future__ import annotations

import ast
import re
from typing import Iterable, List, Optional, Set

from ..advisories import parse_pip_audit
from ..exceptions import ToolExecutionError
from ..logging_config import get_logger
from ..models import Finding, FindingKind, RepositorySnapshot, Severity
from ..scanning.ecosystems import source_files
from ..tools import ToolRequirement
from .base import AnalyzerContext, BaseAnalyzer

try:
    import tomllib
except ModuleNotFoundError:
    # Python 3.9-3.10
    import tomli as tomllib  # type: ignore

logger = get_logger(__name__)

PIP_AUDIT = ToolRequirement("pip-audit", "pip-audit", "dependency vulnerability audit")

MAX_UNPINNED = 3
MIN_DOCSTRING_RATIO = 0.5
DOCSTRING_SAMPLE = 200
VENV_DIRS = ("venv", ".venv", "env")
NON_PACKAGE_DIRS = ("tests", "test", "scripts", "docs", "examples", "bin", "tools")

_PIN = re.compile(r"(===|==|~=)")
_ENV_REFERENCE = re.compile(r"""(load_dotenv|dotenv_values|["']\.env["'])""")


class PythonAnalyzer(BaseAnalyzer):
    name = "python"
    ecosystem = "python"
    tools = (PIP_AUDIT,)

    def analyze(self, snapshot: RepositorySnapshot, context: AnalyzerContext) -> Iterable[Finding]:
        findings: List[Finding] = []
        pyproject_text = snapshot.read_text("pyproject.toml") if snapshot.has_file("pyproject.toml") else None

        pyproject: dict = {}
        if pyproject_text is not None:
            try:
                pyproject = tomllib.loads(pyproject_text)
            except tomllib.TOMLDecodeError as e:
                findings.append(
                    self.finding(
                        FindingKind.PARSE_ERROR,
                        Severity.HIGH,
                        f"Invalid pyproject.toml: {e}",
                        path="pyproject.toml",
                    )
                )
        tool_tables: Set[str] = set((pyproject.get("tool") or {}).keys())
        setup_cfg = snapshot.read_text("setup.cfg") or ""
        tox_ini = snapshot.read_text("tox.ini") or ""

        findings.extend(self._check_requirements(snapshot))

        has_quality_tool = (
            tool_tables & {"ruff", "black", "flake8", "mypy", "pylint", "isort", "pyright"}
            or snapshot.has_any(
                ".flake8", "ruff.toml", ".ruff.toml", "mypy.ini", ".mypy.ini", ".pylintrc", "pyrightconfig.json"
            )
            or any(s in setup_cfg + tox_ini for s in ("[flake8]", "[mypy]", "[pylint"))
        )
        if not has_quality_tool:
            findings.append(
                self.finding(
                    FindingKind.MISSING_CONFIG,
                    Severity.LOW,
                    "No lint, format or type-check tool configured (ruff, flake8, black, mypy)",
                )
            )

        if not _has_tests(snapshot):
            findings.append(
                self.finding(FindingKind.TEST_GAP, Severity.MEDIUM, "No tests directory or test modules")
            )
        elif not (
            "coverage" in tool_tables
            or snapshot.has_file(".coveragerc")
            or "[coverage:" in setup_cfg + tox_ini
            or "--cov" in (pyproject_text or "") + setup_cfg
        ):
            findings.append(
                self.finding(FindingKind.MISSING_CONFIG, Severity.LOW, "No test coverage configuration")
            )

        py_files = source_files(snapshot, "python")
        if not snapshot.has_any(".env.example", ".env.template", ".env.sample") and _references_env(
            snapshot, py_files, context
        ):
            findings.append(
                self.finding(
                    FindingKind.MISSING_CONFIG,
                    Severity.LOW,
                    "Code loads a .env file but no .env.example documents the variables",
                )
            )

        venvs = [d for d in snapshot.excluded_dirs if d.rsplit("/", 1)[-1] in VENV_DIRS]
        if venvs:
            gitignore = snapshot.read_text(".gitignore") or ""
            if not re.search(r"(^|/)\.?venv\b|^env/?$", gitignore, re.MULTILINE):
                findings.append(
                    self.finding(
                        FindingKind.MISSING_CONFIG,
                        Severity.MEDIUM,
                        f"Virtual environment '{venvs[0]}' is not listed in .gitignore",
                        path=".gitignore" if gitignore else None,
                    )
                )

        ratio = _docstring_ratio(snapshot, py_files, context)
        if ratio is not None and ratio < MIN_DOCSTRING_RATIO:
            findings.append(
                self.finding(
                    FindingKind.MISSING_DOC,
                    Severity.LOW,
                    f"Low docstring coverage ({ratio:.0%} of modules)",
                )
            )

        if _missing_init(snapshot, py_files):
            findings.append(
                self.finding(
                    FindingKind.BUILD_CONFIG,
                    Severity.LOW,
                    "Python packages have no __init__.py files",
                )
            )
        return findings

    def _check_requirements(self, snapshot: RepositorySnapshot) -> List[Finding]:
        text = snapshot.read_text("requirements.txt")
        if text is None:
            return []
        unpinned = [
            line.strip()
            for line in text.splitlines()
            if line.strip()
            and not line.strip().startswith(("#", "-"))
            and not _PIN.search(line)
        ]
        if len(unpinned) > MAX_UNPINNED:
            return [
                self.finding(
                    FindingKind.BUILD_CONFIG,
                    Severity.LOW,
                    f"{len(unpinned)} unpinned requirements",
                    path="requirements.txt",
                )
            ]
        return []

    def wants_tool(self, tool, snapshot: RepositorySnapshot) -> bool:
        return snapshot.has_file("requirements.txt")

    def run_tool(self, tool, snapshot: RepositorySnapshot, context: AnalyzerContext) -> Iterable[Finding]:
        result = context.runner.run(
            ["pip-audit", "-r", "requirements.txt", "-f", "json", "--progress-spinner", "off"],
            cwd=snapshot.root,
            timeout=context.tool_timeout(),
        )
        # pip-audit exits 1 when vulnerabilities are found.
        if not result.stdout.strip():
            raise ToolExecutionError(
                "pip-audit", result.stderr.strip() or f"exit status {result.returncode}", result.command
            )
        records = parse_pip_audit(result.stdout)
        logger.debug(f"pip-audit: {len(records)} vulnerabilities")
        return [r.to_finding(self.name, "requirements.txt") for r in records]


def _has_tests(snapshot: RepositorySnapshot) -> bool:
    if snapshot.has_dir("tests") or snapshot.has_dir("test"):
        return True
    return any(
        f.name.startswith("test_") or f.name.endswith("_test.py") for f in snapshot.files_with_suffix(".py")
    )


def _references_env(snapshot: RepositorySnapshot, py_files, context: AnalyzerContext) -> bool:
    limit = context.config.max_scan_file_size_bytes
    for entry in py_files:
        text = snapshot.read_text(entry.path, max_bytes=limit)
        if text and _ENV_REFERENCE.search(text):
            return True
    return False


def _docstring_ratio(snapshot: RepositorySnapshot, py_files, context: AnalyzerContext) -> Optional[float]:
    """Share of non-empty, non-test modules carrying at least one docstring."""
    candidates = [
        f
        for f in py_files
        if f.size > 0 and f.suffix == ".py" and not f.name.startswith("test_") and f.name != "__init__.py"
    ][:DOCSTRING_SAMPLE]
    if not candidates:
        return None
    limit = context.config.max_scan_file_size_bytes
    documented = 0
    for entry in candidates:
        text = snapshot.read_text(entry.path, max_bytes=limit)
        if text and _has_docstring(text):
            documented += 1
    return documented / len(candidates)


def _has_docstring(source: str) -> bool:
    try:
        tree = ast.parse(source)
    except (SyntaxError, ValueError):
        return False
    nodes = [tree] + [
        n for n in ast.walk(tree) if isinstance(n, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef))
    ]
    return any(ast.get_docstring(n) for n in nodes)


def _missing_init(snapshot: RepositorySnapshot, py_files) -> bool:
    nested = [
        f
        for f in py_files
        if "/" in f.path and f.path.split("/", 1)[0] not in NON_PACKAGE_DIRS
    ]
    if not nested:
        return False
    return not snapshot.files_named("__init__.py")
