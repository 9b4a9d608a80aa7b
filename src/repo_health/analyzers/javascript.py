"""JavaScript / TypeScript project checks."""

from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..advisories import parse_npm_audit
from ..exceptions import ToolExecutionError
from ..logging_config import get_logger
from ..models import Finding, FindingKind, RepositorySnapshot, Severity
from ..scanning.ecosystems import ECOSYSTEMS
from ..tools import ToolRequirement
from .base import AnalyzerContext, BaseAnalyzer

logger = get_logger(__name__)

NPM_AUDIT = ToolRequirement("npm audit", "npm", "dependency vulnerability audit")

ESLINT_CONFIGS = (
    ".eslintrc",
    ".eslintrc.js",
    ".eslintrc.cjs",
    ".eslintrc.json",
    ".eslintrc.yml",
    ".eslintrc.yaml",
    "eslint.config.js",
    "eslint.config.mjs",
    "eslint.config.cjs",
    "eslint.config.ts",
)
FORMATTER_CONFIGS = (
    ".prettierrc",
    ".prettierrc.js",
    ".prettierrc.cjs",
    ".prettierrc.json",
    ".prettierrc.yml",
    ".prettierrc.yaml",
    "prettier.config.js",
    "prettier.config.cjs",
    "biome.json",
    "biome.jsonc",
)
BUNDLER_CONFIGS = ("webpack.config.js", "vite.config.js", "vite.config.ts", "rollup.config.js")


class JavaScriptAnalyzer(BaseAnalyzer):
    name = "javascript"
    ecosystem = "javascript"
    tools = (NPM_AUDIT,)

    def analyze(self, snapshot: RepositorySnapshot, context: AnalyzerContext) -> Iterable[Finding]:
        findings: List[Finding] = []
        for manifest in _manifests(snapshot):
            findings.extend(self._check_project(snapshot, manifest))
        return findings

    def _check_project(self, snapshot: RepositorySnapshot, manifest: str) -> List[Finding]:
        directory = _dirname(manifest)
        findings: List[Finding] = []

        text = snapshot.read_text(manifest)
        try:
            pkg = json.loads(text) if text is not None else None
        except ValueError as e:
            return [
                self.finding(
                    FindingKind.PARSE_ERROR, Severity.HIGH, f"Invalid package.json: {e}", path=manifest
                )
            ]
        if not isinstance(pkg, dict):
            return [
                self.finding(
                    FindingKind.PARSE_ERROR,
                    Severity.HIGH,
                    "package.json is not a JSON object",
                    path=manifest,
                )
            ]

        for key in ("name", "version"):
            if not pkg.get(key):
                findings.append(
                    self.finding(
                        FindingKind.MISSING_CONFIG,
                        Severity.LOW,
                        f"package.json has no '{key}' field",
                        path=manifest,
                    )
                )
        if not pkg.get("description"):
            findings.append(
                self.finding(
                    FindingKind.MISSING_DOC,
                    Severity.INFO,
                    "package.json has no description",
                    path=manifest,
                )
            )

        scripts = pkg.get("scripts") if isinstance(pkg.get("scripts"), dict) else {}
        if not scripts.get("test") or "no test specified" in str(scripts.get("test")):
            findings.append(
                self.finding(
                    FindingKind.TEST_GAP, Severity.MEDIUM, "No test script defined", path=manifest
                )
            )
        if not scripts.get("lint"):
            findings.append(
                self.finding(
                    FindingKind.MISSING_CONFIG, Severity.LOW, "No lint script defined", path=manifest
                )
            )
        compiled = _has_near(snapshot, directory, ("tsconfig.json",) + BUNDLER_CONFIGS)
        if compiled and not scripts.get("build"):
            findings.append(
                self.finding(
                    FindingKind.BUILD_CONFIG,
                    Severity.LOW,
                    "No build script for a compiled project",
                    path=manifest,
                )
            )

        if not _has_near(snapshot, directory, ECOSYSTEMS["javascript"].lockfiles):
            findings.append(
                self.finding(
                    FindingKind.MISSING_CONFIG,
                    Severity.MEDIUM,
                    "No lockfile; installs are not reproducible",
                    path=manifest,
                )
            )

        deps = _names(pkg.get("dependencies"))
        dev_deps = _names(pkg.get("devDependencies"))
        duplicated = sorted(deps & dev_deps)
        if duplicated:
            findings.append(
                self.finding(
                    FindingKind.BUILD_CONFIG,
                    Severity.LOW,
                    "Listed in both dependencies and devDependencies: " + ", ".join(duplicated),
                    path=manifest,
                )
            )

        findings.extend(self._check_typescript(snapshot, directory, manifest, deps | dev_deps))

        if not _has_near(snapshot, directory, ESLINT_CONFIGS) and "eslintConfig" not in pkg:
            findings.append(
                self.finding(
                    FindingKind.MISSING_CONFIG, Severity.LOW, "No ESLint configuration", path=manifest
                )
            )
        if not _has_near(snapshot, directory, FORMATTER_CONFIGS) and "prettier" not in pkg:
            findings.append(
                self.finding(
                    FindingKind.MISSING_CONFIG,
                    Severity.LOW,
                    "No Prettier or Biome configuration",
                    path=manifest,
                )
            )
        return findings

    def _check_typescript(
        self, snapshot: RepositorySnapshot, directory: str, manifest: str, all_deps: set
    ) -> List[Finding]:
        tsconfig = _join(directory, "tsconfig.json")
        if not snapshot.has_file(tsconfig):
            if "typescript" in all_deps:
                return [
                    self.finding(
                        FindingKind.MISSING_CONFIG,
                        Severity.MEDIUM,
                        "TypeScript is a dependency but there is no tsconfig.json",
                        path=manifest,
                    )
                ]
            return []

        text = snapshot.read_text(tsconfig) or ""
        try:
            data = json.loads(strip_json_comments(text))
        except ValueError as e:
            return [
                self.finding(
                    FindingKind.PARSE_ERROR, Severity.MEDIUM, f"Invalid tsconfig.json: {e}", path=tsconfig
                )
            ]
        if not isinstance(data, dict):
            data = {}
        options = data.get("compilerOptions")
        if not isinstance(options, dict):
            options = {}
        # A tsconfig that extends a shared base may inherit strict mode.
        if "extends" in data and "strict" not in options:
            return []
        if options.get("strict") is not True:
            return [
                self.finding(
                    FindingKind.BUILD_CONFIG,
                    Severity.LOW,
                    "TypeScript strict mode is not enabled",
                    path=tsconfig,
                )
            ]
        return []

    def wants_tool(self, tool, snapshot: RepositorySnapshot) -> bool:
        return bool(_audit_targets(snapshot))

    def run_tool(self, tool, snapshot: RepositorySnapshot, context: AnalyzerContext) -> Iterable[Finding]:
        findings: List[Finding] = []
        for directory, lockfile in _audit_targets(snapshot):
            result = context.runner.run(
                ["npm", "audit", "--json"],
                cwd=snapshot.abs_path(directory) if directory else snapshot.root,
                timeout=context.tool_timeout(),
            )
            # npm audit exits 1 when vulnerabilities are found.
            if not result.stdout.strip():
                raise ToolExecutionError(
                    "npm", result.stderr.strip() or f"exit status {result.returncode}", result.command
                )
            records = parse_npm_audit(result.stdout)
            logger.debug(f"npm audit in {directory or '.'}: {len(records)} vulnerable packages")
            findings.extend(r.to_finding(self.name, lockfile) for r in records)
        return findings


def strip_json_comments(text: str) -> str:
    """Drop ``//`` and ``/* */`` comments and trailing commas from JSONC."""
    out = []
    i, n = 0, len(text)
    in_string = False
    while i < n:
        ch = text[i]
        if in_string:
            out.append(ch)
            if ch == "\\" and i + 1 < n:
                out.append(text[i + 1])
                i += 2
                continue
            if ch == '"':
                in_string = False
            i += 1
            continue
        if ch == '"':
            in_string = True
            out.append(ch)
            i += 1
        elif text.startswith("//", i):
            end = text.find("\n", i)
            i = n if end < 0 else end
        elif text.startswith("/*", i):
            end = text.find("*/", i + 2)
            i = n if end < 0 else end + 2
        elif ch in "}]":
            # Trailing comma before a closing bracket.
            j = len(out) - 1
            while j >= 0 and out[j].isspace():
                j -= 1
            if j >= 0 and out[j] == ",":
                del out[j]
            out.append(ch)
            i += 1
        else:
            out.append(ch)
            i += 1
    return "".join(out)


def _manifests(snapshot: RepositorySnapshot) -> Tuple[str, ...]:
    return tuple(
        p for p in snapshot.markers.get("javascript", ()) if p.rsplit("/", 1)[-1] == "package.json"
    )


def _audit_targets(snapshot: RepositorySnapshot) -> List[Tuple[str, str]]:
    targets = []
    for manifest in _manifests(snapshot):
        directory = _dirname(manifest)
        lock = _join(directory, "package-lock.json")
        if snapshot.has_file(lock):
            targets.append((directory, lock))
    return targets


def _names(section: Any) -> set:
    return set(section) if isinstance(section, dict) else set()


def _dirname(path: str) -> str:
    return path.rsplit("/", 1)[0] if "/" in path else ""


def _join(directory: str, name: str) -> str:
    return f"{directory}/{name}" if directory else name


def _has_near(snapshot: RepositorySnapshot, directory: str, names: Tuple[str, ...]) -> bool:
    """True when one of ``names`` exists in ``directory`` or the repository root."""
    for name in names:
        if snapshot.has_file(_join(directory, name)) or snapshot.has_file(name):
            return True
    return False


def package_json(snapshot: RepositorySnapshot, path: str = "package.json") -> Optional[Dict[str, Any]]:
    """Parsed ``package.json`` or None when missing or invalid."""
    text = snapshot.read_text(path)
    if text is None:
        return None
    try:
        data = json.loads(text)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None
