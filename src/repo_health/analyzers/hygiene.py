"""Repository hygiene: documentation and maintenance configuration."""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from ..models import FileEntry, Finding, FindingKind, RepositorySnapshot, Severity
from .base import AnalyzerContext, BaseAnalyzer

MIN_README_BYTES = 100


class HygieneAnalyzer(BaseAnalyzer):
    """Ecosystem-independent checks for the files every repository should carry."""

    name = "hygiene"

    def analyze(self, snapshot: RepositorySnapshot, context: AnalyzerContext) -> Iterable[Finding]:
        findings: List[Finding] = []
        root_names = {f.name.upper(): f for f in snapshot.files if "/" not in f.path}

        readme = _first(root_names, "README.MD", "README.RST", "README.TXT", "README")
        if readme is None:
            findings.append(
                self.finding(FindingKind.MISSING_DOC, Severity.MEDIUM, "No README at repository root")
            )
        elif readme.size < MIN_README_BYTES:
            findings.append(
                self.finding(
                    FindingKind.MISSING_DOC,
                    Severity.LOW,
                    f"README is nearly empty ({readme.size} bytes)",
                    path=readme.path,
                )
            )

        if _first(root_names, "LICENSE", "LICENSE.MD", "LICENSE.TXT", "LICENCE", "COPYING") is None:
            findings.append(
                self.finding(FindingKind.MISSING_DOC, Severity.MEDIUM, "No LICENSE file")
            )

        if not snapshot.has_file(".gitignore"):
            findings.append(
                self.finding(FindingKind.MISSING_CONFIG, Severity.LOW, "No .gitignore file")
            )

        contributing = _first(root_names, "CONTRIBUTING.MD", "CONTRIBUTING.RST", "CONTRIBUTING")
        if contributing is None and not snapshot.has_file(".github/CONTRIBUTING.md"):
            findings.append(
                self.finding(FindingKind.MISSING_DOC, Severity.INFO, "No CONTRIBUTING guide")
            )

        if not _has_ci(snapshot):
            findings.append(
                self.finding(
                    FindingKind.BUILD_CONFIG, Severity.INFO, "No CI configuration found"
                )
            )

        if not snapshot.has_any(".pre-commit-config.yaml", ".pre-commit-config.yml", ".husky/pre-commit"):
            findings.append(
                self.finding(
                    FindingKind.MISSING_CONFIG, Severity.INFO, "No pre-commit hooks configured"
                )
            )

        if not snapshot.has_file(".editorconfig"):
            findings.append(
                self.finding(FindingKind.MISSING_CONFIG, Severity.INFO, "No .editorconfig")
            )

        return findings


def _first(names: Dict[str, FileEntry], *candidates: str) -> Optional[FileEntry]:
    for candidate in candidates:
        if candidate in names:
            return names[candidate]
    return None


def _has_ci(snapshot: RepositorySnapshot) -> bool:
    if snapshot.files_under(".github/workflows"):
        return True
    return snapshot.has_any(
        ".gitlab-ci.yml", ".travis.yml", "azure-pipelines.yml", "Jenkinsfile", ".circleci/config.yml"
    )
