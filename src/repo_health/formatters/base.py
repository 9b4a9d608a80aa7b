"""Base formatter interface for health report rendering."""

from abc import ABC, abstractmethod
from typing import List, Tuple

from ..models import Finding, FindingKind, HealthReport, SEVERITY_ORDER, Severity

# Kinds describing what the run could not do rather than what is wrong.
DIAGNOSTIC_KINDS = frozenset(
    {
        FindingKind.CAPABILITY_SKIPPED,
        FindingKind.ANALYZER_TIMEOUT,
        FindingKind.ANALYZER_ERROR,
        FindingKind.COLLECTION_WARNING,
    }
)

RECOMMENDATIONS = {
    FindingKind.SECRET_EXPOSURE: "Rotate exposed credentials and purge them from history",
    FindingKind.VULNERABILITY: "Upgrade dependencies with known vulnerabilities",
    FindingKind.SENSITIVE_FILE: "Remove key material and credentials from the repository",
    FindingKind.INSECURE_CONFIG: "Keep .env files out of version control",
    FindingKind.INSECURE_PERMISSION: "Remove world-writable permissions",
    FindingKind.PARSE_ERROR: "Fix manifests that fail to parse",
    FindingKind.TEST_GAP: "Add or expand automated tests",
    FindingKind.MISSING_DOC: "Add the missing project documentation",
    FindingKind.MISSING_CONFIG: "Add the missing configuration files",
    FindingKind.BUILD_CONFIG: "Tighten build and CI configuration",
    FindingKind.LARGE_FILE: "Move large binaries to Git LFS or external storage",
    FindingKind.STYLE_VIOLATION: "Run the ecosystem formatter and linter",
    FindingKind.OUTDATED_DEPENDENCY: "Update outdated toolchain settings and dependencies",
    FindingKind.PERFORMANCE_REGRESSION: "Investigate growth since the previous report",
}
MAX_RECOMMENDATIONS = 5


class BaseFormatter(ABC):
    """Abstract base class for report formatters."""

    name: str = ""

    @abstractmethod
    def format(self, report: HealthReport) -> str:
        """Return the formatted report."""


def issue_findings(report: HealthReport) -> List[Tuple[Severity, Tuple[Finding, ...]]]:
    """Repository issues grouped by severity, most severe first, empty groups dropped."""
    groups = []
    for severity in SEVERITY_ORDER:
        items = tuple(f for f in report.findings_by_severity(severity) if f.kind not in DIAGNOSTIC_KINDS)
        if items:
            groups.append((severity, items))
    return groups


def skipped_capabilities(report: HealthReport) -> List[str]:
    # Failed, timed-out and abandoned runs each carry their own diagnostic finding.
    return [f"{f.source}: {f.message}" for f in report.findings if f.kind in DIAGNOSTIC_KINDS]


def recommendations(report: HealthReport) -> List[str]:
    recs = []
    if report.summary.critical_issues:
        recs.append(f"Resolve {report.summary.critical_issues} critical issue(s) first")
    seen = set()
    for finding in report.findings:
        if finding.severity is Severity.INFO or finding.kind in seen:
            continue
        seen.add(finding.kind)
        text = RECOMMENDATIONS.get(finding.kind)
        if text:
            recs.append(text)
    return recs[:MAX_RECOMMENDATIONS]
