"""Markdown formatter for PR comments and step summaries."""

from typing import List

from ..models import HealthReport, Severity
from .base import BaseFormatter, issue_findings, recommendations, skipped_capabilities

MAX_FINDINGS_PER_SEVERITY = 25
# Low and info findings are folded into <details> blocks.
_COLLAPSED = (Severity.LOW, Severity.INFO)


def _cell(text: str) -> str:
    return text.replace("|", "\\|").replace("\n", " ")


class MarkdownFormatter(BaseFormatter):
    """GitHub-flavoured markdown body."""

    name = "markdown"

    def format(self, report: HealthReport) -> str:
        summary = report.summary
        lines: List[str] = [
            "## Repository Health Report",
            "",
            f"**Health score:** {report.overall_score}/100 ({report.status})",
            "",
            "| Severity | Count |",
            "|----------|------:|",
            f"| Critical | {summary.critical_issues} |",
            f"| High | {summary.high_issues} |",
            f"| Medium | {summary.medium_issues} |",
            f"| Low | {summary.low_issues} |",
            f"| Info | {summary.info_items} |",
            "",
        ]
        if report.ecosystems:
            lines.append(f"Ecosystems: {', '.join(report.ecosystems)}")
            lines.append("")

        if report.category_scores:
            lines += ["### Categories", "", "| Analyzer | Score |", "|----------|------:|"]
            lines += [f"| {name} | {score} |" for name, score in report.category_scores.items()]
            lines.append("")

        groups = issue_findings(report)
        if groups:
            lines += ["### Findings", ""]
        for severity, findings in groups:
            shown = findings[:MAX_FINDINGS_PER_SEVERITY]
            title = f"{severity.value.capitalize()} ({len(findings)})"
            if severity in _COLLAPSED:
                lines += [f"<details><summary>{title}</summary>", ""]
            else:
                lines += [f"#### {title}", ""]
            lines += ["| Kind | Message | Location |", "|------|---------|----------|"]
            for f in shown:
                where = f"`{f.location}`" if f.location else ""
                lines.append(f"| {f.kind.value} | {_cell(f.message)} | {where} |")
            if len(findings) > len(shown):
                lines.append(f"| | ... and {len(findings) - len(shown)} more | |")
            lines.append("")
            if severity in _COLLAPSED:
                lines += ["</details>", ""]

        skipped = skipped_capabilities(report)
        if skipped:
            lines += ["### Skipped capabilities", ""]
            lines += [f"- {_cell(item)}" for item in skipped]
            lines.append("")

        recs = recommendations(report)
        if recs:
            lines += ["### Recommendations", ""]
            lines += [f"- {rec}" for rec in recs]
            lines.append("")

        return "\n".join(lines).rstrip() + "\n"
