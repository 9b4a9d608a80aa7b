"""Human-readable formatter.

Built with rich but recorded into a string without color, so the same text
works in a terminal, a CI log and a step summary.
"""

from io import StringIO

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..models import HealthReport
from .base import BaseFormatter, issue_findings, recommendations, skipped_capabilities

WIDTH = 100
MAX_FINDINGS_PER_SEVERITY = 50


class HumanFormatter(BaseFormatter):
    """Sectioned plain-text report."""

    name = "human"

    def format(self, report: HealthReport) -> str:
        buf = StringIO()
        console = Console(
            file=buf,
            width=WIDTH,
            color_system=None,
            force_terminal=False,
            highlight=False,
            emoji=False,
        )
        self._print_header(console, report)
        self._print_summary(console, report)
        self._print_categories(console, report)
        self._print_findings(console, report)
        self._print_skipped(console, report)
        self._print_recommendations(console, report)
        return buf.getvalue().rstrip() + "\n"

    # -- sections --

    def _print_header(self, console: Console, report: HealthReport) -> None:
        ecosystems = ", ".join(report.ecosystems) or "none detected"
        body = Text()
        body.append(f"Path:       {report.analyzed_path}\n")
        body.append(f"Ecosystems: {ecosystems}")
        if report.primary_ecosystem:
            body.append(f" (primary: {report.primary_ecosystem})")
        body.append(f"\nGenerated:  {report.generated_at.isoformat(timespec='seconds')}")
        console.print(Panel(body, title="Repository Health Report", box=box.ASCII, expand=True))
        console.print(
            Text(f"Health score: {report.overall_score}/100  Status: {report.status}")
        )
        console.print()

    def _print_summary(self, console: Console, report: HealthReport) -> None:
        summary = report.summary
        table = Table(title="Summary", box=box.ASCII, title_justify="left")
        table.add_column("Severity")
        table.add_column("Count", justify="right")
        table.add_row("critical", str(summary.critical_issues))
        table.add_row("high", str(summary.high_issues))
        table.add_row("medium", str(summary.medium_issues))
        table.add_row("low", str(summary.low_issues))
        table.add_row("info", str(summary.info_items))
        table.add_row("total", str(summary.total_findings))
        console.print(table)
        console.print()

    def _print_categories(self, console: Console, report: HealthReport) -> None:
        if not report.category_scores:
            return
        table = Table(title="Categories", box=box.ASCII, title_justify="left")
        table.add_column("Analyzer")
        table.add_column("Score", justify="right")
        for name, score in report.category_scores.items():
            table.add_row(name, str(score))
        console.print(table)
        console.print()

    def _print_findings(self, console: Console, report: HealthReport) -> None:
        groups = issue_findings(report)
        if not groups:
            console.print(Text("No issues found."))
            console.print()
            return
        for severity, findings in groups:
            console.print(Text(f"{severity.value.upper()} ({len(findings)})", style="bold"))
            for finding in findings[:MAX_FINDINGS_PER_SEVERITY]:
                line = Text(f"  - [{finding.kind.value}] {finding.message}")
                if finding.location is not None:
                    line.append(f"  ({finding.location})")
                console.print(line)
            hidden = len(findings) - MAX_FINDINGS_PER_SEVERITY
            if hidden > 0:
                console.print(Text(f"  ... and {hidden} more"))
            console.print()

    def _print_skipped(self, console: Console, report: HealthReport) -> None:
        skipped = skipped_capabilities(report)
        if not skipped:
            return
        console.print(Text("Skipped capabilities", style="bold"))
        for item in skipped:
            console.print(Text(f"  - {item}"))
        console.print()

    def _print_recommendations(self, console: Console, report: HealthReport) -> None:
        recs = recommendations(report)
        if not recs:
            return
        console.print(Text("Recommendations", style="bold"))
        for rec in recs:
            console.print(Text(f"  -> {rec}"))
