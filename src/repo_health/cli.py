"""Command-line entry point: ``repo-health [PATH] [FORMAT]``.

Exit codes:
    0  analysis completed (whatever the score)
    1  the repository could not be collected
    2  invalid configuration, options or prior report
    3  internal error while scoring or rendering
"""

from pathlib import Path
from typing import List, Optional

import click
import typer
from rich.console import Console

from . import __version__
from .analyzers import analyzer_names, load_prior_report
from .api import run_analysis
from .config import load_config
from .exceptions import CollectionError, ConfigurationError, InvalidConfigError
from .formatters import FORMATTERS, get_formatter
from .logging_config import setup_logging

EXIT_OK = 0
EXIT_COLLECTION_ERROR = 1
EXIT_CONFIG_ERROR = 2
EXIT_INTERNAL_ERROR = 3

# Diagnostics only; the report itself is the sole thing written to stdout.
err_console = Console(stderr=True)

app = typer.Typer(
    name="repo-health",
    help="Repository health assessment for CI",
    add_completion=False,
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"repo-health {__version__}")
        raise typer.Exit(0)


@app.command()
def health(
    path: Path = typer.Argument(
        Path("."),
        help="Repository root to analyze",
    ),
    output_format: str = typer.Argument(
        "json",
        metavar="FORMAT",
        help="Report format: json, human or markdown",
        click_type=click.Choice(sorted(FORMATTERS), case_sensitive=False),
    ),
    output: Optional[Path] = typer.Option(
        None,
        "-o",
        "--output",
        help="Write the report to FILE instead of stdout",
        dir_okay=False,
    ),
    config: Optional[Path] = typer.Option(
        None,
        "-c",
        "--config",
        help="Configuration file (TOML)",
    ),
    prior_report: Optional[Path] = typer.Option(
        None,
        "--prior-report",
        help="JSON report from an earlier run, for regression checks",
    ),
    only: Optional[List[str]] = typer.Option(
        None,
        "--only",
        help="Run only this analyzer (repeatable)",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Per-analyzer timeout in seconds",
    ),
    workers: Optional[int] = typer.Option(
        None,
        "-w",
        "--workers",
        help="Analyzers run in parallel (default: all at once)",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Debug logging on stderr (also VERBOSE=true)",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Only log errors",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    ),
):
    """
    Assess repository health and print a scored report.

    The exit code never reflects the score; CI decides pass/fail from
    overall_score and summary.critical_issues in the JSON report.

    Examples:

      repo-health

      repo-health . human

      repo-health /path/to/repo json --output health-report.json
    """
    logger = setup_logging(verbose=verbose, quiet=quiet)

    try:
        settings = load_config(
            config_file=config,
            analyzer_timeout_seconds=timeout,
            workers=workers,
            only_analyzers=list(only) if only else None,
            verbose=verbose or None,
            quiet=quiet or None,
        )
        unknown = sorted(set(settings.only_analyzers) - set(analyzer_names()))
        if unknown:
            raise InvalidConfigError(
                "only_analyzers", ", ".join(unknown), f"known analyzers: {', '.join(analyzer_names())}"
            )
        prior = load_prior_report(prior_report) if prior_report is not None else None
    except ConfigurationError as e:
        logger.error(f"{e.__class__.__name__}: {e}")
        err_console.print(f"Error: {e}", markup=False, highlight=False)
        raise typer.Exit(EXIT_CONFIG_ERROR)

    try:
        report = run_analysis(path, config=settings, prior=prior)
    except CollectionError as e:
        logger.error(f"{e.__class__.__name__}: {e}")
        err_console.print(f"Error: {e}", markup=False, highlight=False)
        raise typer.Exit(EXIT_COLLECTION_ERROR)
    except KeyboardInterrupt:
        logger.info("Analysis interrupted by user")
        raise typer.Exit(130)
    except Exception:
        logger.exception("Internal error while analyzing the repository")
        raise typer.Exit(EXIT_INTERNAL_ERROR)

    try:
        text = get_formatter(output_format.lower()).format(report)
    except Exception:
        logger.exception("Internal error while rendering the report")
        raise typer.Exit(EXIT_INTERNAL_ERROR)

    if output is not None:
        try:
            output.write_text(text, encoding="utf-8")
        except OSError as e:
            logger.error(f"Cannot write report to {output}: {e}")
            raise typer.Exit(EXIT_CONFIG_ERROR)
        logger.info(f"Report written to {output}")
    else:
        typer.echo(text, nl=not text.endswith("\n"))


def main() -> None:
    app()


if __name__ == "__main__":
    main()
