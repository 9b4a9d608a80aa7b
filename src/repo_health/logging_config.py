"""
Logging configuration for repo-health.

Logs go to stderr through a rich handler so stdout stays reserved for the
report that CI captures.
"""

import logging
import os
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

_TRUTHY = ("1", "true", "yes", "on")


def verbose_from_env() -> bool:
    """Return True when the ``VERBOSE`` environment flag is set."""
    return os.environ.get("VERBOSE", "").strip().lower() in _TRUTHY


def setup_logging(verbose: bool = False, quiet: bool = False) -> logging.Logger:
    """
    Configure logging with rich handler for colored output.

    Args:
        verbose: Enable DEBUG level logging (also enabled by ``VERBOSE=true``)
        quiet: Suppress all but ERROR level logging

    Returns:
        Configured logger instance for repo_health
    """
    if quiet:
        level = logging.ERROR
    elif verbose or verbose_from_env():
        level = logging.DEBUG
    else:
        level = logging.WARNING

    console = Console(stderr=True)

    handlers: list[logging.Handler] = [
        RichHandler(
            console=console,
            rich_tracebacks=True,
            tracebacks_show_locals=level == logging.DEBUG,
            markup=False,
            show_time=True,
            show_path=level == logging.DEBUG,
        )
    ]

    logging.basicConfig(
        level=level, format="%(message)s", datefmt="[%X]", handlers=handlers, force=True
    )

    logger = logging.getLogger("repo_health")
    logger.setLevel(level)

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a logger instance for a specific module.

    Args:
        name: Module name (e.g., 'repo_health.pipeline')
              If None, returns the root repo_health logger

    Returns:
        Logger instance
    """
    if name is None:
        return logging.getLogger("repo_health")

    if not name.startswith("repo_health"):
        name = f"repo_health.{name}"

    return logging.getLogger(name)
