"""Report formatters."""

from ..models import HealthReport
from .base import BaseFormatter
from .human_formatter import HumanFormatter
from .json_formatter import JsonFormatter
from .markdown_formatter import MarkdownFormatter

FORMATTERS = {
    "json": JsonFormatter,
    "human": HumanFormatter,
    "markdown": MarkdownFormatter,
}


def get_formatter(name: str) -> BaseFormatter:
    """Get a formatter instance by name.

    Args:
        name: One of "json", "human", "markdown"

    Raises:
        ValueError: If name is not recognized
    """
    cls = FORMATTERS.get(name)
    if cls is None:
        raise ValueError(f"Unknown format: {name!r}. Choose from: {', '.join(sorted(FORMATTERS))}")
    return cls()


def render(report: HealthReport, fmt: str = "json") -> str:
    return get_formatter(fmt).format(report)


__all__ = [
    "BaseFormatter",
    "FORMATTERS",
    "HumanFormatter",
    "JsonFormatter",
    "MarkdownFormatter",
    "get_formatter",
    "render",
]
