"""JSON formatter: the contract CI parses."""

import json

from ..models import HealthReport
from .base import BaseFormatter

# Bump when a key is removed or changes type.
SCHEMA_VERSION = 1


class JsonFormatter(BaseFormatter):
    """Render the report as JSON.

    ``overall_score`` and ``summary.critical_issues`` are integers at fixed
    paths; CI reads them with ``jq``.
    """

    name = "json"

    def __init__(self, include_timestamp: bool = True):
        self.include_timestamp = include_timestamp

    def format(self, report: HealthReport) -> str:
        data = {"schema_version": SCHEMA_VERSION}
        data.update(report.to_dict(include_timestamp=self.include_timestamp))
        return json.dumps(data, indent=2)
