"""Coverage model and report loading."""

from testsmith.coverage.loader import CoverageReportLoader
from testsmith.coverage.model import (
    aggregate,
    format_report,
    meets_target,
    overall_rate,
    restrict_to_unit,
    uncovered_lines,
    uncovered_operations,
)
from testsmith.coverage.schemas import (
    CoverageCounter,
    CoverageRecord,
    CoverageSnapshot,
)

__all__ = [
    "CoverageCounter",
    "CoverageRecord",
    "CoverageReportLoader",
    "CoverageSnapshot",
    "aggregate",
    "format_report",
    "meets_target",
    "overall_rate",
    "restrict_to_unit",
    "uncovered_lines",
    "uncovered_operations",
]
