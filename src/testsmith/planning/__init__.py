"""Incremental delta planning."""

from testsmith.planning.incremental import (
    IncrementalPlanner,
    normalize_name,
    tested_name_from_test,
)
from testsmith.planning.schemas import IncrementalPlan

__all__ = [
    "IncrementalPlan",
    "IncrementalPlanner",
    "normalize_name",
    "tested_name_from_test",
]
