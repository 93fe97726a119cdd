"""Observability layer -- event collector + pluggable handlers."""

from __future__ import annotations

from testsmith.observability.dispatcher import EventCollector
from testsmith.observability.events import (
    TraceCategory,
    TraceEvent,
    TraceEventType,
)
from testsmith.observability.handlers.console import (
    ConsoleTraceHandler,
)
from testsmith.observability.handlers.metrics import (
    MetricsTraceHandler,
    TraceMetrics,
)

__all__ = [
    "ConsoleTraceHandler",
    "EventCollector",
    "MetricsTraceHandler",
    "TraceCategory",
    "TraceEvent",
    "TraceEventType",
    "TraceMetrics",
    "create_collector",
]


def create_collector(*, console: bool = True) -> EventCollector:
    """Collector with the metrics handler and, optionally, console output."""
    collector = EventCollector(MetricsTraceHandler())
    if console:
        collector.register(ConsoleTraceHandler())
    return collector
