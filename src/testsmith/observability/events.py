"""Typed trace events emitted while generating tests."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

TraceEventType = Literal[
    "generation_start",
    "generation_end",
    "iteration_start",
    "synthesis",
    "measurement",
    "decision",
    "failure",
    "cache_hit",
    "cache_miss",
]

TraceCategory = Literal[
    "generation",
    "loop",
    "synthesis",
    "execution",
    "cache",
]


@dataclass(frozen=True)
class TraceEvent:
    """Immutable trace event emitted during a generation request."""

    type: TraceEventType
    trace_id: str
    timestamp: datetime = field(
        default_factory=lambda: datetime.now(UTC)
    )
    category: TraceCategory = "generation"
    data: dict[str, Any] = field(
        default_factory=lambda: dict[str, Any]()
    )
