"""Typed convenience functions for emitting trace events.

Every emitter accepts ``collector=None`` and then does nothing, so
callers that were not handed a collector need no branching.
"""

from __future__ import annotations

from testsmith.observability.dispatcher import EventCollector
from testsmith.observability.events import TraceEvent


async def emit_generation_start(
    collector: EventCollector | None,
    trace_id: str,
    unit: str,
    plan_kind: str,
    target: float,
    max_iterations: int,
) -> None:
    if collector is None:
        return
    await collector.emit(
        TraceEvent(
            type="generation_start",
            trace_id=trace_id,
            category="generation",
            data={
                "unit": unit,
                "plan": plan_kind,
                "target": target,
                "max_iterations": max_iterations,
            },
        )
    )


async def emit_generation_end(
    collector: EventCollector | None,
    trace_id: str,
    status: str,
    iterations: int,
    best_rate: float,
    duration_ms: float,
) -> None:
    if collector is None:
        return
    await collector.emit(
        TraceEvent(
            type="generation_end",
            trace_id=trace_id,
            category="generation",
            data={
                "status": status,
                "iterations": iterations,
                "best_rate": round(best_rate, 4),
                "duration_ms": duration_ms,
            },
        )
    )


async def emit_iteration_start(
    collector: EventCollector | None,
    trace_id: str,
    iteration: int,
) -> None:
    if collector is None:
        return
    await collector.emit(
        TraceEvent(
            type="iteration_start",
            trace_id=trace_id,
            category="loop",
            data={"iteration": iteration},
        )
    )


async def emit_synthesis(
    collector: EventCollector | None,
    trace_id: str,
    iteration: int,
    artifact_chars: int,
    duration_ms: float,
) -> None:
    if collector is None:
        return
    await collector.emit(
        TraceEvent(
            type="synthesis",
            trace_id=trace_id,
            category="synthesis",
            data={
                "iteration": iteration,
                "artifact_chars": artifact_chars,
                "duration_ms": duration_ms,
            },
        )
    )


async def emit_measurement(
    collector: EventCollector | None,
    trace_id: str,
    iteration: int,
    line_rate: float,
    branch_rate: float,
    overall_rate: float,
    duration_ms: float,
) -> None:
    if collector is None:
        return
    await collector.emit(
        TraceEvent(
            type="measurement",
            trace_id=trace_id,
            category="execution",
            data={
                "iteration": iteration,
                "line_rate": round(line_rate, 4),
                "branch_rate": round(branch_rate, 4),
                "overall_rate": round(overall_rate, 4),
                "duration_ms": duration_ms,
            },
        )
    )


async def emit_decision(
    collector: EventCollector | None,
    trace_id: str,
    iteration: int,
    next_state: str,
) -> None:
    if collector is None:
        return
    await collector.emit(
        TraceEvent(
            type="decision",
            trace_id=trace_id,
            category="loop",
            data={"iteration": iteration, "next": next_state},
        )
    )


async def emit_failure(
    collector: EventCollector | None,
    trace_id: str,
    kind: str,
    message: str,
    consecutive: int,
) -> None:
    if collector is None:
        return
    await collector.emit(
        TraceEvent(
            type="failure",
            trace_id=trace_id,
            category="loop",
            data={
                "kind": kind,
                "message": message,
                "consecutive": consecutive,
            },
        )
    )


async def emit_cache_lookup(
    collector: EventCollector | None,
    trace_id: str,
    unit: str,
    hit: bool,
) -> None:
    if collector is None:
        return
    await collector.emit(
        TraceEvent(
            type="cache_hit" if hit else "cache_miss",
            trace_id=trace_id,
            category="cache",
            data={"unit": unit},
        )
    )
