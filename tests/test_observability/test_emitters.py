"""Tests for typed emitter helpers."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from testsmith.observability.emitters import (
    emit_cache_lookup,
    emit_decision,
    emit_failure,
    emit_generation_end,
    emit_generation_start,
    emit_measurement,
)


@pytest.mark.asyncio
async def test_emitters_noop_without_collector() -> None:
    await emit_generation_start(None, "t", "calc.ops", "new", 0.8, 5)
    await emit_decision(None, "t", 1, "iterate")
    await emit_cache_lookup(None, "t", "calc.ops", hit=True)


@pytest.mark.asyncio
async def test_generation_start_payload() -> None:
    collector = AsyncMock()
    await emit_generation_start(collector, "t1", "calc.ops", "new", 0.8, 5)

    event = collector.emit.await_args.args[0]
    assert event.type == "generation_start"
    assert event.category == "generation"
    assert event.data == {
        "unit": "calc.ops",
        "plan": "new",
        "target": 0.8,
        "max_iterations": 5,
    }


@pytest.mark.asyncio
async def test_measurement_rates_rounded() -> None:
    collector = AsyncMock()
    await emit_measurement(collector, "t1", 2, 0.123456, 0.5, 0.3, 12.0)

    event = collector.emit.await_args.args[0]
    assert event.category == "execution"
    assert event.data["line_rate"] == 0.1235
    assert event.data["iteration"] == 2


@pytest.mark.asyncio
async def test_cache_lookup_type_by_hit() -> None:
    collector = AsyncMock()
    await emit_cache_lookup(collector, "t1", "u", hit=True)
    await emit_cache_lookup(collector, "t1", "u", hit=False)

    types = [c.args[0].type for c in collector.emit.await_args_list]
    assert types == ["cache_hit", "cache_miss"]


@pytest.mark.asyncio
async def test_failure_and_end_payloads() -> None:
    collector = AsyncMock()
    await emit_failure(collector, "t1", "synthesis", "no model", 2)
    await emit_generation_end(collector, "t1", "failed", 1, 0.25, 40.0)

    failure, end = (c.args[0] for c in collector.emit.await_args_list)
    assert failure.data["consecutive"] == 2
    assert end.data["status"] == "failed"
    assert end.data["best_rate"] == 0.25
