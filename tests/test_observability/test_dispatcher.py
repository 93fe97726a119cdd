"""Tests for the per-request event collector."""

from __future__ import annotations

import pytest

from testsmith.observability import create_collector
from testsmith.observability.dispatcher import EventCollector
from testsmith.observability.events import TraceEvent


class _Recorder:
    def __init__(self, name: str = "recorder") -> None:
        self._name = name
        self.events: list[TraceEvent] = []

    @property
    def name(self) -> str:
        return self._name

    async def handle(self, event: TraceEvent) -> None:
        self.events.append(event)


class TestEventCollector:
    @pytest.mark.asyncio
    async def test_emit_fans_out_to_handlers(self) -> None:
        first, second = _Recorder("a"), _Recorder("b")
        collector = EventCollector(first, second)

        await collector.emit(TraceEvent(type="generation_start", trace_id="t1"))

        assert [e.trace_id for e in first.events] == ["t1"]
        assert [e.trace_id for e in second.events] == ["t1"]

    def test_duplicate_handler_ignored(self) -> None:
        collector = EventCollector()
        collector.register(_Recorder())
        collector.register(_Recorder())
        assert collector.handler_count == 1

    @pytest.mark.asyncio
    async def test_handler_error_does_not_propagate(self) -> None:
        """A failing handler neither raises nor starves the others."""

        class BadHandler:
            @property
            def name(self) -> str:
                return "bad"

            async def handle(self, event: TraceEvent) -> None:
                msg = "boom"
                raise RuntimeError(msg)

        good = _Recorder()
        collector = EventCollector(BadHandler(), good)
        await collector.emit(TraceEvent(type="failure", trace_id="t1"))

        assert len(good.events) == 1

    def test_get_handler(self) -> None:
        recorder = _Recorder()
        collector = EventCollector(recorder)
        assert collector.get_handler("recorder") is recorder
        assert collector.get_handler("missing") is None

    def test_collectors_are_independent(self) -> None:
        one = create_collector(console=False)
        two = create_collector(console=False)
        assert one.get_handler("metrics") is not two.get_handler("metrics")

    def test_create_collector_console_optional(self) -> None:
        assert create_collector(console=False).handler_count == 1
        assert create_collector().handler_count == 2
