"""Console trace handler -- one ``event=trace_<type>`` log line per event."""

from __future__ import annotations

import logging

from testsmith.observability.events import TraceEvent

logger = logging.getLogger(__name__)


class ConsoleTraceHandler:
    """Logs loop events keyed by unit and iteration.

    Only ``generation_start`` and cache events carry the unit, so the
    handler remembers it per trace until ``generation_end``.
    """

    def __init__(self) -> None:
        self._units: dict[str, str] = {}

    @property
    def name(self) -> str:
        return "console"

    async def handle(self, event: TraceEvent) -> None:
        data = dict(event.data)
        unit = data.pop("unit", None)
        if unit is not None:
            self._units[event.trace_id] = str(unit)
        else:
            unit = self._units.get(event.trace_id, "-")

        parts = [f"event=trace_{event.type}", f"unit={unit}"]
        if "iteration" in data:
            parts.append(f"iteration={data.pop('iteration')}")
        parts.append(f"trace_id={event.trace_id}")
        parts.extend(f"{k}={v}" for k, v in data.items())

        if event.type == "generation_end":
            self._units.pop(event.trace_id, None)
        level = logging.WARNING if event.type == "failure" else logging.INFO
        logger.log(level, " ".join(parts))
