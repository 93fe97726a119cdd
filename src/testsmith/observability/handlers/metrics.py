"""Metrics handler -- per-trace counters for one generation request."""

from __future__ import annotations

from dataclasses import dataclass

from testsmith.observability.events import TraceEvent


@dataclass
class TraceMetrics:
    """Accumulated counters for a single trace."""

    iterations: int = 0  # measured attempts, as in GenerationOutcome
    failures: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    synthesis_ms: float = 0.0
    measurement_ms: float = 0.0
    duration_ms: float = 0.0
    status: str | None = None
    final_rate: float | None = None


class MetricsTraceHandler:
    """Aggregates loop, cache and timing counters per trace_id."""

    def __init__(self) -> None:
        self._metrics: dict[str, TraceMetrics] = {}

    @property
    def name(self) -> str:
        return "metrics"

    async def handle(self, event: TraceEvent) -> None:
        m = self._metrics.setdefault(event.trace_id, TraceMetrics())
        match event.type:
            case "failure":
                m.failures += 1
            case "cache_hit":
                m.cache_hits += 1
            case "cache_miss":
                m.cache_misses += 1
            case "synthesis":
                m.synthesis_ms += float(event.data.get("duration_ms", 0.0))
            case "measurement":
                m.iterations += 1
                m.measurement_ms += float(event.data.get("duration_ms", 0.0))
                m.final_rate = float(event.data.get("overall_rate", 0.0))
            case "generation_end":
                m.duration_ms = float(event.data.get("duration_ms", 0.0))
                m.status = str(event.data.get("status"))
            case _:
                pass

    def get_metrics(self, trace_id: str) -> TraceMetrics:
        return self._metrics.get(trace_id, TraceMetrics())

    def all_metrics(self) -> dict[str, TraceMetrics]:
        return dict(self._metrics)
