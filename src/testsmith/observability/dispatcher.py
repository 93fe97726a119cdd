"""Per-request event collector with fan-out to handlers."""

from __future__ import annotations

import logging

from testsmith.observability.events import TraceEvent
from testsmith.observability.handlers import TraceHandler

logger = logging.getLogger(__name__)


class EventCollector:
    """Fan-out collector -- emits events to all registered handlers.

    Created by the caller and passed into each generation request;
    nothing is shared between collectors. Best-effort delivery:
    handler errors are logged, never raised.
    """

    def __init__(self, *handlers: TraceHandler) -> None:
        self._handlers: list[TraceHandler] = []
        for handler in handlers:
            self.register(handler)

    def register(self, handler: TraceHandler) -> None:
        """Register a handler. Duplicates (by name) are ignored."""
        if not any(h.name == handler.name for h in self._handlers):
            self._handlers.append(handler)

    async def emit(self, event: TraceEvent) -> None:
        """Best-effort fan-out to all registered handlers."""
        for handler in self._handlers:
            try:
                await handler.handle(event)
            except Exception:
                logger.warning(
                    "event=trace_handler_error handler=%s",
                    handler.name,
                )

    def get_handler(self, name: str) -> TraceHandler | None:
        for handler in self._handlers:
            if handler.name == name:
                return handler
        return None

    @property
    def handler_count(self) -> int:
        return len(self._handlers)
