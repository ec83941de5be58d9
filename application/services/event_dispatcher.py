"""
Post-commit domain event dispatch.

Handlers are registered per event class and run only after the unit of work
has committed. Each handler is isolated: a failure is logged and the rest
still run, and nothing propagates back into the state transition.
"""
from __future__ import annotations

from collections import defaultdict
from typing import Any, Awaitable, Callable, Iterable

from core.logging_config import get_logger


logger = get_logger(__name__)

EventHandler = Callable[[Any], Awaitable[None]]


class PaymentEventDispatcher:
    def __init__(self) -> None:
        self._handlers: dict[type, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_type: type, handler: EventHandler) -> None:
        self._handlers[event_type].append(handler)

    def handlers_for(self, event: Any) -> list[EventHandler]:
        matched: list[EventHandler] = []
        for event_type, handlers in self._handlers.items():
            if isinstance(event, event_type):
                matched.extend(handlers)
        return matched

    async def dispatch(self, events: Iterable[Any]) -> None:
        for event in events:
            for handler in self.handlers_for(event):
                try:
                    await handler(event)
                except Exception as exc:
                    logger.error(
                        "payment_event_handler_failed",
                        event_type=type(event).__name__,
                        handler=getattr(handler, "__qualname__", repr(handler)),
                        payment_id=getattr(event, "payment_id", None),
                        error=str(exc),
                        exc_info=True,
                    )
