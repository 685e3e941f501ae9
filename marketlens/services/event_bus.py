from __future__ import annotations

from collections import defaultdict
from dataclasses import fields
from typing import Callable, TypeVar

from loguru import logger

from marketlens.models.events import AppEvent
from marketlens.services import logger as log_service

E = TypeVar("E", bound=AppEvent)
Handler = Callable[[E], object]


class EventBus:
    """Publish/subscribe channel keyed by event class.

    Delivery is synchronous and in subscription order, so a state mutation and
    the notification that follows it happen without an await in between.
    """

    def __init__(self) -> None:
        self._handlers: dict[type, list[Callable]] = defaultdict(list)

    def subscribe(self, event_cls: type[E], handler: Handler) -> Callable[[], None]:
        self._handlers[event_cls].append(handler)

        def _unsubscribe() -> None:
            self.unsubscribe(event_cls, handler)

        return _unsubscribe

    def unsubscribe(self, event_cls: type[E], handler: Handler) -> None:
        handlers = self._handlers.get(event_cls)
        if not handlers:
            return
        self._handlers[event_cls] = [h for h in handlers if h is not handler]

    def emit(self, event: AppEvent) -> None:
        handlers = list(self._handlers.get(type(event), ()))
        log_service.log_event(event.event.value, len(handlers), **_scalar_fields(event))
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception(f"Subscriber failed for {event.event.value}")

    def subscriber_count(self, event_cls: type) -> int:
        return len(self._handlers.get(event_cls, ()))


def _scalar_fields(event: AppEvent) -> dict[str, object]:
    # Collections (job and document lists) are left out of the trace.
    values = {f.name: getattr(event, f.name) for f in fields(event)}
    return {k: v for k, v in values.items() if isinstance(v, (str, int)) or v is None}
