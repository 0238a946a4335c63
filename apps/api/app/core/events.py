from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any


logger = logging.getLogger("app.events")


@dataclass(frozen=True)
class InternalEvent:
    name: str
    payload: dict[str, Any]


EventHandler = Callable[[InternalEvent], None]


class InProcessEventBus:
    """Synchronous fan-out to in-process subscribers.

    Events are published after the writing transaction has committed, so a
    failing subscriber is logged and skipped rather than failing the caller.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_name: str, handler: EventHandler) -> None:
        if handler not in self._subscribers[event_name]:
            self._subscribers[event_name].append(handler)

    def unsubscribe(self, event_name: str, handler: EventHandler) -> None:
        if handler in self._subscribers.get(event_name, []):
            self._subscribers[event_name].remove(handler)

    def subscribers(self, event_name: str) -> list[EventHandler]:
        return list(self._subscribers.get(event_name, []))

    def publish(self, event_name: str, payload: dict[str, Any]) -> int:
        event = InternalEvent(name=event_name, payload=payload)
        delivered = 0
        for handler in self.subscribers(event_name):
            try:
                handler(event)
            except Exception:
                logger.exception("event.handler_failed", extra={"event_name": event_name})
                continue
            delivered += 1
        return delivered


event_bus = InProcessEventBus()
