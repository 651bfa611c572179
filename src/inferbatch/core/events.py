"""Async event bus for per-item lifecycle notifications.

The pipeline publishes one terminal event per item; progress reporting
and run summaries subscribe to them instead of being wired into the
pipeline itself.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Lifecycle events emitted by the item pipeline."""

    ITEM_CACHED = "item.cached"
    ITEM_COMMITTED = "item.committed"
    ITEM_FETCH_FAILED = "item.fetch_failed"
    ITEM_PARSE_FAILED = "item.parse_failed"


@dataclass(frozen=True)
class Event:
    """An immutable event carrying contextual payload."""

    event_type: EventType
    payload: dict[str, Any] = field(default_factory=dict)


# Subscriber callable type
Subscriber = Callable[[Event], Coroutine[Any, Any, None]]


class EventBus:
    """In-process async event bus.

    Subscribers are invoked concurrently via :func:`asyncio.gather` when
    an event is published.  A failing subscriber does **not** prevent
    other subscribers from executing.
    """

    def __init__(self) -> None:
        self._subscribers: dict[EventType, list[Subscriber]] = defaultdict(list)

    def subscribe(self, event_type: EventType, handler: Subscriber) -> None:
        """Register *handler* for *event_type*."""
        self._subscribers[event_type].append(handler)

    def subscribe_all(self, handler: Subscriber) -> None:
        for event_type in EventType:
            self.subscribe(event_type, handler)

    async def publish(self, event: Event) -> None:
        """Dispatch *event* to all matching subscribers concurrently."""
        handlers = self._subscribers.get(event.event_type, [])
        if not handlers:
            return

        results = await asyncio.gather(*(h(event) for h in handlers), return_exceptions=True)
        for idx, result in enumerate(results):
            if isinstance(result, BaseException):
                logger.error(
                    "Subscriber %s raised %s for event %s",
                    handlers[idx].__qualname__,
                    result,
                    event.event_type.value,
                )
