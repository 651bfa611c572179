"""Run-level observability: outcome tallies built from pipeline events.

Usage:
    from inferbatch.observability import RunReport

    report = RunReport()
    report.attach(pipeline.event_bus)
    await runner.run(lines)
    logger.info(report.summary())
"""

from __future__ import annotations

from collections import Counter
from typing import TYPE_CHECKING

from inferbatch.core.events import EventType

if TYPE_CHECKING:
    from inferbatch.core.events import Event, EventBus


class RunReport:
    """Counts terminal item events for the end-of-run summary."""

    def __init__(self) -> None:
        self._counts: Counter[EventType] = Counter()
        self._failed_items: list[str] = []

    def attach(self, bus: EventBus) -> None:
        bus.subscribe_all(self._on_event)

    async def _on_event(self, event: Event) -> None:
        self._counts[event.event_type] += 1
        if event.event_type in (EventType.ITEM_FETCH_FAILED, EventType.ITEM_PARSE_FAILED):
            self._failed_items.append(event.payload.get("item", ""))

    @property
    def cached(self) -> int:
        return self._counts[EventType.ITEM_CACHED]

    @property
    def committed(self) -> int:
        return self._counts[EventType.ITEM_COMMITTED]

    @property
    def fetch_failed(self) -> int:
        return self._counts[EventType.ITEM_FETCH_FAILED]

    @property
    def parse_failed(self) -> int:
        return self._counts[EventType.ITEM_PARSE_FAILED]

    @property
    def total(self) -> int:
        return sum(self._counts.values())

    @property
    def failed_items(self) -> list[str]:
        return list(self._failed_items)

    def summary(self) -> dict[str, int]:
        return {
            "total": self.total,
            "committed": self.committed,
            "cached": self.cached,
            "fetch_failed": self.fetch_failed,
            "parse_failed": self.parse_failed,
        }
