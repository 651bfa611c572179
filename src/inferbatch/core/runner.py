"""Bounded concurrent fan-out over a sequence of work items.

A fixed pool of worker tasks pulls items from a shared iterator and
hands each one to the caller's async handler, so no more than
``max_concurrency`` handlers are ever in flight.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine, Iterable

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class RunnerConfig:
    """Tuning knobs for the runner."""

    max_concurrency: int = 1

    def __post_init__(self) -> None:
        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")


class BoundedConcurrentRunner(Generic[T, R]):
    """Runs *handler* for every item with at most ``max_concurrency`` in flight.

    Items may complete in any order.  When a handler raises, workers stop
    pulling new items, in-flight handlers are allowed to finish, and the
    first exception is re-raised from :meth:`run`.
    """

    def __init__(
        self,
        handler: Callable[[T], Coroutine[Any, Any, R]],
        config: RunnerConfig | None = None,
    ) -> None:
        self._handler = handler
        self._config = config or RunnerConfig()
        self._first_error: BaseException | None = None
        self._results: list[R] = []

    async def run(self, items: Iterable[T]) -> list[R]:
        """Process *items* and return the handler results in completion order."""
        self._first_error = None
        self._results = []
        source = iter(items)

        workers = [
            asyncio.create_task(self._worker(source, idx))
            for idx in range(self._config.max_concurrency)
        ]
        await asyncio.gather(*workers)

        if self._first_error is not None:
            raise self._first_error
        return self._results

    async def _worker(self, source: Any, idx: int) -> None:
        # All workers share one iterator; next() never suspends, so each
        # item is handed to exactly one worker.
        for item in source:
            if self._first_error is not None:
                return
            try:
                self._results.append(await self._handler(item))
            except Exception as exc:
                if self._first_error is None:
                    logger.error("Worker %d stopping the run: %s", idx, exc)
                    self._first_error = exc
                return
