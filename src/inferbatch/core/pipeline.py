"""Per-item processing pipeline.

Each work item goes through four stages, stopping at the first that
applies:

1. **Cache check** — items already in the checkpoint are skipped
   without any network traffic.
2. **Fetch** — the prompt is sent to the inference client under the
   retry policy; every attempt first takes a rate-limiter token.
3. **Parse** — the response text is turned into a result record.
4. **Commit** — usage counters and the record are written to the
   checkpoint, which is persisted before the next commit may start.

Fetch and parse failures are logged and the item is left for a future
run.  Only a failed commit escapes, because losing a commit would break
resume.

Two workers handling the same key would both pass the cache check and
pay for the same request twice, so the pipeline serialises work per key:
a duplicate waits for the first to finish and then hits the cache.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

from inferbatch.core.events import Event, EventBus, EventType
from inferbatch.core.models import ItemOutcome
from inferbatch.core.parsing import ResponseParseError, parse_json_record
from inferbatch.patterns.retry import RetryPolicy, retry_with_backoff
from inferbatch.pricing import ModelPricing, estimate_cost

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    from inferbatch.clients.base import InferenceClient
    from inferbatch.core.checkpoint import Checkpoint
    from inferbatch.core.models import InferenceResponse
    from inferbatch.core.parsing import ResponseParser
    from inferbatch.patterns.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


class ItemPipeline:
    """Callable handler that drives one work item to a terminal outcome."""

    def __init__(
        self,
        checkpoint: Checkpoint,
        client: InferenceClient,
        rate_limiter: RateLimiter,
        prompt_builder: Callable[[str], str],
        parser: ResponseParser = parse_json_record,
        retry_policy: RetryPolicy | None = None,
        event_bus: EventBus | None = None,
        pricing: ModelPricing | None = None,
    ) -> None:
        self._checkpoint = checkpoint
        self._client = client
        self._rate_limiter = rate_limiter
        self._prompt_builder = prompt_builder
        self._parser = parser
        self._retry_policy = retry_policy or RetryPolicy()
        self._event_bus = event_bus or EventBus()
        self._pricing = pricing or ModelPricing()
        self._key_locks: dict[str, asyncio.Lock] = {}
        self._key_refs: dict[str, int] = {}

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus

    async def __call__(self, item: str) -> ItemOutcome:
        async with self._claim(item):
            outcome = await self._process(item)
        await self._event_bus.publish(Event(_OUTCOME_EVENTS[outcome], {"item": item}))
        return outcome

    async def _process(self, item: str) -> ItemOutcome:
        logger.info("Processing line: %s", item, extra={"item": item})

        if await self._checkpoint.contains(item):
            logger.info("Skipping due to cache", extra={"item": item})
            return ItemOutcome.CACHED

        prompt = self._prompt_builder(item)
        try:
            response = await retry_with_backoff(self._fetch, self._retry_policy, prompt)
        except Exception as exc:
            logger.error(
                "Failed to get response after %d attempts, skipping: %s",
                self._retry_policy.max_attempts,
                exc,
                extra={"item": item, "error": repr(exc)},
            )
            return ItemOutcome.FETCH_FAILED

        try:
            record = self._parser(response.text)
        except ResponseParseError as exc:
            logger.error(
                "Failed to parse response, skipping: %s",
                exc,
                extra={"item": item, "response": response.text},
            )
            return ItemOutcome.PARSE_FAILED

        logger.info("result: %s,%s", item, record.model_dump_json(), extra={"item": item})

        # CheckpointPersistError propagates to the runner.
        counters = await self._checkpoint.commit(item, record, response.usage)

        cost = estimate_cost(counters, self._pricing)
        logger.info(
            "total_completion_tokens = %d total_prompt_tokens = %d total_tokens = %d",
            counters.total_completion_tokens,
            counters.total_prompt_tokens,
            counters.total_tokens,
        )
        logger.info(
            "total_input_cost = $%.4f total_output_cost = $%.4f total_cost = $%.4f",
            cost.input_cost,
            cost.output_cost,
            cost.total_cost,
        )
        return ItemOutcome.COMMITTED

    async def _fetch(self, prompt: str) -> InferenceResponse:
        await self._rate_limiter.acquire()
        return await self._client.infer(prompt)

    @contextlib.asynccontextmanager
    async def _claim(self, key: str) -> AsyncIterator[None]:
        lock = self._key_locks.setdefault(key, asyncio.Lock())
        self._key_refs[key] = self._key_refs.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._key_refs[key] -= 1
            if self._key_refs[key] == 0:
                del self._key_refs[key]
                del self._key_locks[key]


_OUTCOME_EVENTS = {
    ItemOutcome.CACHED: EventType.ITEM_CACHED,
    ItemOutcome.COMMITTED: EventType.ITEM_COMMITTED,
    ItemOutcome.FETCH_FAILED: EventType.ITEM_FETCH_FAILED,
    ItemOutcome.PARSE_FAILED: EventType.ITEM_PARSE_FAILED,
}
