"""Shared test fixtures."""

from __future__ import annotations

import asyncio
import json

import pytest

from inferbatch.clients.base import InferenceClient, InferenceError
from inferbatch.core.checkpoint import Checkpoint, InMemoryCheckpointStore
from inferbatch.core.models import CheckpointState, InferenceResponse, TokenUsage
from inferbatch.patterns.rate_limiter import RateLimiter, RateLimiterConfig
from inferbatch.patterns.retry import RetryPolicy

SONG_JSON = json.dumps({"artist": "Queen", "genre": "rock", "track_title": "Bohemian Rhapsody"})


class FakeClient(InferenceClient):
    """Scriptable inference client that records every prompt it sees.

    ``fail_times`` makes the first N calls raise; ``text`` is returned
    afterwards.  ``in_flight``/``max_in_flight`` track concurrency.
    """

    def __init__(
        self,
        text: str = SONG_JSON,
        usage: TokenUsage | None = None,
        fail_times: int = 0,
        delay: float = 0.0,
    ) -> None:
        self.text = text
        self.usage = usage or TokenUsage(prompt_tokens=10, completion_tokens=5, total_tokens=15)
        self.fail_times = fail_times
        self.delay = delay
        self.prompts: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    async def infer(self, prompt: str) -> InferenceResponse:
        self.prompts.append(prompt)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if len(self.prompts) <= self.fail_times:
                raise InferenceError("service unavailable")
            return InferenceResponse(text=self.text, usage=self.usage)
        finally:
            self.in_flight -= 1

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture()
def fake_client() -> FakeClient:
    return FakeClient()


@pytest.fixture()
def memory_store() -> InMemoryCheckpointStore:
    return InMemoryCheckpointStore(CheckpointState.empty())


@pytest.fixture()
def checkpoint(memory_store: InMemoryCheckpointStore) -> Checkpoint:
    return Checkpoint.load(memory_store)


@pytest.fixture()
def unbounded_limiter() -> RateLimiter:
    return RateLimiter(RateLimiterConfig(max_requests=10_000))


@pytest.fixture()
def fast_retry() -> RetryPolicy:
    return RetryPolicy(max_attempts=3, base_delay_seconds=0.001, jitter=False)
