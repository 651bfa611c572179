"""Fixed-window rate limiter for outbound inference requests.

Caps the number of requests the whole process issues per window so the
remote service never sees more than its quota, however many workers are
running.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimiterConfig:
    """Window parameters."""

    max_requests: int = 30
    period_seconds: float = 1.0

    def __post_init__(self) -> None:
        if self.max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if self.period_seconds <= 0:
            raise ValueError("period_seconds must be > 0")


class RateLimiter:
    """Async-safe fixed-window rate limiter.

    The bucket holds :pyattr:`RateLimiterConfig.max_requests` tokens and
    is refilled in full once the current window has elapsed.  A window
    opens on the first acquisition after the previous one expired.
    Callers that find the bucket empty sleep until the window closes and
    then recheck; tokens are not handed out in call order.
    """

    def __init__(self, config: RateLimiterConfig | None = None) -> None:
        self._config = config or RateLimiterConfig()
        self._tokens: int = self._config.max_requests
        self._window_start: float | None = None
        self._lock = asyncio.Lock()

    @property
    def config(self) -> RateLimiterConfig:
        return self._config

    @property
    def available_tokens(self) -> int:
        self._refill(time.monotonic())
        return self._tokens

    async def acquire(self) -> None:
        """Block until a request token is available, then consume it."""
        while True:
            async with self._lock:
                now = time.monotonic()
                self._refill(now)
                if self._tokens > 0:
                    if self._window_start is None:
                        self._window_start = now
                    self._tokens -= 1
                    return
                wait = self._window_start + self._config.period_seconds - now  # type: ignore[operator]
            # Sleep outside the lock until the window rolls over.
            await asyncio.sleep(max(wait, 0.0))

    def _refill(self, now: float) -> None:
        if self._window_start is None:
            return
        if now - self._window_start >= self._config.period_seconds:
            self._tokens = self._config.max_requests
            self._window_start = None
