"""Retry with exponential backoff and full jitter.

Provides a composable :func:`retry_with_backoff` helper that wraps any
async callable, re-invoking it on failure up to a bounded number of
attempts.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Immutable configuration for retry behaviour.

    Attributes:
        max_attempts: Total number of invocations, including the first.
        base_delay_seconds: Delay before the second attempt, before jitter.
        max_delay_seconds: Upper bound on any single computed delay.
        exponential_base: Growth factor between consecutive delays.
        jitter: Draw each delay uniformly from ``[0, computed_delay]``.
        retry_on: Exception types considered retryable.  Anything else
            propagates immediately.
    """

    max_attempts: int = 3
    base_delay_seconds: float = 0.1
    max_delay_seconds: float = 30.0
    exponential_base: float = 2.0
    jitter: bool = True
    retry_on: tuple[type[BaseException], ...] = (Exception,)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    def delay_for(self, attempt: int) -> float:
        """Return the backoff before the attempt following *attempt* (0-indexed)."""
        delay = min(
            self.base_delay_seconds * (self.exponential_base**attempt),
            self.max_delay_seconds,
        )
        if self.jitter:
            delay = random.uniform(0.0, delay)
        return delay


async def retry_with_backoff(
    func: Callable[..., Coroutine[Any, Any, Any]],
    policy: RetryPolicy | None = None,
    *args: Any,
    **kwargs: Any,
) -> Any:
    """Execute *func* with exponential-backoff retries.

    After failed attempt ``k`` the helper sleeps ``policy.delay_for(k)``
    and tries again.  Once *max_attempts* invocations have failed the
    last exception is re-raised.
    """
    policy = policy or RetryPolicy()
    last_exc: BaseException | None = None

    for attempt in range(policy.max_attempts):
        try:
            return await func(*args, **kwargs)
        except policy.retry_on as exc:
            last_exc = exc
            if attempt == policy.max_attempts - 1:
                break
            delay = policy.delay_for(attempt)
            logger.warning(
                "Attempt %d/%d failed (%s), retrying in %.2fs",
                attempt + 1,
                policy.max_attempts,
                exc,
                delay,
            )
            await asyncio.sleep(delay)

    raise last_exc  # type: ignore[misc]
