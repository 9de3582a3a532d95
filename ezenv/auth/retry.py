"""Wait-then-retry primitive with exponential backoff."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]

logger = logging.getLogger(__name__)


@dataclass
class RetryState:
    """Position in a retry sequence.

    ``attempt`` is 1-based. ``delay`` is the wait before the next attempt:
    ``base_delay * 2 ** (attempt - 1)``.
    """

    attempt: int = 1
    base_delay: float = 1.0

    @property
    def delay(self) -> float:
        return self.base_delay * (2 ** (self.attempt - 1))

    def advance(self) -> RetryState:
        return RetryState(attempt=self.attempt + 1, base_delay=self.base_delay)


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    *,
    is_retryable: Callable[[BaseException], bool],
    max_attempts: int = 3,
    base_delay: float = 1.0,
    sleep: Sleep = asyncio.sleep,
) -> T:
    """Run ``operation`` until it succeeds or fails in a non-retryable way.

    Non-retryable exceptions propagate immediately. When the last attempt
    fails with a retryable exception, that exception propagates.
    """
    state = RetryState(base_delay=base_delay)
    while True:
        try:
            return await operation()
        except Exception as exc:
            if not is_retryable(exc) or state.attempt >= max_attempts:
                raise
            logger.debug(
                "Attempt %d/%d failed (%s), retrying in %.1fs",
                state.attempt,
                max_attempts,
                exc,
                state.delay,
            )
            await sleep(state.delay)
            state = state.advance()
