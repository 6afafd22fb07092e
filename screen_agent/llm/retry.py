"""
Exponential backoff for a single endpoint.

Delays run initial_delay, initial_delay * multiplier, ... capped at max_delay, and are
only taken between attempts. Errors that is_retryable_error rejects propagate at once.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from screen_agent.contracts.errors import is_retryable_error

logger = logging.getLogger(__name__)

T = TypeVar("T")
SleepFn = Callable[[float], Awaitable[None]]


class RetryConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_retries: int = Field(default=3, ge=1)
    initial_delay: float = Field(default=1.0, ge=0)
    max_delay: float = Field(default=10.0, ge=0)
    multiplier: float = Field(default=2.0, ge=1.0)

    def delay_for(self, attempt: int) -> float:
        """Delay after the given zero-based failed attempt."""
        return min(self.initial_delay * (self.multiplier ** attempt), self.max_delay)


async def call_with_retry(
    func: Callable[[], Awaitable[T]],
    config: Optional[RetryConfig] = None,
    sleep: Optional[SleepFn] = None,
    label: str = "",
) -> T:
    cfg = config or RetryConfig()
    sleep_fn = sleep or asyncio.sleep
    last_error: Optional[BaseException] = None

    for attempt in range(cfg.max_retries):
        try:
            return await func()
        except Exception as exc:
            last_error = exc
            if not is_retryable_error(exc):
                raise
            if attempt < cfg.max_retries - 1:
                delay = cfg.delay_for(attempt)
                logger.warning(
                    "Request failed%s (attempt %s/%s), retrying in %.1fs: %s",
                    f" [{label}]" if label else "",
                    attempt + 1,
                    cfg.max_retries,
                    delay,
                    exc,
                )
                await sleep_fn(delay)

    assert last_error is not None
    raise last_error


__all__ = ["RetryConfig", "SleepFn", "call_with_retry"]
