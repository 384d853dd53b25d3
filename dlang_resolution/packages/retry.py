"""Bounded retry with exponential backoff for remote operations."""

import asyncio
import logging
import random
from collections.abc import Awaitable
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

from ..errors import NetworkError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Retry configuration."""

    max_retries: int = 3
    initial_delay: float = 0.5  # seconds
    max_delay: float = 8.0  # seconds
    exponential_base: float = 2.0
    jitter: bool = True

    def delay_for(self, attempt: int) -> float:
        delay = min(self.initial_delay * (self.exponential_base**attempt), self.max_delay)
        if self.jitter:
            delay *= 0.5 + random.random() * 0.5
        return delay


async def with_retry(operation: Callable[[], Awaitable[T]], config: RetryConfig, *, what: str) -> T:
    """Run ``operation``, retrying transient NetworkErrors.

    Non-transient errors (auth failures, unknown refs, config problems)
    propagate immediately.

    Raises:
        NetworkError: Retries exhausted, or a non-transient network failure
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except NetworkError as e:
            if not e.transient or attempt >= config.max_retries:
                raise
            delay = config.delay_for(attempt)
            attempt += 1
            logger.info(f"{what} failed ({e.message}), retry {attempt}/{config.max_retries} in {delay:.2f}s")
            await asyncio.sleep(delay)
