"""
Retry policy with exponential backoff.

Attempts are numbered from 0; a policy with ``max_retries`` makes at most
``max_retries + 1`` attempts and sleeps ``delay(attempt)`` after every
failed attempt except the last.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff parameters, delays in seconds."""
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")

    @classmethod
    def from_config(cls, config) -> "RetryPolicy":
        """Build from a ``RetryConfig``."""
        return cls(
            max_retries=config.max_retries,
            base_delay=config.base_delay,
            max_delay=config.max_delay,
        )

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay(self, attempt: int) -> float:
        """Backoff before the attempt following ``attempt``."""
        return min(self.base_delay * (2 ** attempt), self.max_delay)

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        is_retryable: Optional[Callable[[Exception], bool]] = None,
    ) -> T:
        """Run ``operation`` until it succeeds or attempts run out.

        Backoff awaits ``sleep`` so only the calling task is delayed.

        Args:
            operation: Zero-argument coroutine factory, called once per attempt
            sleep: Awaitable sleep, injectable for tests
            is_retryable: Predicate; a False result ends the chain at once

        Returns:
            The first successful result

        Raises:
            Exception: The error of the final failed attempt
        """
        for attempt in range(self.max_attempts):
            try:
                return await operation()
            except Exception as e:
                final = attempt == self.max_retries
                if final or (is_retryable is not None and not is_retryable(e)):
                    raise

                delay = self.delay(attempt)
                logger.warning(
                    "Operation failed, retrying (attempt %d/%d, delay %.2fs): %s",
                    attempt + 1, self.max_attempts, delay, e,
                )
                await sleep(delay)

        # Unreachable: the loop either returns or raises
        raise RuntimeError("retry loop exited without a result")
