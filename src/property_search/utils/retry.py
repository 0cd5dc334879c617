"""Retry policy shared by the HTTP client, search pagination and price history."""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from property_search.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how patiently to retry an async operation.

    Attributes:
        max_retries: Retries after the first attempt (0 = try once).
        delay: Seconds to wait before a retry. With ``exponential`` the wait
            before retry ``n`` (0-based) is ``delay * 2**n``.
        exponential: Grow the delay exponentially instead of keeping it fixed.
    """

    max_retries: int
    delay: float = 0.0
    exponential: bool = False

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.delay < 0:
            raise ValueError("delay must be >= 0")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_for(self, retry_index: int) -> float:
        """Seconds to sleep before retry number ``retry_index`` (0-based)."""
        if self.exponential:
            return self.delay * (2**retry_index)
        return self.delay

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        retry_on: tuple[type[BaseException], ...],
        event: str = "retrying",
        **log_context: Any,
    ) -> T:
        """Await ``operation()`` until it succeeds or retries run out.

        Only exceptions matching ``retry_on`` are retried; anything else
        propagates immediately. When retries are exhausted the last error is
        re-raised unchanged.

        Args:
            operation: Zero-argument callable producing a fresh awaitable per attempt.
            retry_on: Exception types worth retrying.
            event: Log event name for retry warnings.
            **log_context: Extra fields for the log events.
        """
        for attempt in range(self.max_attempts):
            try:
                return await operation()
            except retry_on as e:
                attempts_left = self.max_retries - attempt
                if attempts_left == 0:
                    logger.warning(
                        "retries_exhausted",
                        attempts=self.max_attempts,
                        error=str(e),
                        **log_context,
                    )
                    raise
                wait = self.delay_for(attempt)
                logger.warning(
                    event,
                    error=str(e),
                    attempts_left=attempts_left,
                    delay=round(wait, 2),
                    **log_context,
                )
                await asyncio.sleep(wait)
        raise AssertionError("unreachable")  # pragma: no cover
