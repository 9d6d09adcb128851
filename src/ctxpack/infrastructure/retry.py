"""Bounded exponential-backoff retry for async external calls."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry behavior for transient failures.

    Attributes:
        max_retries: Retries after the first attempt (0 = try once)
        base_delay: Delay in seconds before the first retry
        max_delay: Upper bound for any single delay
        exponential_base: Growth factor between consecutive delays
    """

    max_retries: int = 2
    base_delay: float = 0.1
    max_delay: float = 1.0
    exponential_base: float = 2.0

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (0-based)."""
        return min(self.base_delay * (self.exponential_base**attempt), self.max_delay)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    call_timeout: Optional[float] = None,
    description: str = "operation",
) -> T:
    """
    Run ``operation`` with exponential backoff.

    Each attempt is bounded by ``call_timeout`` when given; a timed-out
    attempt counts as a retryable failure. Cancellation is never retried.

    Raises:
        The last error once all attempts are exhausted, or any error not
        listed in ``retry_on`` immediately.
    """
    attempts = policy.max_retries + 1
    for attempt in range(attempts):
        try:
            if call_timeout is not None:
                return await asyncio.wait_for(operation(), timeout=call_timeout)
            return await operation()
        except (asyncio.TimeoutError, *retry_on) as e:
            if attempt == attempts - 1:
                logger.error(f"{description} failed after {attempts} attempt(s): {e!r}")
                raise
            delay = policy.delay_for(attempt)
            logger.warning(
                f"{description} attempt {attempt + 1} failed: {e!r}. Retrying in {delay:.2f}s...",
                extra={"attempt": attempt + 1, "delay": delay},
            )
            await asyncio.sleep(delay)

    raise RuntimeError(f"Unexpected retry loop exit for {description}")
