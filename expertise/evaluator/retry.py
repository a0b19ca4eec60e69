"""Retry combinator for evaluator calls.

Policy: a fixed number of attempts with a delay between them. The delay
is multiplied by backoff_multiplier after each failed attempt; the default
multiplier of 1.0 gives a fixed delay. When every attempt fails, the LAST
error is raised unchanged.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from expertise.evaluator.errors import TransientEvaluatorError

__all__ = ["RetryPolicy", "with_retries"]

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to try and how long to wait in between.

    Attributes:
        max_attempts: Total attempts, including the first.
        delay_seconds: Wait before the second attempt.
        backoff_multiplier: Factor applied to the delay after each retry.
    """

    max_attempts: int = 3
    delay_seconds: float = 2.0
    backoff_multiplier: float = 1.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.delay_seconds < 0:
            raise ValueError("delay_seconds cannot be negative")

    def delay_before(self, attempt: int) -> float:
        """Delay to wait before the given 1-indexed attempt (>= 2)."""
        return self.delay_seconds * (self.backoff_multiplier ** (attempt - 2))


async def with_retries(
    func: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    retryable_errors: tuple[type[Exception], ...] = (TransientEvaluatorError,),
    *,
    label: str = "evaluator call",
) -> T:
    """Execute func until it succeeds or the policy's attempts run out.

    Args:
        func: Async function to execute (no arguments).
        policy: Attempt count and delay.
        retryable_errors: Error types that trigger another attempt. Anything
            else propagates immediately.
        label: Operation name used in retry log lines.

    Returns:
        Result from the first successful attempt.

    Raises:
        Exception: The error from the final attempt once all are exhausted,
            or the first non-retryable error.
        RuntimeError: If the retry loop exits unexpectedly without error or result.
    """
    last_error: Exception | None = None

    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await func()
        except retryable_errors as e:
            last_error = e

            if attempt == policy.max_attempts:
                break

            delay = policy.delay_before(attempt + 1)
            logger.warning(
                "%s failed (attempt %d/%d): %s. Retrying in %.2fs",
                label,
                attempt,
                policy.max_attempts,
                e,
                delay,
            )
            await asyncio.sleep(delay)

    if last_error is not None:
        logger.error(
            "%s failed after %d attempts: %s",
            label,
            policy.max_attempts,
            last_error,
        )
        raise last_error
    raise RuntimeError("Retry loop exited without error or result")
