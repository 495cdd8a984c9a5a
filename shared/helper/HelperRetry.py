"""Retry helper used for every non-streaming network call."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

T = TypeVar("T")


def is_retryable(error: BaseException) -> bool:
    """Default predicate: retry errors that declare themselves retryable."""
    return bool(getattr(error, "retryable", False))


@dataclass(frozen=True)
class RetryPolicy:
    """
    Attributes:
        max_attempts (int): Total number of attempts, including the first one. 1 disables retries.
        backoff_ms (int): Delay before the second attempt. Doubles on each further attempt.
        retryable (Callable): Decides whether an error is worth another attempt.
    """

    max_attempts: int = 1
    backoff_ms: int = 200
    retryable: Callable[[BaseException], bool] = field(default=is_retryable)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("RetryPolicy.max_attempts must be >= 1, got %d" % self.max_attempts)
        if self.backoff_ms < 0:
            raise ValueError("RetryPolicy.backoff_ms must be >= 0, got %d" % self.backoff_ms)

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after the given (1-based) failed attempt."""
        return self.backoff_ms * (2 ** (attempt - 1)) / 1000.0


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    logger: logging.Logger | None = None,
    description: str = "operation",
) -> T:
    """Run ``operation`` until it succeeds, fails with a non-retryable error, or attempts run out.

    Args:
        operation: Zero-argument coroutine factory. Called once per attempt.
        policy: Attempt count, backoff and retry predicate.
        logger: Optional logger for retry warnings.
        description: Label used in log lines.

    Returns:
        The result of the first successful attempt.

    Raises:
        The last error raised by ``operation``.
    """
    attempt = 1
    while True:
        try:
            return await operation()
        except Exception as e:
            if attempt >= policy.max_attempts or not policy.retryable(e):
                raise
            delay = policy.delay_for(attempt)
            if logger is not None:
                logger.warning(
                    "%s failed (attempt %d of %d): %s. Retrying in %.2fs.",
                    description,
                    attempt,
                    policy.max_attempts,
                    e,
                    delay,
                )
            await asyncio.sleep(delay)
            attempt += 1
