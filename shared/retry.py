"""
Retry mechanism for resilient operations.
"""

import asyncio
import random
from typing import Optional, Callable, Awaitable, TypeVar

from shared.logging import get_logger


T = TypeVar("T")


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(self,
                 max_attempts: int = 3,
                 base_delay: float = 0.5,
                 max_delay: float = 60.0,
                 exponential_base: float = 2.0,
                 jitter: bool = False,
                 backoff_strategy: str = "fixed"):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.backoff_strategy = backoff_strategy


def is_retryable_error(exc: BaseException) -> bool:
    """Client errors (4xx) are permanent; everything else may be transient."""
    status_code = getattr(exc, "status_code", None)
    if isinstance(status_code, int) and 400 <= status_code < 500:
        return False
    return True


async def retry_async(func: Callable[[], Awaitable[T]],
                      config: Optional[RetryConfig] = None,
                      is_retryable: Callable[[BaseException], bool] = is_retryable_error,
                      name: Optional[str] = None) -> T:
    """Call ``func`` until it succeeds, fails permanently, or attempts run out.

    The exception raised on failure is the one from the last attempt,
    unchanged, so callers can inspect it directly.
    """
    if config is None:
        config = RetryConfig()

    label = name or getattr(func, "__name__", "call")
    logger = get_logger(f"retry.{label}")

    for attempt in range(1, config.max_attempts + 1):
        try:
            result = await func()
        except Exception as e:
            if not is_retryable(e):
                logger.info(
                    "Non-retryable failure, giving up",
                    attempt=attempt,
                    function=label,
                    error=str(e)
                )
                raise

            if attempt == config.max_attempts:
                logger.error(
                    "All retry attempts exhausted",
                    attempt=attempt,
                    max_attempts=config.max_attempts,
                    function=label,
                    error=str(e)
                )
                raise

            delay = _calculate_delay(attempt, config)

            logger.warning(
                "Retry attempt failed, waiting before next attempt",
                attempt=attempt,
                delay=delay,
                function=label,
                error=str(e)
            )

            await asyncio.sleep(delay)
            continue

        if attempt > 1:
            logger.info(
                "Retry succeeded",
                attempt=attempt,
                function=label
            )
        return result

    # max_attempts >= 1 is enforced by RetryConfig
    raise AssertionError("unreachable")


def _calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Calculate delay between retry attempts."""
    if config.backoff_strategy == "exponential":
        delay = config.base_delay * (config.exponential_base ** (attempt - 1))
    elif config.backoff_strategy == "linear":
        delay = config.base_delay * attempt
    else:
        delay = config.base_delay

    # Apply max delay cap
    delay = min(delay, config.max_delay)

    if config.jitter:
        jitter_amount = delay * 0.1  # 10% jitter
        delay += random.uniform(-jitter_amount, jitter_amount)

    return max(0.0, delay)
