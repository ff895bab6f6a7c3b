"""
Retry utilities with exponential backoff for marketplace API calls.

Only transient failures are retried: rate limiting, 5xx responses, dropped
connections and timeouts. Auth rejections and 404s surface immediately.
"""
import asyncio
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Tuple, Type

import aiohttp

from app.exceptions import UpstreamUnavailable
from app.utils.logger import log


@dataclass
class RetryStats:
    """Tracks retry statistics across the calls of one connector."""
    retries: int = 0
    total_delay_seconds: float = 0.0
    last_error: Optional[str] = None
    errors: List[str] = field(default_factory=list)

    def record_retry(self, error: Exception, delay: float):
        self.retries += 1
        self.total_delay_seconds += delay
        error_str = f"{type(error).__name__}: {str(error)}"
        self.last_error = error_str
        self.errors.append(error_str)

    def to_dict(self) -> dict:
        """Convert to dictionary for logging/storage."""
        return {
            "retries": self.retries,
            "total_delay_seconds": round(self.total_delay_seconds, 2),
            "last_error": self.last_error,
            "errors": self.errors[-5:]  # Cap at 5 errors
        }


# Default retryable exceptions (network/API errors)
DEFAULT_RETRYABLE_EXCEPTIONS: Tuple[Type[Exception], ...] = (
    UpstreamUnavailable,
    aiohttp.ClientConnectionError,
    asyncio.TimeoutError,
    ConnectionError,
)


def calculate_backoff(
    attempt: int,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True
) -> float:
    """
    Calculate delay for exponential backoff.

    Args:
        attempt: Current attempt number (1-indexed)
        base_delay: Initial delay in seconds
        max_delay: Maximum delay cap
        exponential_base: Base for exponential calculation
        jitter: Add randomness to prevent thundering herd

    Returns:
        Delay in seconds
    """
    delay = base_delay * (exponential_base ** (attempt - 1))
    delay = min(delay, max_delay)

    # Add jitter (0-25% of delay)
    if jitter:
        delay += delay * random.uniform(0, 0.25)

    return delay


def is_retryable_error(
    error: Exception,
    retryable_exceptions: Tuple[Type[Exception], ...] = DEFAULT_RETRYABLE_EXCEPTIONS,
    retryable_status_codes: Tuple[int, ...] = (429, 500, 502, 503, 504)
) -> bool:
    """
    Check if an error is retryable.

    Args:
        error: The exception to check
        retryable_exceptions: Tuple of exception types to retry
        retryable_status_codes: HTTP status codes to retry

    Returns:
        True if error should be retried
    """
    if isinstance(error, retryable_exceptions):
        return True

    status = getattr(error, "status_code", None) or getattr(error, "status", None)
    return isinstance(status, int) and status in retryable_status_codes


async def retry_call(
    operation: Callable[[], Awaitable],
    operation_name: str = "operation",
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    stats: Optional[RetryStats] = None,
    retryable_exceptions: Tuple[Type[Exception], ...] = DEFAULT_RETRYABLE_EXCEPTIONS,
):
    """
    Await ``operation()`` retrying transient failures with exponential backoff.

    The last error is re-raised once attempts are exhausted, or immediately
    when it is not retryable.
    """
    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except Exception as e:
            if attempt >= max_attempts or not is_retryable_error(e, retryable_exceptions):
                raise

            delay = calculate_backoff(attempt, base_delay=base_delay, max_delay=max_delay)
            if stats is not None:
                stats.record_retry(e, delay)

            log.warning(
                f"{operation_name} attempt {attempt} failed: {e}. "
                f"Retrying in {delay:.1f}s..."
            )
            await asyncio.sleep(delay)

    raise RuntimeError("Retry exhausted")
