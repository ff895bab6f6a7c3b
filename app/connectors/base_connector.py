"""
Base connector class for marketplace API clients
"""
from typing import Any, Awaitable, Callable, Dict, Optional
from datetime import datetime

from app.utils.helpers import utcnow
from app.utils.retry import RetryStats, retry_call


class BaseConnector:
    """Shared retry policy and call accounting for API connectors"""

    # Retry configuration (can be overridden per instance)
    RETRY_MAX_ATTEMPTS = 3
    RETRY_BASE_DELAY = 1.0  # seconds
    RETRY_MAX_DELAY = 30.0  # seconds

    def __init__(
        self,
        name: str,
        max_attempts: Optional[int] = None,
        base_delay: Optional[float] = None,
        max_delay: Optional[float] = None,
    ):
        self.name = name
        self.max_attempts = max_attempts or self.RETRY_MAX_ATTEMPTS
        self.base_delay = self.RETRY_BASE_DELAY if base_delay is None else base_delay
        self.max_delay = self.RETRY_MAX_DELAY if max_delay is None else max_delay
        self.last_call: Optional[datetime] = None
        self.call_count = 0
        self.error_count = 0
        self.retry_stats = RetryStats()

    async def _retry_operation(
        self,
        operation: Callable[[], Awaitable[Any]],
        operation_name: str = "operation",
    ) -> Any:
        """
        Execute an operation, retrying transient failures with backoff.

        Non-retryable errors (auth, 404, validation) propagate on first failure.
        """
        self.call_count += 1
        self.last_call = utcnow()
        try:
            return await retry_call(
                operation,
                operation_name=f"{self.name} {operation_name}",
                max_attempts=self.max_attempts,
                base_delay=self.base_delay,
                max_delay=self.max_delay,
                stats=self.retry_stats,
            )
        except Exception:
            self.error_count += 1
            raise

    def get_status(self) -> Dict[str, Any]:
        """Get connector status"""
        return {
            "name": self.name,
            "last_call": self.last_call,
            "call_count": self.call_count,
            "error_count": self.error_count,
            "error_rate": self.error_count / max(self.call_count, 1),
            "retry_stats": self.retry_stats.to_dict(),
            "retry_config": {
                "max_attempts": self.max_attempts,
                "base_delay": self.base_delay,
                "max_delay": self.max_delay
            }
        }
