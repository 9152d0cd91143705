"""
Resilience service for retry logic and error classification.
Transient upstream failures are retried with capped exponential backoff.
"""

import asyncio
import random
from typing import Any, Awaitable, Callable, Optional

from cortex_chat.infrastructure.monitoring.logging_service import get_logger

logger = get_logger(__name__)

# Status codes that indicate a transient upstream condition
RETRYABLE_STATUS_CODES = frozenset({408, 409, 425, 429, 500, 502, 503, 504})


def get_error_status(error: BaseException) -> Optional[int]:
    """
    Extract an HTTP status code from an exception, if it carries one

    Looks at `status_code`, then `status`, then `response.status_code`.

    Returns:
        The status code, or None when the error has no discernible status
    """
    for attr in ("status_code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value

    response = getattr(error, "response", None)
    value = getattr(response, "status_code", None)
    if isinstance(value, int):
        return value

    return None


def is_retryable_error(error: BaseException) -> bool:
    """Transient status codes and errors without any status are retryable"""
    status = get_error_status(error)
    return status is None or status in RETRYABLE_STATUS_CODES


def exponential_backoff_delay(attempt: int, base_delay: float = 1.0, max_delay: float = 4.0,
                              jitter: float = 0.1) -> float:
    """
    Calculate exponential backoff delay with jitter

    Args:
        attempt: Current attempt number (0-indexed)
        base_delay: Base delay in seconds
        max_delay: Maximum delay in seconds
        jitter: Maximum relative jitter added on top of the exponential delay

    Returns:
        Delay in seconds, never above max_delay
    """
    # Exponential backoff: base_delay * 2^attempt
    delay = base_delay * (2 ** attempt)

    # Proportional jitter keeps successive delays non-decreasing
    delay *= 1 + random.uniform(0, jitter)

    return min(delay, max_delay)


class RetryService:
    """
    Service for handling retry logic.
    Provides infrastructure-level fault tolerance capabilities.
    """

    def __init__(self, sleep: Optional[Callable[[float], Awaitable[Any]]] = None):
        """
        Args:
            sleep: Coroutine used to wait between attempts (asyncio.sleep by default)
        """
        self.logger = get_logger(__name__)
        self._sleep = sleep or asyncio.sleep

    async def retry_with_backoff(
        self,
        func: Callable[[], Awaitable[Any]],
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 4.0,
        jitter: float = 0.1,
        on_retry: Optional[Callable[[int, BaseException, float], None]] = None
    ) -> Any:
        """
        Await a coroutine function with retry logic and exponential backoff

        Args:
            func: Zero-argument coroutine function to execute
            max_attempts: Maximum number of attempts, initial one included
            base_delay: Base delay between retries in seconds
            max_delay: Maximum delay between retries in seconds
            jitter: Relative jitter applied to each delay
            on_retry: Optional callback (attempt_number, exception, delay) before each wait

        Returns:
            Function result if successful

        Raises:
            The first non-retryable exception, or the last exception once
            all attempts are exhausted
        """
        for attempt in range(max_attempts):
            try:
                result = await func()

                if attempt > 0:
                    self.logger.info(f"Call succeeded after {attempt} retries")

                return result

            except Exception as e:
                if not is_retryable_error(e):
                    self.logger.warning(
                        f"Non-retriable error encountered: {e.__class__.__name__} "
                        f"(status {get_error_status(e)})"
                    )
                    raise

                if attempt == max_attempts - 1:
                    self.logger.warning(f"Call failed after {max_attempts} attempts: {e.__class__.__name__}: {e}")
                    raise

                delay = exponential_backoff_delay(attempt, base_delay, max_delay, jitter)

                self.logger.warning(
                    f"Attempt {attempt + 1} failed ({e.__class__.__name__}), retrying in {delay:.2f}s"
                )

                if on_retry:
                    on_retry(attempt + 1, e, delay)

                await self._sleep(delay)

        raise ValueError("max_attempts must be at least 1")
