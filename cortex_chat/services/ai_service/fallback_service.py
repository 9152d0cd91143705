"""
AI service fallback texts for graceful degradation.

Retryable upstream failures become a calm assistant reply instead of a raw
error; anything else is reported as an explicit error message.
"""

from typing import Optional

from cortex_chat.infrastructure.monitoring.logging_service import get_logger
from cortex_chat.infrastructure.resilience.retry_service import get_error_status, is_retryable_error

OVERLOADED_MESSAGE = (
    "Our AI service is temporarily overloaded. Please try again in a few moments."
)

UNAVAILABLE_MESSAGE = (
    "Our AI service is temporarily unavailable. Please try again shortly."
)

ERROR_PREFIX = "Sorry, I encountered an error: "


class FallbackService:
    """Maps generation failures to user-visible assistant text"""

    def __init__(self):
        self.logger = get_logger(__name__)

    def is_degradable(self, error: BaseException) -> bool:
        """Whether a failure should be presented as a degraded reply rather than an error"""
        return is_retryable_error(error)

    def degraded_message(self, status: Optional[int]) -> str:
        """Apology text for an exhausted retryable failure"""
        if status == 503:
            return OVERLOADED_MESSAGE
        return UNAVAILABLE_MESSAGE

    def degraded_message_for(self, error: BaseException) -> str:
        status = get_error_status(error)
        self.logger.info(f"Degrading reply after retryable failure (status {status})")
        return self.degraded_message(status)

    def error_message(self, detail: str) -> str:
        """Explicit error text shown in place of a reply"""
        return f"{ERROR_PREFIX}{detail or 'Unknown error'}"
