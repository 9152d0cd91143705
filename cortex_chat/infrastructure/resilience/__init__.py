"""
Resilience infrastructure - retry and error classification.
"""

from .retry_service import (
    RetryService,
    RETRYABLE_STATUS_CODES,
    exponential_backoff_delay,
    get_error_status,
    is_retryable_error
)

__all__ = [
    'RetryService',
    'RETRYABLE_STATUS_CODES',
    'exponential_backoff_delay',
    'get_error_status',
    'is_retryable_error'
]
