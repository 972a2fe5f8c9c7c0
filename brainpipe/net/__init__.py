"""
Shared network plumbing: retry policies, result types and batched fan-out.
"""

from .batching import gather_in_batches
from .retry import (
    RATE_LIMIT_RETRY,
    RETRYABLE_KINDS,
    SERVER_ERROR_RETRY,
    ApiFailure,
    ApiResult,
    FailureKind,
    RetryPolicy,
    extract_error_message,
    send_with_retry,
)

__all__ = [
    "gather_in_batches",
    "RATE_LIMIT_RETRY",
    "RETRYABLE_KINDS",
    "SERVER_ERROR_RETRY",
    "ApiFailure",
    "ApiResult",
    "FailureKind",
    "RetryPolicy",
    "extract_error_message",
    "send_with_retry",
]
