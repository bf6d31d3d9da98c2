"""エラーハンドリングモジュール"""

from .base import CourierError
from .classify import (
    CourierErrorType,
    classify_error,
    get_error_message,
    is_resubmittable,
)
from .queue import (
    ExhaustedRetriesError,
    QueueCancelledError,
    QueueError,
    TaskTimeoutError,
    TransportFailureError,
)
from .rate_limit import RateLimitedError
from .transport import TransportNotReadyError

__all__ = [
    "CourierError",
    "CourierErrorType",
    "classify_error",
    "get_error_message",
    "is_resubmittable",
    "QueueError",
    "TaskTimeoutError",
    "TransportFailureError",
    "ExhaustedRetriesError",
    "QueueCancelledError",
    "RateLimitedError",
    "TransportNotReadyError",
]
