"""courier エラーの分類"""

import logging

from .queue import (
    ExhaustedRetriesError,
    QueueCancelledError,
    TaskTimeoutError,
    TransportFailureError,
)
from .rate_limit import RateLimitedError
from .transport import TransportNotReadyError

logger = logging.getLogger(__name__)


class CourierErrorType:
    """courier エラーのタイプ"""

    RATE_LIMITED = "rate_limited"  # アドミッション拒否
    TIMEOUT = "timeout"  # 試行のタイムアウト
    TRANSPORT = "transport"  # トランスポートの失敗
    EXHAUSTED = "exhausted"  # リトライ上限到達
    CANCELLED = "cancelled"  # clear() による破棄
    NOT_READY = "not_ready"  # トランスポート未接続
    UNKNOWN = "unknown"  # 不明なエラー


def classify_error(error: BaseException) -> str:
    """courier エラーを分類

    Args:
        error: 発生した例外

    Returns:
        エラータイプ
    """
    if isinstance(error, RateLimitedError):
        return CourierErrorType.RATE_LIMITED
    elif isinstance(error, ExhaustedRetriesError):
        return CourierErrorType.EXHAUSTED
    elif isinstance(error, TaskTimeoutError):
        return CourierErrorType.TIMEOUT
    elif isinstance(error, TransportFailureError):
        return CourierErrorType.TRANSPORT
    elif isinstance(error, QueueCancelledError):
        return CourierErrorType.CANCELLED
    elif isinstance(error, TransportNotReadyError):
        return CourierErrorType.NOT_READY

    logger.debug(f"Unclassified error: {type(error).__name__}: {error}")
    return CourierErrorType.UNKNOWN


def is_resubmittable(error: BaseException) -> bool:
    """呼び出し元が後で再送してよいエラーかどうか

    キューの内部ではリトライ済みのため、ここでの判定は
    呼び出し元が新しいリクエストとして再送するかどうかの目安です。
    """
    return classify_error(error) in (
        CourierErrorType.RATE_LIMITED,
        CourierErrorType.CANCELLED,
        CourierErrorType.NOT_READY,
        CourierErrorType.EXHAUSTED,
    )


def get_error_message(error_type: str) -> str:
    """利用者向けのエラーメッセージを取得

    Args:
        error_type: エラータイプ

    Returns:
        エラーメッセージ
    """
    messages = {
        CourierErrorType.RATE_LIMITED: (
            "Too many requests. Please retry after the indicated delay."
        ),
        CourierErrorType.TIMEOUT: "The transport did not respond in time.",
        CourierErrorType.TRANSPORT: "The transport rejected the message.",
        CourierErrorType.EXHAUSTED: (
            "The message could not be delivered after several attempts. "
            "Please try again later."
        ),
        CourierErrorType.CANCELLED: (
            "The message was discarded before being sent. Please resubmit it."
        ),
        CourierErrorType.NOT_READY: (
            "The messaging client is not connected. Please retry shortly."
        ),
        CourierErrorType.UNKNOWN: "An unexpected error occurred.",
    }

    return messages.get(error_type, messages[CourierErrorType.UNKNOWN])
