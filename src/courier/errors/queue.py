"""送信キュー関連の例外.

呼び出し元が再送するかどうかを判断できるように、
タスクのラベル・試行回数・最後のエラーメッセージを保持します。
"""

from .base import CourierError


class QueueError(CourierError):
    """送信キュー関連の基底例外."""

    def __init__(self, message: str, label: str):
        super().__init__(message)
        self.label = label


class TaskTimeoutError(QueueError):
    """1回の試行がタイムアウトした場合に発生します."""

    def __init__(self, label: str, attempt: int, timeout: float):
        super().__init__(
            f"{label}: attempt {attempt} timed out after {timeout:.3f}s", label
        )
        self.attempt = attempt
        self.timeout = timeout


class TransportFailureError(QueueError):
    """タスク自体が例外を送出した場合に発生します.

    元の例外は ``cause`` と ``__cause__`` の両方で参照できます。
    """

    def __init__(self, label: str, attempt: int, cause: BaseException):
        super().__init__(f"{label}: attempt {attempt} failed: {cause}", label)
        self.attempt = attempt
        self.cause = cause


class ExhaustedRetriesError(QueueError):
    """すべての試行が失敗した場合に発生します."""

    def __init__(self, label: str, attempts: int, last_error: BaseException):
        super().__init__(
            f"{label}: failed after {attempts} attempt(s): {last_error}", label
        )
        self.attempts = attempts
        self.last_error = last_error

    @property
    def last_message(self) -> str:
        """最後に発生したエラーのメッセージ"""
        if isinstance(self.last_error, TransportFailureError):
            return str(self.last_error.cause)
        return str(self.last_error)


class QueueCancelledError(QueueError):
    """実行前に clear() でキューから破棄された場合に発生します."""

    def __init__(self, label: str):
        super().__init__(f"{label}: cancelled before execution", label)
