"""トランスポート関連の例外."""

from .base import CourierError


class TransportNotReadyError(CourierError):
    """トランスポートが送信可能な状態でない場合に発生します.

    キューに追加する前に送出されるため、試行回数には数えられません。
    """

    pass
