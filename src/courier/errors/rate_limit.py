"""レート制限関連の例外."""

from .base import CourierError


class RateLimitedError(CourierError):
    """アドミッション制御でリクエストが拒否された場合に発生します.

    HTTP層はこの例外を 429 と ``Retry-After`` に変換します。
    """

    def __init__(
        self,
        identity: str,
        tier: str,
        retry_after_ms: int,
        limit: int,
    ):
        super().__init__(
            f"Rate limit exceeded for {tier} tier "
            f"(limit={limit}, retry after {retry_after_ms}ms)"
        )
        self.identity = identity
        self.tier = tier
        self.retry_after_ms = retry_after_ms
        self.limit = limit

    @property
    def retry_after_seconds(self) -> int:
        """Retry-After ヘッダー用の秒数（切り上げ）"""
        return -(-self.retry_after_ms // 1000)
