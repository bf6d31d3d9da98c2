"""レート制限モニター"""

import logging

logger = logging.getLogger(__name__)


class RateLimitMonitor:
    """レート制限モニター

    許可されたリクエストの残り枠をログに記録し、レート制限の接近を検知する。
    """

    def __init__(self, warning_threshold: float = 0.9):
        """初期化

        Args:
            warning_threshold: 警告閾値（0.0-1.0、レート制限の何%で警告するか）
        """
        self.warning_threshold = warning_threshold

    def check_usage(self, key: str, count: int, limit: int) -> tuple[bool, float]:
        """レート制限の接近をチェック

        Args:
            key: カウンターのキー（ティアのプレフィックスを含む）
            count: 現在のウィンドウでのリクエスト数
            limit: ウィンドウあたりの上限

        Returns:
            (警告が必要か, 使用率 0.0-1.0)
        """
        remaining = max(0, limit - count)
        usage_rate = count / limit if limit > 0 else 0.0

        logger.debug(f"{_preview(key)}: {remaining}/{limit} requests remaining")

        if usage_rate >= self.warning_threshold:
            logger.warning(
                f"Rate limit approaching for {_preview(key)}: "
                f"{count}/{limit} requests ({usage_rate * 100:.1f}%)"
            )
            return True, usage_rate

        return False, usage_rate


def _preview(key: str) -> str:
    return key if len(key) <= 20 else f"{key[:20]}..."
