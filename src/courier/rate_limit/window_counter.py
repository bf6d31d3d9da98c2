"""固定ウィンドウカウンター."""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WindowState:
    """カウンターの状態.

    Attributes:
        count: 現在のウィンドウで観測したリクエスト数
        reset_at: ウィンドウがリセットされる時刻（clock と同じ基準の秒）
    """

    count: int
    reset_at: float


@dataclass
class _IdentityWindow:
    count: int
    window_start: float
    window_seconds: float

    @property
    def reset_at(self) -> float:
        return self.window_start + self.window_seconds


class RateWindowCounter:
    """ID単位の固定ウィンドウカウンター.

    スライディングウィンドウではなく、ウィンドウ終了時刻に到達すると
    カウントを0に戻す固定ウィンドウ方式です。
    終了時刻ちょうどに到着したリクエストは新しいウィンドウに含めます。

    ⚠️ 改善（時刻計算）: time.monotonic() を使用することで、
    NTP調整による時刻ジャンプの影響を回避します。
    """

    def __init__(
        self,
        grace_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """初期化.

        Args:
            grace_seconds: ウィンドウ終了後、アクセスのないIDを保持する猶予（秒）
            clock: 現在時刻を返す関数（テストで差し替え可能）
        """
        self.grace_seconds = grace_seconds
        self._clock = clock
        self._windows: dict[str, _IdentityWindow] = {}
        self._last_sweep = clock()
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._windows)

    async def increment(self, identity: str, window_seconds: float) -> WindowState:
        """リクエストを1件カウント.

        Args:
            identity: 呼び出し元のID
            window_seconds: ウィンドウ長（秒）。新しいウィンドウの開始時にのみ使用

        Returns:
            加算後のカウントとリセット時刻
        """
        async with self._lock:
            now = self._clock()
            self._evict_expired(now)

            window = self._windows.get(identity)
            if window is None or now >= window.reset_at:
                window = _IdentityWindow(
                    count=0, window_start=now, window_seconds=window_seconds
                )
                self._windows[identity] = window

            window.count += 1
            logger.debug(
                f"Window count for {_preview(identity)}: {window.count} "
                f"(resets in {window.reset_at - now:.1f}s)"
            )
            return WindowState(count=window.count, reset_at=window.reset_at)

    async def decrement(self, identity: str) -> None:
        """カウントを1件戻す（0未満にはならない）.

        Args:
            identity: 呼び出し元のID
        """
        async with self._lock:
            window = self._windows.get(identity)
            if window is not None and window.count > 0:
                window.count -= 1

    async def reset(self, identity: str) -> None:
        """IDのウィンドウを即座に破棄.

        Args:
            identity: 呼び出し元のID
        """
        async with self._lock:
            if self._windows.pop(identity, None) is not None:
                logger.info(f"Rate window reset for {_preview(identity)}")

    def peek(self, identity: str) -> WindowState | None:
        """現在の状態を取得（カウントは変更しない）.

        期限切れのウィンドウは None として扱います。
        """
        window = self._windows.get(identity)
        if window is None or self._clock() >= window.reset_at:
            return None
        return WindowState(count=window.count, reset_at=window.reset_at)

    def now(self) -> float:
        """カウンターが使用している現在時刻"""
        return self._clock()

    def _evict_expired(self, now: float) -> None:
        """猶予期間を過ぎたウィンドウを削除（ロック保持中に呼び出すこと）"""
        if now - self._last_sweep < self.grace_seconds:
            return
        self._last_sweep = now

        expired = [
            identity
            for identity, window in self._windows.items()
            if now >= window.reset_at + self.grace_seconds
        ]
        for identity in expired:
            del self._windows[identity]
        if expired:
            logger.debug(f"Evicted {len(expired)} expired rate windows")


def _preview(identity: str) -> str:
    """ログ用にIDを短縮（APIキーをそのまま出力しない）"""
    return identity if len(identity) <= 15 else f"{identity[:15]}..."
