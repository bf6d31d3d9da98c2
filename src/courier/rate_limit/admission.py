"""アドミッション制御（ティア別レート制限）"""

import logging
import math
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum

from ..metrics import admission_decisions_counter
from .monitor import RateLimitMonitor
from .window_counter import RateWindowCounter

logger = logging.getLogger(__name__)

ANONYMOUS_IDENTITY = "anonymous"


class Tier(str, Enum):
    """トラフィックのティア"""

    GENERAL = "general"  # 通常のリクエスト
    BULK = "bulk"  # 宛先数の多い一括送信


@dataclass(frozen=True)
class QuotaConfig:
    """ウィンドウあたりのクォータ

    Attributes:
        max_requests: ウィンドウあたりの最大リクエスト数
        window_ms: ウィンドウ長（ミリ秒）
    """

    max_requests: int
    window_ms: int

    def __post_init__(self) -> None:
        if self.max_requests < 0:
            raise ValueError("max_requests must not be negative")
        if self.window_ms <= 0:
            raise ValueError("window_ms must be positive")

    @property
    def window_seconds(self) -> float:
        return self.window_ms / 1000


QuotaLookup = Callable[[str], QuotaConfig | None]


@dataclass(frozen=True, kw_only=True)
class AdmissionDecision:
    """アドミッション判定の結果

    Attributes:
        allowed: リクエストを許可するか
        tier: 判定したティア
        count: 加算後のリクエスト数
        limit: 適用したクォータの上限
        reset_in_ms: ウィンドウがリセットされるまでの時間（ミリ秒）
        retry_after_ms: 拒否時の再試行までの時間（ミリ秒、許可時は None）
    """

    allowed: bool
    tier: Tier
    count: int
    limit: int
    reset_in_ms: int
    retry_after_ms: int | None = None

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.count)

    def to_dict(self) -> dict:
        """HTTP層向けの辞書表現"""
        result = {"allowed": self.allowed}
        if self.retry_after_ms is not None:
            result["retryAfterMs"] = self.retry_after_ms
        return result


class AdmissionController:
    """ID単位・ティア別のアドミッション制御

    通常ティアと一括送信ティアは同じ RateWindowCounter を共有しますが、
    一括送信ティアは ``bulk:{identity}`` をキーにするためバケットは共有しません。

    通常ティアのクォータは ``lookup_quota`` で呼び出し元ごとに解決し、
    IDが無い場合や lookup が None を返した場合はグローバルデフォルトを使用します。
    一括送信ティアは常に ``bulk_quota`` を使用します。
    """

    def __init__(
        self,
        counter: RateWindowCounter | None = None,
        lookup_quota: QuotaLookup | None = None,
        default_quota: QuotaConfig = QuotaConfig(max_requests=100, window_ms=900_000),
        bulk_quota: QuotaConfig = QuotaConfig(max_requests=5, window_ms=3_600_000),
        bulk_threshold: int = 10,
        exempt_paths: Iterable[str] = ("/", "/health"),
        monitor: RateLimitMonitor | None = None,
    ):
        self.counter = counter or RateWindowCounter()
        self.lookup_quota = lookup_quota
        self.default_quota = default_quota
        self.bulk_quota = bulk_quota
        self.bulk_threshold = bulk_threshold
        self.exempt_paths = frozenset(exempt_paths)
        self.monitor = monitor or RateLimitMonitor()

    def applies(self, tier: Tier, path: str = "", recipient_count: int = 1) -> bool:
        """ティアがリクエストに適用されるかどうか

        Args:
            tier: 判定するティア
            path: リクエストパス
            recipient_count: 1回の呼び出しに含まれる宛先数
        """
        if Tier(tier) is Tier.GENERAL:
            return path not in self.exempt_paths
        # 閾値ちょうどの宛先数は一括送信ティアの対象外
        return recipient_count > self.bulk_threshold

    def tiers_for(self, path: str = "", recipient_count: int = 1) -> list[Tier]:
        """リクエストに適用されるティアを判定順に取得"""
        return [
            tier
            for tier in (Tier.GENERAL, Tier.BULK)
            if self.applies(tier, path=path, recipient_count=recipient_count)
        ]

    def resolve_quota(self, identity: str | None, tier: Tier) -> QuotaConfig:
        """適用するクォータを解決"""
        tier = Tier(tier)
        if tier is Tier.BULK:
            return self.bulk_quota
        if not identity or self.lookup_quota is None:
            return self.default_quota
        return self.lookup_quota(identity) or self.default_quota

    async def check(
        self, identity: str | None, tier: Tier = Tier.GENERAL
    ) -> AdmissionDecision:
        """リクエストを1件カウントし、許可するかどうかを判定

        Args:
            identity: 呼び出し元のID（APIキーまたはIPアドレス、未認証の場合は None）
            tier: 判定するティア

        Returns:
            判定結果
        """
        tier = Tier(tier)
        quota = self.resolve_quota(identity, tier)
        key = self.counter_key(identity, tier)

        state = await self.counter.increment(key, quota.window_seconds)
        reset_in_ms = max(0, math.ceil((state.reset_at - self.counter.now()) * 1000))

        if state.count > quota.max_requests:
            admission_decisions_counter.labels(tier=tier.value, decision="denied").inc()
            logger.warning(
                f"Rate limit exceeded for {key[:20]}: "
                f"{state.count}/{quota.max_requests} ({tier.value} tier), "
                f"retry after {reset_in_ms}ms"
            )
            return AdmissionDecision(
                allowed=False,
                tier=tier,
                count=state.count,
                limit=quota.max_requests,
                reset_in_ms=reset_in_ms,
                retry_after_ms=reset_in_ms,
            )

        admission_decisions_counter.labels(tier=tier.value, decision="allowed").inc()
        self.monitor.check_usage(key, state.count, quota.max_requests)
        return AdmissionDecision(
            allowed=True,
            tier=tier,
            count=state.count,
            limit=quota.max_requests,
            reset_in_ms=reset_in_ms,
        )

    async def release(self, identity: str | None, tier: Tier = Tier.GENERAL) -> None:
        """課金済みの枠を1件返却（検証エラーで処理しなかったリクエスト用）"""
        await self.counter.decrement(self.counter_key(identity, tier))

    async def reset(self, identity: str | None) -> None:
        """IDの全ティアのウィンドウを破棄（キー無効化などの管理操作用）"""
        for tier in Tier:
            await self.counter.reset(self.counter_key(identity, tier))

    @staticmethod
    def counter_key(identity: str | None, tier: Tier) -> str:
        """カウンターのキーを生成"""
        identity = identity or ANONYMOUS_IDENTITY
        if Tier(tier) is Tier.BULK:
            return f"bulk:{identity}"
        return identity
