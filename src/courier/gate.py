"""アドミッション制御付き送信キュー（コンポジションルート）

呼び出し元から見える境界です。リクエストごとにアドミッション制御を行い、
許可された場合のみタスクを送信キューに追加します。
レート制限で拒否されたリクエストはキューに到達しません。
"""

import asyncio
import logging

from .config import Settings
from .errors.rate_limit import RateLimitedError
from .queue.retry import RetryExecutor, RetryPolicy, TaskWork
from .queue.task_queue import QueueStats, SequentialTaskQueue
from .rate_limit.admission import (
    AdmissionController,
    AdmissionDecision,
    QuotaLookup,
)
from .rate_limit.monitor import RateLimitMonitor
from .rate_limit.window_counter import RateWindowCounter

logger = logging.getLogger(__name__)


class AdmissionGatedQueue:
    """アドミッション制御付き送信キュー"""

    def __init__(
        self,
        admission: AdmissionController,
        queue: SequentialTaskQueue,
    ):
        self.admission = admission
        self.queue = queue

    async def admit(
        self,
        identity: str | None,
        path: str = "/send",
        recipient_count: int = 1,
    ) -> list[AdmissionDecision]:
        """リクエストに適用されるすべてのティアでアドミッション判定を行う

        Args:
            identity: 呼び出し元のID
            path: リクエストパス（除外パスの判定に使用）
            recipient_count: 宛先数（一括送信ティアの判定に使用）

        Returns:
            許可された判定のリスト（適用されるティアが無い場合は空）

        Raises:
            RateLimitedError: いずれかのティアで拒否された場合
        """
        decisions = []
        for tier in self.admission.tiers_for(path, recipient_count):
            decision = await self.admission.check(identity, tier)
            if not decision.allowed:
                raise RateLimitedError(
                    identity=identity or "",
                    tier=decision.tier.value,
                    retry_after_ms=decision.retry_after_ms or 0,
                    limit=decision.limit,
                )
            decisions.append(decision)
        return decisions

    async def submit(
        self,
        identity: str | None,
        label: str,
        work: TaskWork,
        path: str = "/send",
        recipient_count: int = 1,
        policy: RetryPolicy | None = None,
    ) -> asyncio.Future:
        """アドミッション判定を行い、許可された場合にタスクを追加

        Returns:
            タスクの結果で完了する Future

        Raises:
            RateLimitedError: アドミッションで拒否された場合
        """
        await self.admit(identity, path=path, recipient_count=recipient_count)
        return await self.queue.enqueue(label, work, policy=policy)

    def get_stats(self) -> QueueStats:
        """ステータスエンドポイント用の統計情報"""
        return self.queue.get_stats()


def build_gate(
    settings: Settings,
    lookup_quota: QuotaLookup | None = None,
) -> AdmissionGatedQueue:
    """設定からアドミッション制御付き送信キューを構築

    Args:
        settings: アプリケーション設定
        lookup_quota: IDごとのクォータを返す関数（キー管理側から提供）
    """
    counter = RateWindowCounter(grace_seconds=settings.rate_limit_grace_seconds)
    admission = AdmissionController(
        counter=counter,
        lookup_quota=lookup_quota,
        default_quota=settings.default_quota(),
        bulk_quota=settings.bulk_quota(),
        bulk_threshold=settings.bulk_recipient_threshold,
        exempt_paths=settings.exempt_paths(),
        monitor=RateLimitMonitor(
            warning_threshold=settings.rate_limit_warning_threshold
        ),
    )
    queue = SequentialTaskQueue(
        executor=RetryExecutor(default_policy=settings.retry_policy()),
        pacing_delay=settings.pacing_delay,
    )
    logger.info(
        f"Send gate configured: default quota "
        f"{settings.rate_limit_max_requests}/{settings.rate_limit_window_ms}ms, "
        f"bulk quota {settings.bulk_rate_limit_max_requests}/"
        f"{settings.bulk_rate_limit_window_ms}ms, "
        f"pacing {settings.queue_pacing_delay_ms}ms"
    )
    return AdmissionGatedQueue(admission=admission, queue=queue)
