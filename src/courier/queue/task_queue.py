"""逐次送信キュー"""

import asyncio
import contextlib
import time
from collections import deque
from dataclasses import dataclass
from typing import Any

import structlog

from ..errors.queue import QueueCancelledError
from ..metrics import queue_depth_gauge, queue_tasks_counter, task_duration_seconds
from .retry import RetryExecutor, RetryPolicy, TaskWork

logger = structlog.get_logger(__name__)


@dataclass
class QueuedTask:
    """キューに追加されたタスク

    future は呼び出し元だけが待機し、キューはタスクの中身を参照しない。
    """

    label: str
    work: TaskWork
    future: asyncio.Future
    policy: RetryPolicy | None = None


@dataclass(frozen=True)
class QueueStats:
    """キューの統計情報"""

    queue_size: int
    is_processing: bool
    policy: RetryPolicy | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "queueSize": self.queue_size,
            "isProcessing": self.is_processing,
        }
        if self.policy is not None:
            result["config"] = self.policy.to_dict()
        return result


class SequentialTaskQueue:
    """逐次送信キュー

    タスクを追加順（FIFO）に1件ずつ実行するキュー。
    バックエンドのトランスポートはセッション単位の状態を持つため、
    並行実行や順序の入れ替えは行わない。

    ワーカーはキューが空でない間だけ動作し、空になると終了する。
    次の enqueue() で再び起動する。キューの操作とワーカーフラグの更新は
    await を挟まずに行うため、イベントループ上では不可分に実行される。
    """

    def __init__(
        self,
        executor: RetryExecutor | None = None,
        pacing_delay: float = 1.0,
    ):
        """初期化

        Args:
            executor: タスクの実行に使用する RetryExecutor
            pacing_delay: 連続するタスクの間の待機時間（秒）
        """
        self.executor = executor or RetryExecutor()
        self.pacing_delay = pacing_delay
        self._pending: deque[QueuedTask] = deque()
        self._processing = False
        self._worker_task: asyncio.Task | None = None
        # clear() で待機中のワーカーを起こす
        self._wake = asyncio.Event()

    async def enqueue(
        self,
        label: str,
        work: TaskWork,
        policy: RetryPolicy | None = None,
    ) -> asyncio.Future:
        """タスクをキューの末尾に追加

        Args:
            label: 診断用のラベル
            work: 引数なしの非同期関数
            policy: リトライポリシー（None の場合は executor のデフォルト）

        Returns:
            タスクの結果または最終的なエラーで一度だけ完了する Future
        """
        future = asyncio.get_running_loop().create_future()
        self._pending.append(
            QueuedTask(label=label, work=work, future=future, policy=policy)
        )
        queue_depth_gauge.set(len(self._pending))
        logger.debug("Task enqueued", label=label, queue_size=len(self._pending))

        if not self._processing:
            self._processing = True
            self._worker_task = asyncio.create_task(self._worker())

        return future

    def size(self) -> int:
        """待機中のタスク数"""
        return len(self._pending)

    def is_processing(self) -> bool:
        """ワーカーが動作中かどうか"""
        return self._processing

    def get_stats(self) -> QueueStats:
        """キューの統計情報を取得"""
        return QueueStats(
            queue_size=len(self._pending),
            is_processing=self._processing,
            policy=self.executor.default_policy,
        )

    def clear(self) -> int:
        """待機中のタスクをすべて破棄

        破棄したタスクの Future は QueueCancelledError で完了する。
        実行中のタスクには影響しない。

        Returns:
            破棄したタスク数
        """
        cancelled = 0
        while self._pending:
            item = self._pending.popleft()
            if not item.future.done():
                item.future.set_exception(QueueCancelledError(item.label))
                cancelled += 1
        queue_depth_gauge.set(0)
        self._wake.set()

        if cancelled:
            queue_tasks_counter.labels(outcome="cancelled").inc(cancelled)
            logger.info("Queue cleared", cancelled=cancelled)
        return cancelled

    async def wait_idle(self) -> None:
        """ワーカーが終了するまで待機"""
        if self._worker_task is not None and not self._worker_task.done():
            await asyncio.wait({self._worker_task})

    async def shutdown(self) -> int:
        """待機中のタスクを破棄し、実行中のタスクの完了を待つ

        Returns:
            破棄したタスク数
        """
        cancelled = self.clear()
        await self.wait_idle()
        logger.info("Send queue stopped", cancelled=cancelled)
        return cancelled

    async def _worker(self) -> None:
        """ワーカーループ"""
        try:
            while self._pending:
                item = self._pending.popleft()
                queue_depth_gauge.set(len(self._pending))

                # 呼び出し元が待機をやめたタスクは実行しない
                if item.future.done():
                    queue_tasks_counter.labels(outcome="skipped").inc()
                    logger.debug("Skipping abandoned task", label=item.label)
                    continue

                await self._execute(item)

                if self._pending:
                    await self._pace()
        except asyncio.CancelledError:
            # ワーカーが止められた場合も待機中のタスクの Future は必ず完了させる
            self.clear()
            raise
        finally:
            self._processing = False
            logger.debug("Send queue drained")

    async def _pace(self) -> None:
        """次のタスクまで待機（clear() で中断される）"""
        self._wake.clear()
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self._wake.wait(), timeout=self.pacing_delay)

    async def _execute(self, item: QueuedTask) -> None:
        """タスクを実行し、Future を完了させる"""
        logger.info(
            "Processing task",
            label=item.label,
            remaining=len(self._pending),
        )
        start_time = time.monotonic()
        try:
            result = await self.executor.run(
                item.work, policy=item.policy, label=item.label
            )
        except asyncio.CancelledError:
            # ワーカー自体が止められた場合も呼び出し元の Future は必ず完了させる
            if not item.future.done():
                item.future.cancel()
            raise
        except Exception as e:
            queue_tasks_counter.labels(outcome="failure").inc()
            logger.error("Task failed", label=item.label, error=str(e))
            if not item.future.done():
                item.future.set_exception(e)
        else:
            queue_tasks_counter.labels(outcome="success").inc()
            logger.info("Task completed", label=item.label)
            if not item.future.done():
                item.future.set_result(result)
        finally:
            task_duration_seconds.observe(time.monotonic() - start_time)
