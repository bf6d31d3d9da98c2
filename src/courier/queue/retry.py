"""タイムアウトとリトライ付きのタスク実行"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from ..errors.queue import (
    ExhaustedRetriesError,
    TaskTimeoutError,
    TransportFailureError,
)
from ..metrics import task_attempts_counter

logger = structlog.get_logger(__name__)

T = TypeVar("T")

TaskWork = Callable[[], Awaitable[T]]


@dataclass(frozen=True, kw_only=True)
class RetryPolicy:
    """リトライポリシー

    インスタンスごとではなく、タスクの種類ごとに指定します。

    Attributes:
        max_attempts: 最大試行回数（1以上）
        timeout: 1回の試行あたりのタイムアウト（秒）
        delay: 試行間の待機時間（秒）
    """

    max_attempts: int = 3
    timeout: float = 30.0
    delay: float = 2.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if self.delay < 0:
            raise ValueError("delay must not be negative")

    def to_dict(self) -> dict[str, Any]:
        return {
            "max_attempts": self.max_attempts,
            "timeout": self.timeout,
            "delay": self.delay,
        }


class RetryExecutor:
    """1つのタスクをタイムアウトとリトライ付きで実行する

    各試行はタスクとタイマーの競争です。タイマーが先に終わった場合は
    TaskTimeoutError として失敗扱いにし、タスクの後からの結果は破棄します。
    試行が残っていれば ``delay`` 秒待機して再試行し、すべて失敗した場合は
    ExhaustedRetriesError を送出します。
    """

    def __init__(
        self,
        default_policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """初期化

        Args:
            default_policy: ポリシーが指定されなかった場合に使用するポリシー
            sleep: 試行間の待機に使用する関数（テストで差し替え可能）
        """
        self.default_policy = default_policy or RetryPolicy()
        self._sleep = sleep

    async def run(
        self,
        work: TaskWork[T],
        policy: RetryPolicy | None = None,
        label: str = "task",
    ) -> T:
        """タスクを実行

        Args:
            work: 引数なしの非同期関数
            policy: リトライポリシー（None の場合はデフォルト）
            label: ログとエラー用のラベル

        Returns:
            タスクの結果

        Raises:
            ExhaustedRetriesError: すべての試行が失敗した場合
        """
        policy = policy or self.default_policy

        retrying = AsyncRetrying(
            sleep=self._sleep,
            stop=stop_after_attempt(policy.max_attempts),
            wait=wait_fixed(policy.delay),
            retry=retry_if_exception_type((TaskTimeoutError, TransportFailureError)),
            before_sleep=self._log_before_retry(label, policy),
        )

        try:
            async for attempt in retrying:
                with attempt:
                    attempt_number = attempt.retry_state.attempt_number
                    result = await self._run_attempt(
                        work, policy, label, attempt_number
                    )
                    if attempt_number > 1:
                        logger.info(
                            "Task succeeded after retry",
                            label=label,
                            attempt=attempt_number,
                        )
                    return result
        except RetryError as e:
            last_error = e.last_attempt.exception()
            logger.error(
                "All task attempts exhausted",
                label=label,
                attempts=policy.max_attempts,
                error=str(last_error),
            )
            raise ExhaustedRetriesError(
                label, policy.max_attempts, last_error
            ) from last_error

        # stop_after_attempt により到達しない
        raise RuntimeError(f"Unexpected end of retry loop for {label}")

    async def _run_attempt(
        self,
        work: TaskWork[T],
        policy: RetryPolicy,
        label: str,
        attempt: int,
    ) -> T:
        """1回の試行を実行（タスクとタイマーの競争）"""
        logger.debug(
            "Task attempt started",
            label=label,
            attempt=attempt,
            max_attempts=policy.max_attempts,
        )

        async def call() -> T:
            return await work()

        task = asyncio.create_task(call())
        try:
            done, _ = await asyncio.wait({task}, timeout=policy.timeout)
        except asyncio.CancelledError:
            # 呼び出し元がキャンセルされた場合は実行中のタスクも止める
            task.cancel()
            raise

        if not done:
            task.cancel()
            task.add_done_callback(_discard_outcome)
            task_attempts_counter.labels(result="timeout").inc()
            logger.warning(
                "Task attempt timed out",
                label=label,
                attempt=attempt,
                timeout=policy.timeout,
            )
            raise TaskTimeoutError(label, attempt, policy.timeout)

        if task.cancelled():
            task_attempts_counter.labels(result="error").inc()
            cancelled = asyncio.CancelledError("task cancelled itself")
            raise TransportFailureError(label, attempt, cancelled)

        error = task.exception()
        if error is not None:
            task_attempts_counter.labels(result="error").inc()
            logger.warning(
                "Task attempt failed",
                label=label,
                attempt=attempt,
                error=str(error),
                error_type=type(error).__name__,
            )
            raise TransportFailureError(label, attempt, error) from error

        task_attempts_counter.labels(result="success").inc()
        return task.result()

    @staticmethod
    def _log_before_retry(
        label: str, policy: RetryPolicy
    ) -> Callable[[RetryCallState], None]:
        def before_sleep(retry_state: RetryCallState) -> None:
            logger.info(
                "Retrying task",
                label=label,
                next_attempt=retry_state.attempt_number + 1,
                max_attempts=policy.max_attempts,
                delay=policy.delay,
            )

        return before_sleep


def _discard_outcome(task: asyncio.Task) -> None:
    """タイムアウト後に完了したタスクの結果を破棄"""
    if not task.cancelled():
        task.exception()
