"""リトライ付きタスク実行のテスト"""

import asyncio

import pytest

from courier.errors.queue import (
    ExhaustedRetriesError,
    TaskTimeoutError,
    TransportFailureError,
)
from courier.queue.retry import RetryExecutor, RetryPolicy


class TestRetryPolicy:
    """RetryPolicy のテスト"""

    def test_defaults(self):
        """デフォルト値"""
        policy = RetryPolicy()
        assert policy.max_attempts == 3
        assert policy.timeout == 30.0
        assert policy.delay == 2.0

    def test_max_attempts_must_be_positive(self):
        """最大試行回数は1以上"""
        with pytest.raises(ValueError, match="max_attempts"):
            RetryPolicy(max_attempts=0)

    def test_timeout_must_be_positive(self):
        """タイムアウトは正の値"""
        with pytest.raises(ValueError, match="timeout"):
            RetryPolicy(timeout=0)

    def test_to_dict(self):
        """辞書表現"""
        policy = RetryPolicy(max_attempts=2, timeout=1.0, delay=0.5)
        assert policy.to_dict() == {"max_attempts": 2, "timeout": 1.0, "delay": 0.5}


class TestRetryExecutor:
    """RetryExecutor のテスト"""

    @pytest.mark.asyncio
    async def test_success_on_first_attempt(self, fast_policy):
        """1回目で成功した場合は再試行しない"""
        executor = RetryExecutor(default_policy=fast_policy)
        calls = 0

        async def work():
            nonlocal calls
            calls += 1
            return "ok"

        result = await executor.run(work, label="first")

        assert result == "ok"
        assert calls == 1

    @pytest.mark.asyncio
    async def test_always_failing_task_attempted_max_times(self):
        """常に失敗するタスクはちょうど max_attempts 回実行される"""
        executor = RetryExecutor()
        policy = RetryPolicy(max_attempts=4, timeout=1.0, delay=0.0)
        calls = 0

        async def work():
            nonlocal calls
            calls += 1
            raise ConnectionError("network blip")

        with pytest.raises(ExhaustedRetriesError) as exc_info:
            await executor.run(work, policy=policy, label="always-fails")

        assert calls == 4
        error = exc_info.value
        assert error.attempts == 4
        assert error.label == "always-fails"
        assert isinstance(error.last_error, TransportFailureError)
        assert isinstance(error.last_error.cause, ConnectionError)
        assert error.last_message == "network blip"
        assert error.__cause__ is error.last_error

    @pytest.mark.asyncio
    async def test_single_attempt_policy(self):
        """max_attempts=1 の場合は再試行しない"""
        executor = RetryExecutor()
        calls = 0

        async def work():
            nonlocal calls
            calls += 1
            raise ValueError("bad")

        with pytest.raises(ExhaustedRetriesError):
            await executor.run(
                work, policy=RetryPolicy(max_attempts=1, timeout=1.0, delay=0.0)
            )

        assert calls == 1

    @pytest.mark.asyncio
    async def test_recovers_from_transient_failures(self):
        """一時的な失敗から回復し、試行間で待機する"""
        executor = RetryExecutor()
        policy = RetryPolicy(max_attempts=3, timeout=1.0, delay=0.05)
        attempts = 0

        async def work():
            nonlocal attempts
            attempts += 1
            if attempts < 3:
                raise ConnectionError("transient")
            return attempts

        loop = asyncio.get_running_loop()
        start = loop.time()
        result = await executor.run(work, policy=policy)
        elapsed = loop.time() - start

        assert result == 3
        assert elapsed >= 0.09  # 2回分の待機

    @pytest.mark.asyncio
    async def test_hanging_task_times_out(self):
        """完了しないタスクは timeout 後に失敗扱いになる"""
        executor = RetryExecutor()
        policy = RetryPolicy(max_attempts=2, timeout=0.05, delay=0.0)
        started = 0

        async def work():
            nonlocal started
            started += 1
            await asyncio.Event().wait()

        with pytest.raises(ExhaustedRetriesError) as exc_info:
            await executor.run(work, policy=policy, label="hang")

        assert started == 2
        last_error = exc_info.value.last_error
        assert isinstance(last_error, TaskTimeoutError)
        assert last_error.attempt == 2
        assert last_error.timeout == 0.05

    @pytest.mark.asyncio
    async def test_timeout_then_success(self):
        """タイムアウトした後の再試行で成功する"""
        executor = RetryExecutor()
        policy = RetryPolicy(max_attempts=3, timeout=0.05, delay=0.0)
        attempts = 0

        async def work():
            nonlocal attempts
            attempts += 1
            if attempts == 1:
                await asyncio.sleep(1.0)
            return "sent"

        assert await executor.run(work, policy=policy) == "sent"
        assert attempts == 2

    @pytest.mark.asyncio
    async def test_late_result_is_discarded(self):
        """タイムアウトした試行の結果は破棄される"""
        executor = RetryExecutor()
        policy = RetryPolicy(max_attempts=1, timeout=0.05, delay=0.0)
        cancelled = asyncio.Event()

        async def work():
            try:
                await asyncio.sleep(1.0)
                return "late"
            except asyncio.CancelledError:
                cancelled.set()
                raise

        with pytest.raises(ExhaustedRetriesError):
            await executor.run(work, policy=policy)

        await asyncio.wait_for(cancelled.wait(), timeout=1.0)

    @pytest.mark.asyncio
    async def test_uses_injected_sleep(self):
        """試行間の待機に差し替えた sleep を使用する"""
        delays = []

        async def fake_sleep(seconds):
            delays.append(seconds)

        executor = RetryExecutor(
            default_policy=RetryPolicy(max_attempts=3, timeout=1.0, delay=2.0),
            sleep=fake_sleep,
        )

        async def work():
            raise ConnectionError("down")

        with pytest.raises(ExhaustedRetriesError):
            await executor.run(work)

        assert delays == [2.0, 2.0]

    @pytest.mark.asyncio
    async def test_outer_cancellation_propagates(self):
        """呼び出し元のキャンセルは失敗として扱わず伝播する"""
        executor = RetryExecutor()
        policy = RetryPolicy(max_attempts=3, timeout=5.0, delay=0.0)
        started = asyncio.Event()

        async def work():
            started.set()
            await asyncio.sleep(5.0)

        runner = asyncio.create_task(executor.run(work, policy=policy))
        await started.wait()
        runner.cancel()

        with pytest.raises(asyncio.CancelledError):
            await runner

    @pytest.mark.asyncio
    async def test_non_coroutine_work_counts_as_failure(self):
        """awaitable を返さない work も試行の失敗として扱う"""
        executor = RetryExecutor()
        policy = RetryPolicy(max_attempts=2, timeout=1.0, delay=0.0)

        with pytest.raises(ExhaustedRetriesError) as exc_info:
            await executor.run(lambda: "not awaitable", policy=policy)

        assert isinstance(exc_info.value.last_error.cause, TypeError)
