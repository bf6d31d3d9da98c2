"""pytest フィクスチャ"""

import logging

import pytest
import structlog

from courier.config import Settings
from courier.gate import AdmissionGatedQueue
from courier.queue.retry import RetryExecutor, RetryPolicy
from courier.queue.task_queue import SequentialTaskQueue
from courier.rate_limit.admission import AdmissionController, QuotaConfig
from courier.rate_limit.window_counter import RateWindowCounter
from tests.fixtures.fakes import FakeClock, FakeTransport


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment():
    """テスト環境のセットアップ（テストセッション開始時に実行）"""
    # 既存のログハンドラーをクリーンアップ
    for handler in logging.root.handlers[:]:
        if hasattr(handler, "close"):
            handler.close()
        logging.root.removeHandler(handler)

    yield

    # テスト終了後にログハンドラーをクリーンアップ
    for handler in logging.root.handlers[:]:
        if hasattr(handler, "close"):
            handler.close()
        logging.root.removeHandler(handler)


@pytest.fixture
def clock():
    """手動で進める時計"""
    return FakeClock()


@pytest.fixture
def counter(clock):
    """フェイク時計を使う RateWindowCounter"""
    return RateWindowCounter(grace_seconds=60.0, clock=clock)


@pytest.fixture
def admission(counter):
    """小さいクォータの AdmissionController"""
    return AdmissionController(
        counter=counter,
        default_quota=QuotaConfig(max_requests=3, window_ms=1000),
        bulk_quota=QuotaConfig(max_requests=2, window_ms=10_000),
        bulk_threshold=10,
    )


@pytest.fixture
def fast_policy():
    """テスト用の短いリトライポリシー"""
    return RetryPolicy(max_attempts=3, timeout=0.5, delay=0.01)


@pytest.fixture
def task_queue(fast_policy):
    """短い待機時間の SequentialTaskQueue"""
    return SequentialTaskQueue(
        executor=RetryExecutor(default_policy=fast_policy),
        pacing_delay=0.01,
    )


@pytest.fixture
def gate(admission, task_queue):
    """AdmissionGatedQueue のフィクスチャ"""
    return AdmissionGatedQueue(admission=admission, queue=task_queue)


@pytest.fixture
def transport():
    """送信内容を記録するトランスポート"""
    return FakeTransport()


@pytest.fixture
def test_settings():
    """.env の影響を受けない設定"""
    return Settings(
        _env_file=None,
        rate_limit_max_requests=3,
        rate_limit_window_ms=1000,
        bulk_rate_limit_max_requests=2,
        bulk_rate_limit_window_ms=10_000,
        queue_pacing_delay_ms=10,
        task_max_attempts=3,
        task_timeout_ms=500,
        task_retry_delay_ms=10,
        health_check_enabled=False,
    )


@pytest.fixture(autouse=True)
def cleanup_log_handlers():
    """テスト後にログハンドラーをクリーンアップ"""
    yield
    structlog.reset_defaults()
    for handler in logging.root.handlers[:]:
        if hasattr(handler, "close"):
            handler.close()
        logging.root.removeHandler(handler)
