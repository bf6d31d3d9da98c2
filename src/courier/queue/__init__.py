"""送信キューモジュール."""

from .retry import RetryExecutor, RetryPolicy, TaskWork
from .task_queue import QueuedTask, QueueStats, SequentialTaskQueue

__all__ = [
    "QueuedTask",
    "QueueStats",
    "RetryExecutor",
    "RetryPolicy",
    "SequentialTaskQueue",
    "TaskWork",
]
