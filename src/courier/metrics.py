"""メトリクス収集（Prometheus）"""

from prometheus_client import Counter, Gauge, Histogram

# 送信キューのメトリクス
queue_depth_gauge = Gauge(
    "courier_queue_depth",
    "Number of tasks waiting in the send queue",
)

queue_tasks_counter = Counter(
    "courier_queue_tasks_total",
    "Total tasks settled by the send queue worker",
    ["outcome"],  # success, failure, cancelled, skipped
)

task_attempts_counter = Counter(
    "courier_task_attempts_total",
    "Total task execution attempts",
    ["result"],  # success, timeout, error
)

task_duration_seconds = Histogram(
    "courier_task_duration_seconds",
    "Time spent executing a task including retries",
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 90.0],  # バケット設定
)

# アドミッション制御のメトリクス
admission_decisions_counter = Counter(
    "courier_admission_decisions_total",
    "Total admission decisions",
    ["tier", "decision"],  # decision: allowed, denied
)
