"""設定管理モジュール"""

from pydantic_settings import BaseSettings, SettingsConfigDict

from .queue.retry import RetryPolicy
from .rate_limit.admission import QuotaConfig


class Settings(BaseSettings):
    """アプリケーション設定クラス（pydantic-settings使用）

    すべての環境変数を一元管理します。
    型チェックとバリデーションが自動的に行われます。
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,  # 環境変数名は大文字小文字を区別しない
        extra="ignore",  # 未定義の環境変数は無視
    )

    # ============================================
    # レート制限設定（通常ティア）
    # ============================================

    # 未認証・未登録のIDに適用されるグローバルデフォルト（15分間に100リクエスト）
    rate_limit_max_requests: int = 100
    rate_limit_window_ms: int = 900_000

    # カンマ区切りのレート制限除外パス
    rate_limit_exempt_paths: str = "/,/health"

    # 警告閾値（0.0-1.0）
    rate_limit_warning_threshold: float = 0.9

    # ウィンドウ終了後に保持する猶予（秒）
    rate_limit_grace_seconds: float = 60.0

    # ============================================
    # レート制限設定（一括送信ティア）
    # ============================================

    # 1時間に5回まで
    bulk_rate_limit_max_requests: int = 5
    bulk_rate_limit_window_ms: int = 3_600_000

    # 宛先数がこの値を超えると一括送信ティアが適用される
    bulk_recipient_threshold: int = 10

    # ============================================
    # 送信キュー設定
    # ============================================

    queue_pacing_delay_ms: int = 1000
    task_max_attempts: int = 3
    task_timeout_ms: int = 30_000
    task_retry_delay_ms: int = 2000

    # ============================================
    # ログ設定
    # ============================================

    log_level: str = "INFO"
    log_file: str = ""  # 空文字列の場合はファイル出力しない
    log_max_size: int = 10  # MB
    log_backup_count: int = 5

    # ============================================
    # ヘルスチェック設定
    # ============================================

    health_check_enabled: bool = True
    health_check_port: int = 8080

    def exempt_paths(self) -> tuple[str, ...]:
        """レート制限の除外パスを取得"""
        return tuple(
            path.strip()
            for path in self.rate_limit_exempt_paths.split(",")
            if path.strip()
        )

    def default_quota(self) -> QuotaConfig:
        """通常ティアのデフォルトクォータ"""
        return QuotaConfig(
            max_requests=self.rate_limit_max_requests,
            window_ms=self.rate_limit_window_ms,
        )

    def bulk_quota(self) -> QuotaConfig:
        """一括送信ティアのクォータ"""
        return QuotaConfig(
            max_requests=self.bulk_rate_limit_max_requests,
            window_ms=self.bulk_rate_limit_window_ms,
        )

    def retry_policy(self) -> RetryPolicy:
        """送信タスクのデフォルトリトライポリシー"""
        return RetryPolicy(
            max_attempts=self.task_max_attempts,
            timeout=self.task_timeout_ms / 1000,
            delay=self.task_retry_delay_ms / 1000,
        )

    @property
    def pacing_delay(self) -> float:
        """タスク間の待機時間（秒）"""
        return self.queue_pacing_delay_ms / 1000

    def validate_settings(self) -> None:
        """設定の検証

        Raises:
            ValueError: 設定値が不正な場合
        """
        if self.rate_limit_max_requests <= 0:
            raise ValueError("RATE_LIMIT_MAX_REQUESTS must be positive")
        if self.rate_limit_window_ms <= 0:
            raise ValueError("RATE_LIMIT_WINDOW_MS must be positive")
        if self.bulk_rate_limit_max_requests <= 0:
            raise ValueError("BULK_RATE_LIMIT_MAX_REQUESTS must be positive")
        if self.bulk_rate_limit_window_ms <= 0:
            raise ValueError("BULK_RATE_LIMIT_WINDOW_MS must be positive")
        if self.bulk_recipient_threshold < 0:
            raise ValueError("BULK_RECIPIENT_THRESHOLD must not be negative")
        if self.task_max_attempts < 1:
            raise ValueError("TASK_MAX_ATTEMPTS must be at least 1")
        if self.task_timeout_ms <= 0:
            raise ValueError("TASK_TIMEOUT_MS must be positive")
        if self.task_retry_delay_ms < 0 or self.queue_pacing_delay_ms < 0:
            raise ValueError("Delays must not be negative")
        if not 0.0 < self.rate_limit_warning_threshold <= 1.0:
            raise ValueError("RATE_LIMIT_WARNING_THRESHOLD must be in (0.0, 1.0]")


# グローバルシングルトン（アプリケーション全体で使用）
settings = Settings()
