"""アプリケーションの組み立て.

HTTP層はここで構築した Courier を保持し、リクエストごとに
``courier.dispatcher`` または ``courier.gate`` を呼び出す。
送信キューとレートカウンターはすべてここで明示的に生成され、
プロセス全体で共有されるシングルトンは持たない。
"""

import logging
from dataclasses import dataclass

from .config import Settings, settings as default_settings
from .gate import AdmissionGatedQueue, build_gate
from .health import HealthCheckServer
from .logging_config import setup_logging
from .rate_limit.admission import QuotaLookup
from .services.dispatch import MessageDispatcher
from .services.transport import Transport

logger = logging.getLogger(__name__)


@dataclass
class Courier:
    """構築済みのコンポーネント一式"""

    gate: AdmissionGatedQueue
    dispatcher: MessageDispatcher
    transport: Transport
    health_server: HealthCheckServer
    settings: Settings

    def get_health_status(self) -> dict:
        """ヘルスステータスを取得"""
        transport_ready = self.transport.is_ready()
        return {
            "status": "healthy" if transport_ready else "starting",
            "transport": "connected" if transport_ready else "disconnected",
            "queue": self.gate.get_stats().to_dict(),
        }

    def start(self) -> None:
        """ログを設定し、ヘルスチェックサーバーを開始"""
        setup_logging(self.settings)
        logger.info("Starting courier...")
        self.health_server.set_status_callback(self.get_health_status)
        self.health_server.set_queue_stats_callback(
            lambda: self.gate.get_stats().to_dict()
        )
        self.health_server.start()

    async def shutdown(self) -> None:
        """適切なシャットダウン処理"""
        logger.info("Starting graceful shutdown...")
        try:
            self.health_server.stop()
        finally:
            cancelled = await self.gate.queue.shutdown()
            logger.info(f"Graceful shutdown completed ({cancelled} pending tasks dropped)")


def create_courier(
    transport: Transport,
    lookup_quota: QuotaLookup | None = None,
    settings: Settings | None = None,
) -> Courier:
    """設定からコンポーネントを構築

    Args:
        transport: 送信トランスポート
        lookup_quota: IDごとのクォータを返す関数（キー管理側から提供）
        settings: アプリケーション設定（None の場合は環境変数から読み込んだ設定）
    """
    settings = settings or default_settings
    settings.validate_settings()

    gate = build_gate(settings, lookup_quota=lookup_quota)
    dispatcher = MessageDispatcher(gate, transport)
    health_server = HealthCheckServer(
        port=settings.health_check_port,
        enabled=settings.health_check_enabled,
    )
    return Courier(
        gate=gate,
        dispatcher=dispatcher,
        transport=transport,
        health_server=health_server,
        settings=settings,
    )
