"""ヘルスチェックサーバー"""

import json
import logging
from collections.abc import Callable
from http.server import BaseHTTPRequestHandler, HTTPServer
from threading import Thread

from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

logger = logging.getLogger(__name__)


class HealthCheckHandler(BaseHTTPRequestHandler):
    """ヘルスチェック用HTTPハンドラー

    コールバックはリクエストを受けたサーバーの HealthCheckServer から取得する。
    """

    server: "HealthHTTPServer"

    def log_message(self, format: str, *args) -> None:
        """ログ出力をロガーにリダイレクト"""
        logger.debug(f"Health check: {format % args}")

    def do_GET(self) -> None:
        """GETリクエストの処理"""
        if self.path == "/health" or self.path == "/":
            self._handle_health()
        elif self.path == "/ready":
            self._handle_ready()
        elif self.path == "/queue/stats":
            self._handle_queue_stats()
        elif self.path == "/metrics":
            self._handle_metrics()
        else:
            self.send_error(404, "Not Found")

    def _handle_health(self) -> None:
        """ヘルスチェックエンドポイント"""
        try:
            status = self._status()
            is_healthy = status.get("status") == "healthy"
            self._send_json(200 if is_healthy else 503, status)
        except Exception as e:
            logger.error(f"Health check error: {e}")
            self._send_json(500, {"status": "error", "error": str(e)})

    def _handle_ready(self) -> None:
        """レディネスチェックエンドポイント"""
        try:
            status = self._status()
            is_ready = status.get("transport") == "connected"
            self._send_json(200 if is_ready else 503, {"ready": is_ready})
        except Exception as e:
            logger.error(f"Ready check error: {e}")
            self._send_json(500, {"ready": False, "error": str(e)})

    def _handle_queue_stats(self) -> None:
        """送信キューの統計情報エンドポイント"""
        try:
            get_stats_func = self.server.owner.get_queue_stats
            stats = get_stats_func() if get_stats_func else {}
            self._send_json(200, {"success": True, "data": stats})
        except Exception as e:
            logger.error(f"Queue stats error: {e}")
            self._send_json(500, {"success": False, "error": str(e)})

    def _handle_metrics(self) -> None:
        """Prometheus メトリクスエンドポイント"""
        output = generate_latest()
        self.send_response(200)
        self.send_header("Content-Type", CONTENT_TYPE_LATEST)
        self.end_headers()
        self.wfile.write(output)

    def _status(self) -> dict:
        get_status_func = self.server.owner.get_status
        return get_status_func() if get_status_func else {"status": "unknown"}

    def _send_json(self, code: int, body: dict) -> None:
        self.send_response(code)
        self.send_header("Content-Type", "application/json")
        self.end_headers()
        self.wfile.write(json.dumps(body).encode() + b"\n")


class HealthHTTPServer(HTTPServer):
    """コールバックの持ち主を保持する HTTPServer"""

    def __init__(
        self, server_address: tuple[str, int], owner: "HealthCheckServer"
    ):
        super().__init__(server_address, HealthCheckHandler)
        self.owner = owner


class HealthCheckServer:
    """ヘルスチェックサーバー"""

    def __init__(self, port: int = 8080, enabled: bool = True):
        self.port = port
        self.enabled = enabled
        self.get_status: Callable[[], dict] | None = None
        self.get_queue_stats: Callable[[], dict] | None = None
        self.server: HealthHTTPServer | None = None
        self.thread: Thread | None = None

    def set_status_callback(self, callback: Callable[[], dict]) -> None:
        """ステータス取得コールバックを設定"""
        self.get_status = callback

    def set_queue_stats_callback(self, callback: Callable[[], dict]) -> None:
        """キュー統計取得コールバックを設定"""
        self.get_queue_stats = callback

    def start(self) -> None:
        """サーバーを開始"""
        if not self.enabled:
            logger.info("Health check server is disabled")
            return

        try:
            self.server = HealthHTTPServer(("0.0.0.0", self.port), self)
            self.thread = Thread(target=self.server.serve_forever, daemon=True)
            self.thread.start()
            logger.info(f"Health check server started on port {self.port}")
        except OSError as e:
            logger.error(f"Failed to start health check server: {e}")

    def stop(self) -> None:
        """サーバーを停止"""
        if self.server:
            self.server.shutdown()
            self.server.server_close()
            self.server = None
            logger.info("Health check server stopped")
