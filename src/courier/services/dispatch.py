"""メッセージ送信サービス"""

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from ..errors.transport import TransportNotReadyError
from ..gate import AdmissionGatedQueue
from ..queue.retry import RetryPolicy
from .transport import SendReceipt, Transport

logger = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class BulkSendResult:
    """一括送信の宛先ごとの結果"""

    recipient: str
    success: bool
    receipt: SendReceipt | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        if self.receipt is not None:
            return {"number": self.recipient, **self.receipt.to_dict()}
        return {"number": self.recipient, "success": False, "error": self.error}


class MessageDispatcher:
    """メッセージ送信サービス

    送信はすべてアドミッション制御付き送信キューを経由し、
    トランスポートへの呼び出しは常に1件ずつ実行される。
    """

    def __init__(
        self,
        gate: AdmissionGatedQueue,
        transport: Transport,
        policy: RetryPolicy | None = None,
    ):
        """初期化

        Args:
            gate: アドミッション制御付き送信キュー
            transport: 送信トランスポート
            policy: 送信タスクのリトライポリシー（None の場合はキューのデフォルト）
        """
        self.gate = gate
        self.transport = transport
        self.policy = policy

    async def send_message(
        self, identity: str | None, recipient: str, text: str
    ) -> SendReceipt:
        """メッセージを1件送信

        Args:
            identity: 呼び出し元のID
            recipient: 宛先
            text: 送信内容

        Returns:
            送信結果

        Raises:
            TransportNotReadyError: トランスポートが未接続の場合
            RateLimitedError: アドミッションで拒否された場合
            ExhaustedRetriesError: すべての試行が失敗した場合
        """
        self._ensure_ready()
        future = await self.gate.submit(
            identity,
            label=f"send to {recipient}",
            work=self._send_work(recipient, text),
            path="/send",
            policy=self.policy,
        )
        return await future

    async def send_bulk(
        self, identity: str | None, recipients: Sequence[str], text: str
    ) -> list[BulkSendResult]:
        """複数の宛先にメッセージを送信

        アドミッション判定は呼び出し全体で1回だけ行い、宛先ごとに
        1件ずつタスクをキューに追加する。一部の宛先で失敗しても
        他の宛先の送信は継続する。

        Args:
            identity: 呼び出し元のID
            recipients: 宛先のリスト
            text: 送信内容

        Returns:
            宛先ごとの結果（recipients と同じ順序）
        """
        self._ensure_ready()
        await self.gate.admit(
            identity, path="/send/bulk", recipient_count=len(recipients)
        )
        logger.info(f"Bulk send to {len(recipients)} recipients")

        futures = [
            await self.gate.queue.enqueue(
                f"send to {recipient}",
                self._send_work(recipient, text),
                policy=self.policy,
            )
            for recipient in recipients
        ]
        outcomes = await asyncio.gather(*futures, return_exceptions=True)

        results = []
        for recipient, outcome in zip(recipients, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                logger.error(f"Bulk send to {recipient} failed: {outcome}")
                results.append(
                    BulkSendResult(recipient=recipient, success=False, error=str(outcome))
                )
            else:
                results.append(
                    BulkSendResult(recipient=recipient, success=True, receipt=outcome)
                )
        return results

    def _ensure_ready(self) -> None:
        if not self.transport.is_ready():
            raise TransportNotReadyError("Messaging client is not connected")

    def _send_work(self, recipient: str, text: str):
        async def work() -> SendReceipt:
            logger.debug(f"Sending to {recipient}: {text[:50]}")
            return await self.transport.send(recipient, text)

        return work
