"""送信トランスポート（抽象化レイヤー）.

ブラウザ自動操作で動作するメッセージングクライアントを抽象化します。
送信キューは send() を不透明な非同期操作として扱い、失敗やハングは
RetryExecutor のタイムアウトとリトライで吸収します。
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True, kw_only=True)
class SendReceipt:
    """送信結果.

    Attributes:
        message_id: トランスポートが割り当てたメッセージID
        recipient: 宛先
        timestamp: 送信時刻
    """

    message_id: str
    recipient: str
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "messageId": self.message_id,
            "timestamp": self.timestamp.isoformat(),
            "to": self.recipient,
        }


class Transport(ABC):
    """送信トランスポートの抽象クラス."""

    @abstractmethod
    async def send(self, recipient: str, payload: str) -> SendReceipt:
        """メッセージを送信.

        Args:
            recipient: 宛先
            payload: 送信内容

        Returns:
            送信結果
        """
        pass

    @abstractmethod
    def is_ready(self) -> bool:
        """送信可能な状態かどうか."""
        pass
