"""サービスモジュール"""

from .dispatch import BulkSendResult, MessageDispatcher
from .transport import SendReceipt, Transport

__all__ = ["BulkSendResult", "MessageDispatcher", "SendReceipt", "Transport"]
