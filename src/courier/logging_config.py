"""ログ設定"""

import logging
import sys
from collections.abc import MutableMapping
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import structlog

from .config import Settings


def local_timestamper(
    _logger: Any, _method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """ローカルタイムゾーンでタイムスタンプを追加するプロセッサー.

    フォーマット: YYYY-MM-DD HH:MM:SS.mmm (例: 2026-01-18 23:31:34.525)
    """
    now = datetime.now().astimezone()
    event_dict["timestamp"] = now.strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
    return event_dict


def setup_logging(settings: Settings) -> None:
    """ログ設定のセットアップ.

    標準の logging と structlog を統合し、どちらのロガーからの出力も
    同じフォーマットでコンソール（および設定されていればファイル）に出力する。
    """
    handlers: list[logging.Handler] = [
        logging.StreamHandler(sys.stdout),
    ]

    # ファイルログが設定されている場合
    if settings.log_file:
        try:
            log_path = Path(settings.log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)

            file_handler = RotatingFileHandler(
                log_path,
                maxBytes=settings.log_max_size * 1024 * 1024,  # MB to bytes
                backupCount=settings.log_backup_count,
                encoding="utf-8",
            )
            handlers.append(file_handler)
        except OSError as e:
            # ログファイルの作成に失敗した場合は警告を出して続行
            logging.warning(
                f"Could not set up file logging to {settings.log_file}: {e}. "
                "Continuing with console logging only."
            )

    # すべてのハンドラーにProcessorFormatterを適用（structlog用）
    structlog_formatter = structlog.stdlib.ProcessorFormatter(
        processor=structlog.dev.ConsoleRenderer(colors=False),
        foreign_pre_chain=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            local_timestamper,
        ],
    )
    for handler in handlers:
        handler.setFormatter(structlog_formatter)

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        handlers=handlers,
        force=True,
    )

    # structlogの設定（標準のloggingと統合）
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            local_timestamper,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
