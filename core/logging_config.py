"""
Structlog 日志配置模块

API 进程与 Celery worker 共用同一条处理链：structlog 事件和标准库日志
（uvicorn、celery、sqlalchemy）都经 ProcessorFormatter 渲染成同一格式。
"""
import json
import logging
import re
from typing import Any, List

import structlog
from structlog.contextvars import merge_contextvars
from structlog.dev import ConsoleRenderer
from structlog.processors import JSONRenderer, TimeStamper, add_log_level
from structlog.stdlib import ProcessorFormatter

from core.config import settings


# 键名包含这些片段的字段一律打码
REDACTED_KEY_PARTS = ("secret", "password", "token", "api_key", "signature", "authorization")

# Telegram Bot API 的 URL 把 token 放在路径里：/bot<id>:<secret>/sendMessage
_BOT_TOKEN_RE = re.compile(r"bot\d+:[A-Za-z0-9_-]+")

# 第三方库日志降噪：SQL 回显由 DATABASE__ECHO 控制，HTTP 客户端只保留告警
NOISY_LOGGERS = ("sqlalchemy.engine", "httpx", "httpcore", "stripe", "aiosqlite", "celery.worker.strategy")


def redact_secrets(_, __, event_dict: dict) -> dict:
    """打码敏感字段，并抹掉事件文本里的 bot token。"""
    for key in list(event_dict):
        if any(part in key.lower() for part in REDACTED_KEY_PARTS):
            event_dict[key] = "***"
    event = event_dict.get("event")
    if isinstance(event, str) and "bot" in event:
        event_dict["event"] = _BOT_TOKEN_RE.sub("bot***", event)
    return event_dict


def add_service_context(_, __, event_dict: dict) -> dict:
    event_dict.setdefault("service", settings.PROJECT_NAME)
    event_dict.setdefault("env", settings.ENVIRONMENT)
    return event_dict


def get_renderer() -> Any:
    """根据环境选择渲染器 (Console in DEBUG, JSON otherwise)."""
    if settings.DEBUG:
        return ConsoleRenderer(colors=True)

    # structlog 会向 serializer 传入 default 等关键字参数
    def _dumps(obj, default=None, **kwargs):
        return json.dumps(obj, ensure_ascii=False, default=default, **kwargs)
    return JSONRenderer(serializer=_dumps)


def configure_logging(level: str | None = None) -> None:
    """配置 structlog 并把标准库 logging 桥接到同一处理链。可重复调用。"""
    shared_pre_chain: List[Any] = [
        merge_contextvars,
        add_log_level,
        TimeStamper(fmt="iso", utc=True),
        add_service_context,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        redact_secrets,
    ]

    structlog.configure(
        processors=[
            *shared_pre_chain,
            ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = ProcessorFormatter(
        foreign_pre_chain=shared_pre_chain,
        processors=[
            ProcessorFormatter.remove_processors_meta,
            get_renderer(),
        ],
    )
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel((level or settings.LOG_LEVEL).upper())

    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    """获取 structlog logger 实例。"""
    return structlog.get_logger(name)
