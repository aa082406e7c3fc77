"""
Structlog 日志配置模块

事件名风格（``logger.info("storage_object_put", key=...)``），stdlib logging
（uvicorn / celery / alembic）经 ProcessorFormatter 汇入同一条处理链。
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

REDACTED = "***"

# 预签名链接等同于临时凭据：签名与凭据参数不落日志
_PRESIGNED_PARAM = re.compile(r"(X-Amz-(?:Signature|Credential|Security-Token)=)[^&\s\"']+", re.IGNORECASE)
_AUTH_SIGNATURE = re.compile(r"(Signature=)[0-9a-f]{64}")
_SECRET_FIELDS = {"aws_secret_access_key", "secret_access_key", "secret_key", "authorization"}

# 第三方库的噪音日志级别
_QUIET_LOGGERS = {
    # httpx 在 INFO 级别打印完整 URL（含预签名参数）
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
}


def redact_text(value: str) -> str:
    value = _PRESIGNED_PARAM.sub(r"\1" + REDACTED, value)
    return _AUTH_SIGNATURE.sub(r"\1" + REDACTED, value)


def redact_secrets(_logger: Any, _method: str, event_dict: dict) -> dict:
    """Structlog processor: mask credentials in every event."""
    for key, value in list(event_dict.items()):
        if key.lower() in _SECRET_FIELDS:
            event_dict[key] = REDACTED
        elif isinstance(value, str):
            event_dict[key] = redact_text(value)
    return event_dict


def get_renderer() -> Any:
    """DEBUG 下使用彩色控制台输出，其余环境输出 JSON。"""
    if settings.DEBUG:
        return ConsoleRenderer(colors=True)

    # structlog 会向 serializer 传入 default 等参数
    def _dumps(obj, default=None, **kwargs):
        return json.dumps(obj, ensure_ascii=False, default=default, **kwargs)

    return JSONRenderer(serializer=_dumps)


def _pre_chain() -> List[Any]:
    return [
        merge_contextvars,
        add_log_level,
        TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        redact_secrets,
    ]


def configure_logging() -> None:
    """配置 structlog，并把 stdlib root logger 接到同一渲染器。

    可重复调用（API 进程与 Celery worker 各自在入口处调用一次）。
    """
    pre_chain = _pre_chain()

    structlog.configure(
        processors=[*pre_chain, ProcessorFormatter.wrap_for_formatter],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(
        ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[ProcessorFormatter.remove_processors_meta, get_renderer()],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)

    for name, level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    """获取 structlog logger 实例。"""
    return structlog.get_logger(name)
