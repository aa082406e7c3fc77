"""
访问日志中间件

每个请求记录一条开始事件和一条结束事件（含耗时）。文件访问令牌、签名参数
与凭据字段在写日志前脱敏；302 的 Location（预签名链接）不记录。
"""
import json
import re
import time
from typing import Any, Optional
from urllib.parse import parse_qs

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from core.config import settings
from core.logging_config import REDACTED, get_logger

logger = get_logger(__name__)

_ACCESS_PATH = re.compile(r"^(/files/access/)[^/]+")

SKIP_PATHS = frozenset({"/health", "/docs", "/redoc", "/openapi.json"})

SENSITIVE_FIELDS = frozenset({
    "password",
    "token",
    "secret",
    "access_token",
    "upload_id",
    "aws_secret_access_key",
    "x-amz-signature",
    "x-amz-credential",
    "x-amz-security-token",
})

_BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})


def mask_path(path: str) -> str:
    """``/files/access/<token>`` -> ``/files/access/***``"""
    return _ACCESS_PATH.sub(r"\1" + REDACTED, path)


def sanitize(data: Any) -> Any:
    if isinstance(data, dict):
        return {
            key: REDACTED if str(key).lower() in SENSITIVE_FIELDS else sanitize(value)
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [sanitize(item) for item in data]
    return data


def _wants_body(request: Request) -> bool:
    # X-Log-Body 请求头可逐请求覆盖默认值
    override = (request.headers.get("X-Log-Body") or "").lower()
    if override in {"true", "1", "yes"}:
        return True
    if override in {"false", "0", "no"}:
        return False
    return settings.DEBUG and settings.LOG_REQUEST_BODY_ENABLE_BY_DEFAULT


async def _body_snippet(request: Request) -> Optional[Any]:
    content_type = request.headers.get("content-type", "").lower()
    if content_type.startswith("multipart/form-data"):
        # 上传的文件与分片内容不读取
        return {"multipart": True} if settings.LOG_REQUEST_BODY_ALLOW_MULTIPART else None

    raw = await request.body()
    if not raw:
        return None
    text = raw[: settings.LOG_REQUEST_BODY_MAX_BYTES].decode("utf-8", errors="ignore")
    if "application/json" in content_type:
        try:
            return sanitize(json.loads(text))
        except ValueError:
            return text
    if "application/x-www-form-urlencoded" in content_type:
        form = {k: v[0] if len(v) == 1 else v for k, v in parse_qs(text).items()}
        return sanitize(form)
    return text


class LoggingMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next):
        if request.url.path in SKIP_PATHS:
            return await call_next(request)

        fields: dict[str, Any] = {
            "method": request.method,
            "path": mask_path(request.url.path),
            "query_params": sanitize(dict(request.query_params)),
        }
        if request.method in _BODY_METHODS and _wants_body(request):
            snippet = await _body_snippet(request)
            if snippet is None:
                fields["has_body"] = True
            else:
                fields["body"] = snippet

        logger.info("request_started", **fields)
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "request_failed",
                duration=time.perf_counter() - started,
                error_type=type(exc).__name__,
                exc_info=True,
                **fields,
            )
            raise

        duration = time.perf_counter() - started
        status_code = response.status_code
        if status_code >= 500:
            log, event = logger.error, "request_server_error"
        elif status_code >= 400:
            log, event = logger.warning, "request_client_error"
        else:
            log, event = logger.info, "request_completed"
        log(event, status_code=status_code, duration=duration, **fields)

        response.headers["X-Process-Time"] = f"{duration:.3f}"
        return response
