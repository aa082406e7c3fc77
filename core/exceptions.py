"""
全局异常处理：业务码 -> HTTP 状态码，并统一渲染为响应信封
"""
import traceback
import uuid
from typing import Mapping, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette import status as http_status
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.i18n import get_locale, t
from core.logging_config import get_logger
from core.response import error_response, to_json_response
from domain.common.exceptions import BusinessException
from shared.codes import BusinessCode

logger = get_logger(__name__)


class UnauthorizedException(BusinessException):
    def __init__(self, message: str = "Unauthorized"):
        super().__init__(
            code=BusinessCode.UNAUTHORIZED,
            message=message,
            error_type="Unauthorized",
            message_key="auth.unauthorized",
        )


class ForbiddenException(BusinessException):
    def __init__(self, message: str = "Forbidden"):
        super().__init__(
            code=BusinessCode.FORBIDDEN,
            message=message,
            error_type="Forbidden",
            message_key="auth.forbidden",
        )


class TokenExpiredException(BusinessException):
    """签名有效但已过期的 JWT（与“无凭据”区分，便于前端刷新令牌）"""

    def __init__(self):
        super().__init__(
            code=BusinessCode.TOKEN_EXPIRED,
            message="Token expired",
            error_type="TokenExpired",
            message_key="auth.token.expired",
        )


_STATUS_BY_CODE = {
    BusinessCode.PARAM_VALIDATION_ERROR: http_status.HTTP_422_UNPROCESSABLE_ENTITY,
    BusinessCode.NOT_FOUND: http_status.HTTP_404_NOT_FOUND,
    BusinessCode.FILE_NOT_FOUND: http_status.HTTP_404_NOT_FOUND,
    BusinessCode.FILE_RECORD_SAVE_FAILED: http_status.HTTP_500_INTERNAL_SERVER_ERROR,
    BusinessCode.PERMISSION_ERROR: http_status.HTTP_403_FORBIDDEN,
    BusinessCode.FORBIDDEN: http_status.HTTP_403_FORBIDDEN,
    BusinessCode.UNAUTHORIZED: http_status.HTTP_401_UNAUTHORIZED,
    BusinessCode.TOKEN_INVALID: http_status.HTTP_401_UNAUTHORIZED,
    BusinessCode.TOKEN_EXPIRED: http_status.HTTP_401_UNAUTHORIZED,
    BusinessCode.FILE_AUTH_REQUIRED: http_status.HTTP_401_UNAUTHORIZED,
    BusinessCode.NETWORK_ERROR: http_status.HTTP_502_BAD_GATEWAY,
    BusinessCode.SERVICE_UNAVAILABLE: http_status.HTTP_503_SERVICE_UNAVAILABLE,
    BusinessCode.STORAGE_NOT_CONFIGURED: http_status.HTTP_503_SERVICE_UNAVAILABLE,
    BusinessCode.STORAGE_INVALID_KEY: http_status.HTTP_400_BAD_REQUEST,
    BusinessCode.STORAGE_SOURCE_MISSING: http_status.HTTP_400_BAD_REQUEST,
}

_CODE_BY_HTTP_STATUS = {
    401: BusinessCode.UNAUTHORIZED,
    403: BusinessCode.FORBIDDEN,
    404: BusinessCode.NOT_FOUND,
    405: BusinessCode.PARAM_ERROR,
    503: BusinessCode.SERVICE_UNAVAILABLE,
}


def business_code_to_http_status(code: int) -> int:
    """未单独映射的业务码按号段处理：4xxxx 系统错误为 500，其余为 400。"""
    try:
        code = BusinessCode(code)
    except ValueError:
        return http_status.HTTP_400_BAD_REQUEST
    if code in _STATUS_BY_CODE:
        return _STATUS_BY_CODE[code]
    if code >= BusinessCode.SYSTEM_ERROR:
        return http_status.HTTP_500_INTERNAL_SERVER_ERROR
    return http_status.HTTP_400_BAD_REQUEST


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())


def _render(
    request: Request,
    status_code: int,
    *,
    code: int,
    message: str,
    headers: Optional[Mapping[str, str]] = None,
    **error_fields,
):
    body = error_response(
        code,
        message,
        request_id=_request_id(request),
        locale=get_locale(),
        **error_fields,
    )
    return to_json_response(body, status_code, headers)


def register_exception_handlers(app: FastAPI) -> None:

    @app.exception_handler(BusinessException)
    async def business_exception_handler(request: Request, exc: BusinessException):
        params = exc.format_params if isinstance(exc.format_params, dict) else (exc.details or {})
        status_code = business_code_to_http_status(exc.code)
        if status_code >= 500:
            # 存储异常的原始细节已由客户端记录，这里只记录业务视图
            logger.warning(
                "business_exception",
                request_id=_request_id(request),
                code=int(exc.code),
                error_type=exc.error_type,
                message_key=exc.message_key,
                details=exc.details,
            )
        headers = {"WWW-Authenticate": "Bearer"} if status_code == http_status.HTTP_401_UNAUTHORIZED else None
        return _render(
            request,
            status_code,
            code=exc.code,
            message=t(exc.message_key or exc.message, **params),
            headers=headers,
            error_type=exc.error_type,
            message_key=exc.message_key,
            details=exc.details,
            field=exc.field,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        return _render(
            request,
            http_status.HTTP_422_UNPROCESSABLE_ENTITY,
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=t("validation.failed", reason=first.get("msg", "unknown")),
            error_type="ValidationError",
            message_key="validation.failed",
            field=".".join(str(loc) for loc in first.get("loc", [])[1:]),
            details={
                "errors": [
                    {"loc": list(e.get("loc", [])), "msg": e.get("msg"), "type": e.get("type")}
                    for e in errors
                ]
            },
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return _render(
            request,
            exc.status_code,
            code=_CODE_BY_HTTP_STATUS.get(exc.status_code, BusinessCode.SYSTEM_ERROR),
            message=str(exc.detail),
            headers=exc.headers,
            error_type="HTTPError",
            details={"status_code": exc.status_code},
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.error("unhandled_exception", request_id=_request_id(request), error=str(exc), exc_info=True)
        details = None
        if app.debug:
            details = {"exception": str(exc), "traceback": traceback.format_exc()}
        return _render(
            request,
            http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            code=BusinessCode.SYSTEM_ERROR,
            message=t("error.internal"),
            error_type="SystemError",
            message_key="error.internal",
            details=details,
        )
