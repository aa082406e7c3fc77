"""
统一响应信封：``{code, message, data, error}``
"""
from datetime import datetime, timezone
from typing import Any, Generic, Mapping, Optional, TypeVar

from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_serializer

from shared.codes import BusinessCode

T = TypeVar("T")


def _utc_iso(ts: datetime) -> str:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class ErrorDetail(BaseModel):
    type: str
    message_key: Optional[str] = None
    details: Optional[dict] = None
    field: Optional[str] = None
    request_id: Optional[str] = None
    locale: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_serializer("timestamp")
    def serialize_timestamp(self, timestamp: datetime) -> str:
        return _utc_iso(timestamp)


class Response(BaseModel, Generic[T]):
    """所有 JSON 接口共用的响应模型；成功时 error 为空，失败时 data 为空"""
    code: int
    message: str
    data: Optional[T] = None
    error: Optional[ErrorDetail] = None


def success_response(
    data: Any = None,
    message: str = "Success",
    code: int = BusinessCode.SUCCESS,
) -> Response:
    return Response(code=code, message=message, data=data)


def error_response(
    code: int,
    message: str,
    *,
    error_type: str = "BusinessError",
    message_key: Optional[str] = None,
    details: Optional[dict] = None,
    field: Optional[str] = None,
    request_id: Optional[str] = None,
    locale: Optional[str] = None,
) -> Response:
    """
    构造失败响应。

    ``message`` 必须是已按 locale 渲染好的文本；``message_key`` 原样回传，
    便于前端自行翻译。
    """
    return Response(
        code=code,
        message=message,
        error=ErrorDetail(
            type=error_type,
            message_key=message_key,
            details=details,
            field=field,
            request_id=request_id,
            locale=locale,
        ),
    )


def to_json_response(
    response: Response,
    status_code: int,
    headers: Optional[Mapping[str, str]] = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=response.model_dump(mode="json"),
        headers=dict(headers) if headers else None,
    )
