"""文件访问入口：令牌 -> 短时效预签名链接重定向。"""
from __future__ import annotations

from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse

from api.dependencies import get_file_access_service, get_optional_principal
from application.services.file_access_service import FileAccessService
from application.services.token_service import Principal
from core.config import settings
from domain.common.exceptions import FileAuthRequiredException

router = APIRouter(
    prefix="/files",
    tags=["文件访问"],
)


def login_redirect_url(return_to: str) -> str:
    sep = "&" if "?" in settings.LOGIN_URL else "?"
    return f"{settings.LOGIN_URL}{sep}{urlencode({'redirect_to': return_to})}"


@router.get(
    "/access/{token}",
    summary="通过访问令牌下载文件",
    status_code=302,
    response_class=RedirectResponse,
)
async def access_file(
    token: str,
    request: Request,
    principal: Optional[Principal] = Depends(get_optional_principal),
    service: FileAccessService = Depends(get_file_access_service),
):
    """未知令牌返回 404；需登录的文件对匿名用户跳转登录页；预签名失败返回 500。"""
    try:
        url = await service.resolve(token, authenticated=principal is not None)
    except FileAuthRequiredException:
        return RedirectResponse(login_redirect_url(str(request.url)), status_code=302)
    return RedirectResponse(url, status_code=302, headers={"Cache-Control": "no-store"})
