"""
API依赖项 - 认证、授权与服务装配
"""
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional

from application.ports.storage import ObjectStorePort
from application.services.file_access_service import FileAccessService
from application.services.stored_file_service import StoredFileApplicationService
from application.services.token_service import Principal, TokenService
from core.config import settings
from core.exceptions import ForbiddenException, UnauthorizedException, TokenExpiredException
from infrastructure.adapters.storage_port import S3StoragePortAdapter
from infrastructure.external.storage import S3ObjectStoreClient, get_storage
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork

# HTTP Bearer for direct API calls
http_bearer = HTTPBearer(
    scheme_name="Bearer",
    description="JWT Bearer token issued by the identity provider",
    auto_error=False,
)


def get_token_service() -> TokenService:
    return TokenService()


async def get_token(
    request: Request,
    bearer_token: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
) -> Optional[str]:
    """从 Bearer 头或认证 Cookie 中提取 token（可能为空）"""
    if bearer_token and bearer_token.credentials:
        return bearer_token.credentials
    return request.cookies.get(settings.AUTH_COOKIE_NAME) or None


async def get_optional_principal(
    token: Optional[str] = Depends(get_token),
    tokens: TokenService = Depends(get_token_service),
) -> Optional[Principal]:
    """解析调用方身份；无效或过期的令牌视为匿名"""
    if not token:
        return None
    try:
        return tokens.verify_access_token(token)
    except TokenExpiredException:
        return None


async def get_current_principal(
    token: Optional[str] = Depends(get_token),
    tokens: TokenService = Depends(get_token_service),
) -> Principal:
    """获取当前登录用户"""
    if not token:
        raise UnauthorizedException("未提供认证凭据")
    principal = tokens.verify_access_token(token)
    if principal is None:
        raise UnauthorizedException("无效的认证凭据")
    return principal


async def get_current_admin(
    principal: Principal = Depends(get_current_principal),
) -> Principal:
    """获取当前管理员用户"""
    if not principal.is_admin:
        raise ForbiddenException("需要管理员权限")
    return principal


async def get_storage_port(client: S3ObjectStoreClient = Depends(get_storage)) -> ObjectStorePort:
    return S3StoragePortAdapter(client)


async def get_stored_file_service(
    storage: ObjectStorePort = Depends(get_storage_port),
) -> StoredFileApplicationService:
    s = settings.storage
    return StoredFileApplicationService(
        uow_factory=SQLAlchemyUnitOfWork,
        storage=storage,
        public_base_url=settings.PUBLIC_BASE_URL,
        chunk_size=s.multipart_chunk_size,
        multipart_threshold=s.effective_multipart_threshold,
    )


async def get_file_access_service(
    storage: ObjectStorePort = Depends(get_storage_port),
) -> FileAccessService:
    return FileAccessService(
        uow_factory=SQLAlchemyUnitOfWork,
        storage=storage,
        url_ttl=settings.storage.access_url_ttl,
    )
