"""
S3 对象存储客户端

API 进程在 lifespan 中创建一个共享客户端（复用 httpx 连接池）；
Celery 任务每次运行用 ``build_storage_client()`` 自建并自行关闭。
"""
from typing import Optional

from core.config import StorageSettings, settings
from core.logging_config import get_logger
from .client import S3ObjectStoreClient
from .config import S3Credentials, StorageTimeouts
from .exceptions import (
    InvalidKeyError,
    LocalSourceMissingError,
    NotConfiguredError,
    RemoteRejectedError,
    ResponseUnparsableError,
    StorageError,
    TransportError,
)
from .keys import sanitize_key
from .models import ListedObject, MultipartUpload, PutObjectResult, UploadedPart

logger = get_logger(__name__)

_shared_client: Optional[S3ObjectStoreClient] = None


def build_storage_client(storage_settings: Optional[StorageSettings] = None) -> S3ObjectStoreClient:
    group = storage_settings or settings.storage
    return S3ObjectStoreClient(
        S3Credentials.from_settings(group),
        timeouts=StorageTimeouts.from_settings(group),
    )


async def init_storage_client() -> S3ObjectStoreClient:
    global _shared_client
    if _shared_client is None:
        _shared_client = build_storage_client()
        creds = _shared_client.credentials
        if creds.is_configured:
            logger.info("storage_client_initialized", bucket=creds.bucket, region=creds.region)
        else:
            # 照常启动；存储相关接口返回“未配置”
            logger.warning("storage_not_configured")
    return _shared_client


async def shutdown_storage_client() -> None:
    global _shared_client
    client, _shared_client = _shared_client, None
    if client is not None:
        await client.aclose()
        logger.info("storage_client_shutdown")


async def get_storage() -> S3ObjectStoreClient:
    """FastAPI 依赖：返回 lifespan 中创建的共享客户端"""
    if _shared_client is None:
        raise RuntimeError("storage client is not initialized; init_storage_client() runs in the app lifespan")
    return _shared_client


__all__ = [
    "build_storage_client",
    "init_storage_client",
    "shutdown_storage_client",
    "get_storage",
    "S3ObjectStoreClient",
    "S3Credentials",
    "StorageTimeouts",
    "sanitize_key",
    "ListedObject",
    "PutObjectResult",
    "MultipartUpload",
    "UploadedPart",
    "StorageError",
    "NotConfiguredError",
    "InvalidKeyError",
    "LocalSourceMissingError",
    "TransportError",
    "RemoteRejectedError",
    "ResponseUnparsableError",
]
