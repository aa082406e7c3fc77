"""Resolve opaque access tokens to short-lived presigned URLs."""
from __future__ import annotations

from typing import Callable

from application.ports.storage import ObjectStorePort
from core.logging_config import get_logger
from domain.common.exceptions import (
    FileAuthRequiredException,
    StorageOperationException,
    StoredFileNotFoundException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from shared.codes import BusinessCode

logger = get_logger(__name__)

ACCESS_URL_TTL_SECONDS = 300


class FileAccessService:
    """Token lookup, auth gate, then a redirect target. File bytes are never proxied."""

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        storage: ObjectStorePort,
        *,
        url_ttl: int = ACCESS_URL_TTL_SECONDS,
    ):
        self._uow_factory = uow_factory
        self._storage = storage
        self._url_ttl = url_ttl

    async def resolve(self, token: str, *, authenticated: bool) -> str:
        """Return the presigned URL to redirect to.

        Raises:
            StoredFileNotFoundException: unknown token
            FileAuthRequiredException: file requires login and caller has none
            StorageOperationException: presigning failed
        """
        if not token:
            raise StoredFileNotFoundException()

        async with self._uow_factory(readonly=True) as uow:
            record = await uow.stored_file_repository.get_by_token(token)
        if record is None:
            raise StoredFileNotFoundException()
        if not record.is_accessible_by(authenticated):
            raise FileAuthRequiredException()

        try:
            url = await self._storage.presigned_url(record.storage_key, self._url_ttl)
        except StorageOperationException as exc:
            logger.error(
                "file_access_presign_failed",
                file_id=record.id,
                code=int(exc.code),
                operation=exc.operation,
            )
            raise StorageOperationException(
                code=BusinessCode.SYSTEM_ERROR,
                operation="presign",
                message_key="file.access.failed",
            ) from exc

        logger.info("file_access_granted", file_id=record.id, authenticated=authenticated)
        return url
