"""Application layer orchestration for the admin file workflows (application/services)."""
from __future__ import annotations

import os
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional, Union

import aiofiles
import aiofiles.os

from application.dto import (
    ChunkPartDTO,
    ChunkedUploadSessionDTO,
    ConnectionStatusDTO,
    StoredFileDTO,
    SyncResultDTO,
)
from application.ports.storage import ObjectStorePort, PartReceipt, StoredObject
from application.services.file_sync_service import FileSyncService
from application.utils.storage import (
    build_storage_key,
    generate_access_token,
    guess_content_type,
)
from core.logging_config import get_logger
from domain.common.exceptions import (
    FileRecordSaveFailedException,
    StorageNotConfiguredException,
    StorageOperationException,
    StoredFileNotFoundException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.stored_file import StoredFile
from shared.codes import BusinessCode

logger = get_logger(__name__)

DEFAULT_CHUNK_SIZE = 5 * 1024 * 1024

LocalPath = Union[str, "os.PathLike[str]"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StoredFileApplicationService:
    """High-level admin workflows bridging API, catalog and object store."""

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        storage: ObjectStorePort,
        *,
        public_base_url: str = "",
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        multipart_threshold: Optional[int] = None,
    ):
        self._uow_factory = uow_factory
        self._storage = storage
        self._public_base_url = public_base_url.rstrip("/")
        self._chunk_size = chunk_size
        self._multipart_threshold = multipart_threshold or chunk_size

    # ------------------------------------------------------------------
    # DTO helpers
    # ------------------------------------------------------------------
    def access_url(self, token: str) -> str:
        return f"{self._public_base_url}/files/access/{token}"

    def _to_dto(self, record: StoredFile) -> StoredFileDTO:
        return StoredFileDTO(
            id=record.id or 0,
            file_name=record.file_name,
            storage_key=record.storage_key,
            file_size=record.file_size,
            mime_type=record.mime_type,
            requires_auth=record.requires_auth,
            uploaded_by=record.uploaded_by,
            uploaded_at=record.uploaded_at,
            access_url=self.access_url(record.access_token),
        )

    def _ensure_configured(self, operation: str) -> None:
        if not self._storage.is_configured():
            raise StorageNotConfiguredException(operation=operation)

    async def _save_record(
        self,
        *,
        file_name: str,
        key: str,
        size: int,
        content_type: str,
        uploaded_by: Optional[int],
    ) -> StoredFileDTO:
        record = StoredFile(
            id=None,
            file_name=file_name,
            storage_key=key,
            access_token=generate_access_token(),
            file_size=size,
            mime_type=content_type,
            requires_auth=True,
            uploaded_by=uploaded_by,
            uploaded_at=_utcnow(),
        )
        try:
            async with self._uow_factory() as uow:
                created = await uow.stored_file_repository.create(record)
        except Exception as exc:
            logger.error("file_record_save_failed", key=key, error=str(exc), exc_info=True)
            raise FileRecordSaveFailedException(key) from exc
        logger.info("file_uploaded", file_id=created.id, key=key, size=size)
        return self._to_dto(created)

    # ------------------------------------------------------------------
    # Server-side upload
    # ------------------------------------------------------------------
    async def upload_file(
        self,
        local_path: LocalPath,
        file_name: str,
        *,
        content_type: Optional[str] = None,
        size: Optional[int] = None,
        uploaded_by: Optional[int] = None,
    ) -> StoredFileDTO:
        """Upload a local file and catalog it.

        Files up to the multipart threshold go up in one PUT; larger files
        are sent as sequential parts of ``chunk_size`` bytes.
        """
        self._ensure_configured("upload")
        ctype = content_type or guess_content_type(file_name)
        if size is None:
            try:
                size = await aiofiles.os.path.getsize(local_path)
            except OSError as exc:
                raise StorageOperationException(
                    code=BusinessCode.STORAGE_SOURCE_MISSING,
                    operation="upload",
                    message_key="storage.source_missing",
                ) from exc
        key = build_storage_key(file_name, self._storage.path_prefix)

        if size <= self._multipart_threshold:
            stored = await self._storage.put_object(local_path, key, ctype)
        else:
            stored = await self._multipart_upload(local_path, key, ctype)

        return await self._save_record(
            file_name=file_name,
            key=stored.key,
            size=size,
            content_type=ctype,
            uploaded_by=uploaded_by,
        )

    async def _multipart_upload(self, local_path: LocalPath, key: str, content_type: str) -> StoredObject:
        session = await self._storage.initiate_multipart(key, content_type)
        parts: list[PartReceipt] = []
        try:
            async with aiofiles.open(local_path, "rb") as fh:
                part_number = 1
                while True:
                    chunk = await fh.read(self._chunk_size)
                    if not chunk:
                        break
                    parts.append(
                        await self._storage.upload_part(session.key, session.upload_id, part_number, chunk)
                    )
                    part_number += 1
            return await self._storage.complete_multipart(session.key, session.upload_id, parts)
        except BaseException:
            await self._abort_quietly(session.key, session.upload_id)
            raise

    async def _abort_quietly(self, key: str, upload_id: str) -> None:
        try:
            await self._storage.abort_multipart(key, upload_id)
        except Exception as exc:
            logger.warning("multipart_abort_failed", key=key, upload_id=upload_id, error=str(exc))

    # ------------------------------------------------------------------
    # Browser-driven chunked upload
    # ------------------------------------------------------------------
    async def init_chunked_upload(self, file_name: str, content_type: Optional[str] = None) -> ChunkedUploadSessionDTO:
        self._ensure_configured("initiate_multipart")
        key = build_storage_key(file_name, self._storage.path_prefix)
        session = await self._storage.initiate_multipart(key, content_type or guess_content_type(file_name))
        return ChunkedUploadSessionDTO(upload_id=session.upload_id, key=session.key)

    async def upload_chunk(
        self,
        key: str,
        upload_id: str,
        part_number: int,
        chunk: Union[bytes, LocalPath],
    ) -> ChunkPartDTO:
        receipt = await self._storage.upload_part(key, upload_id, part_number, chunk)
        return ChunkPartDTO(part_number=receipt.part_number, etag=receipt.etag)

    async def complete_chunked_upload(
        self,
        *,
        key: str,
        upload_id: str,
        parts: Iterable[ChunkPartDTO],
        file_name: str,
        file_size: int,
        content_type: Optional[str] = None,
        uploaded_by: Optional[int] = None,
    ) -> StoredFileDTO:
        receipts = [PartReceipt(part_number=p.part_number, etag=p.etag) for p in parts]
        stored = await self._storage.complete_multipart(key, upload_id, receipts)
        return await self._save_record(
            file_name=file_name,
            key=stored.key,
            size=file_size,
            content_type=content_type or guess_content_type(file_name),
            uploaded_by=uploaded_by,
        )

    async def abort_chunked_upload(self, key: str, upload_id: str) -> None:
        """Best-effort cleanup; failures are logged, never raised."""
        await self._abort_quietly(key, upload_id)

    # ------------------------------------------------------------------
    # Catalog management
    # ------------------------------------------------------------------
    async def list_files(self) -> list[StoredFileDTO]:
        async with self._uow_factory(readonly=True) as uow:
            records = await uow.stored_file_repository.list_all()
        return [self._to_dto(r) for r in records]

    async def delete_file(self, file_id: int) -> None:
        """Delete the remote object, then the catalog record.

        No transaction is held open across the storage round trip; if the
        remote delete fails the record stays and the call can be retried.
        """
        async with self._uow_factory(readonly=True) as uow:
            record = await uow.stored_file_repository.get_by_id(file_id)
        if record is None:
            raise StoredFileNotFoundException(file_id)

        await self._storage.delete_object(record.storage_key)

        async with self._uow_factory() as uow:
            await uow.stored_file_repository.delete(file_id)
        logger.info("file_deleted", file_id=file_id, key=record.storage_key)

    async def toggle_auth(self, file_id: int, requires_auth: bool) -> StoredFileDTO:
        async with self._uow_factory() as uow:
            repo = uow.stored_file_repository
            if not await repo.update_auth_flag(file_id, requires_auth):
                raise StoredFileNotFoundException(file_id)
            record = await repo.get_by_id(file_id)
        if record is None:
            raise StoredFileNotFoundException(file_id)
        logger.info("file_auth_updated", file_id=file_id, requires_auth=requires_auth)
        return self._to_dto(record)

    async def test_connection(self) -> ConnectionStatusDTO:
        self._ensure_configured("test_connection")
        ok = await self._storage.test_connection()
        return ConnectionStatusDTO(ok=ok)

    async def sync_files(self) -> SyncResultDTO:
        return await FileSyncService(self._uow_factory, self._storage).reconcile()
