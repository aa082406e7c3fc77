"""Reconcile the stored file catalog against the bucket listing."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

from application.dto import SyncResultDTO
from application.ports.storage import ObjectStorePort, RemoteObject
from application.utils.storage import (
    display_name_from_key,
    generate_access_token,
    guess_content_type,
)
from core.logging_config import get_logger
from domain.common.exceptions import StorageNotConfiguredException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.stored_file import StoredFile

logger = get_logger(__name__)


def is_importable_key(key: str) -> bool:
    """Folder markers and keys without a file name are never catalogued."""
    return bool(key) and not key.endswith("/") and bool(display_name_from_key(key))


class FileSyncService:
    """Diff the first page of the bucket listing against catalog keys.

    Removals and additions run in one unit of work, so a failure partway
    leaves the catalog untouched and the pass can simply be retried.
    """

    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork], storage: ObjectStorePort):
        self._uow_factory = uow_factory
        self._storage = storage

    def _to_record(self, obj: RemoteObject) -> StoredFile:
        name = display_name_from_key(obj.key)
        return StoredFile(
            id=None,
            file_name=name,
            storage_key=obj.key,
            access_token=generate_access_token(),
            file_size=obj.size,
            mime_type=guess_content_type(name),
            requires_auth=True,
            uploaded_by=None,
            uploaded_at=obj.last_modified or datetime.now(timezone.utc),
        )

    async def reconcile(self) -> SyncResultDTO:
        if not self._storage.is_configured():
            raise StorageNotConfiguredException(operation="sync")

        remote = {obj.key: obj for obj in await self._storage.list_objects()}
        added = removed = 0

        async with self._uow_factory() as uow:
            repo = uow.stored_file_repository
            catalog_keys = set(await repo.list_all_keys())

            for key in sorted(catalog_keys - remote.keys()):
                removed += await repo.delete_by_key(key)

            for key, obj in remote.items():
                if key in catalog_keys or not is_importable_key(key):
                    continue
                await repo.create(self._to_record(obj))
                added += 1

        logger.info(
            "file_sync_completed",
            added_count=added,
            removed_count=removed,
            total_s3_files=len(remote),
        )
        return SyncResultDTO(added_count=added, removed_count=removed, total_s3_files=len(remote))
