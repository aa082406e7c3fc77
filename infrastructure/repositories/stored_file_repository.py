"""SQLAlchemy-backed repository for the stored file catalog."""
from __future__ import annotations

from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from domain.stored_file import StoredFile, StoredFileRepository
from infrastructure.models.stored_file import StoredFileModel


class SQLAlchemyStoredFileRepository(StoredFileRepository):
    """Persist catalog records using SQLAlchemy ORM."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: StoredFileModel) -> StoredFile:
        return StoredFile(
            id=model.id,
            file_name=model.file_name,
            storage_key=model.storage_key,
            access_token=model.access_token,
            file_size=model.file_size,
            mime_type=model.mime_type,
            requires_auth=model.requires_auth,
            uploaded_by=model.uploaded_by,
            uploaded_at=model.uploaded_at,
        )

    async def create(self, record: StoredFile) -> StoredFile:
        model = StoredFileModel(
            file_name=record.file_name,
            storage_key=record.storage_key,
            access_token=record.access_token,
            file_size=record.file_size,
            mime_type=record.mime_type,
            requires_auth=record.requires_auth,
            uploaded_by=record.uploaded_by,
        )
        if record.uploaded_at is not None:
            model.uploaded_at = record.uploaded_at
        self.session.add(model)
        await self.session.flush()
        await self.session.refresh(model)
        return self._to_entity(model)

    async def get_by_id(self, file_id: int) -> Optional[StoredFile]:
        result = await self.session.execute(
            select(StoredFileModel).where(StoredFileModel.id == file_id)
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def get_by_token(self, token: str) -> Optional[StoredFile]:
        result = await self.session.execute(
            select(StoredFileModel).where(StoredFileModel.access_token == token)
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def list_all(self) -> list[StoredFile]:
        query = select(StoredFileModel).order_by(
            StoredFileModel.uploaded_at.desc(),
            StoredFileModel.id.desc(),
        )
        result = await self.session.execute(query)
        return [self._to_entity(model) for model in result.scalars().all()]

    async def list_all_keys(self) -> list[str]:
        result = await self.session.execute(select(StoredFileModel.storage_key))
        return [row for row in result.scalars().all()]

    async def delete(self, file_id: int) -> bool:
        result = await self.session.execute(
            delete(StoredFileModel).where(StoredFileModel.id == file_id)
        )
        return (result.rowcount or 0) > 0

    async def delete_by_key(self, storage_key: str) -> int:
        result = await self.session.execute(
            delete(StoredFileModel).where(StoredFileModel.storage_key == storage_key)
        )
        return int(result.rowcount or 0)

    async def update_auth_flag(self, file_id: int, requires_auth: bool) -> bool:
        result = await self.session.execute(
            update(StoredFileModel)
            .where(StoredFileModel.id == file_id)
            .values(requires_auth=bool(requires_auth))
        )
        return (result.rowcount or 0) > 0
