"""Catalog port for stored file records."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from .entity import StoredFile


class StoredFileRepository(ABC):
    """Contract for persisting and querying catalog records.

    Every mutation touches a single record; concurrent writers are
    last-writer-wins per record.
    """

    @abstractmethod
    async def create(self, record: StoredFile) -> StoredFile:
        ...

    @abstractmethod
    async def get_by_id(self, file_id: int) -> Optional[StoredFile]:
        ...

    @abstractmethod
    async def get_by_token(self, token: str) -> Optional[StoredFile]:
        ...

    @abstractmethod
    async def list_all(self) -> list[StoredFile]:
        """Return every record, most recently uploaded first."""
        ...

    @abstractmethod
    async def list_all_keys(self) -> list[str]:
        ...

    @abstractmethod
    async def delete(self, file_id: int) -> bool:
        ...

    @abstractmethod
    async def delete_by_key(self, storage_key: str) -> int:
        """Delete every record pointing at ``storage_key``; returns the count."""
        ...

    @abstractmethod
    async def update_auth_flag(self, file_id: int, requires_auth: bool) -> bool:
        ...
