"""Application-owned storage port abstraction (hexagonal architecture).

Defines the minimal methods needed by application use cases so that
the application layer does not depend on infrastructure details.
Implementations raise ``StorageOperationException`` (or its
not-configured subclass) on failure; provider detail stays in their logs.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional, Protocol, Union, runtime_checkable
import os

ByteSource = Union[bytes, str, "os.PathLike[str]"]


@dataclass
class RemoteObject:
    key: str
    size: int
    last_modified: Optional[datetime] = None
    etag: Optional[str] = None


@dataclass
class StoredObject:
    key: str
    etag: Optional[str] = None


@dataclass
class MultipartSession:
    upload_id: str
    key: str


@dataclass
class PartReceipt:
    part_number: int
    etag: str


@runtime_checkable
class ObjectStorePort(Protocol):
    def is_configured(self) -> bool: ...

    @property
    def path_prefix(self) -> str: ...

    async def put_object(self, source: ByteSource, key: str, content_type: str) -> StoredObject: ...

    async def delete_object(self, key: str) -> bool: ...

    async def presigned_url(self, key: str, expires_in: int) -> str: ...

    async def list_objects(self, prefix: str = "", max_keys: int = 1000) -> list[RemoteObject]: ...

    async def test_connection(self) -> bool: ...

    async def initiate_multipart(self, key: str, content_type: str) -> MultipartSession: ...

    async def upload_part(
        self, key: str, upload_id: str, part_number: int, source: ByteSource
    ) -> PartReceipt: ...

    async def complete_multipart(
        self, key: str, upload_id: str, parts: Iterable[PartReceipt]
    ) -> StoredObject: ...

    async def abort_multipart(self, key: str, upload_id: str) -> bool: ...
