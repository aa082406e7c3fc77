"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings.
"""
import os

# Mandatory secret key for settings validation
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("DEBUG", "false")

from dataclasses import replace
from datetime import datetime, timezone
from typing import Optional

import pytest

from application.ports.storage import (
    MultipartSession,
    PartReceipt,
    RemoteObject,
    StoredObject,
)
from domain.common.exceptions import StorageOperationException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.stored_file import StoredFile, StoredFileRepository


class InMemoryStoredFileRepository(StoredFileRepository):
    def __init__(self):
        self.records: dict[int, StoredFile] = {}
        self._next_id = 1

    async def create(self, record: StoredFile) -> StoredFile:
        created = replace(record, id=self._next_id)
        self.records[created.id] = created
        self._next_id += 1
        return created

    async def get_by_id(self, file_id: int) -> Optional[StoredFile]:
        return self.records.get(file_id)

    async def get_by_token(self, token: str) -> Optional[StoredFile]:
        return next((r for r in self.records.values() if r.access_token == token), None)

    async def list_all(self) -> list[StoredFile]:
        return sorted(
            self.records.values(),
            key=lambda r: (r.uploaded_at or datetime.min.replace(tzinfo=timezone.utc), r.id),
            reverse=True,
        )

    async def list_all_keys(self) -> list[str]:
        return [r.storage_key for r in self.records.values()]

    async def delete(self, file_id: int) -> bool:
        return self.records.pop(file_id, None) is not None

    async def delete_by_key(self, storage_key: str) -> int:
        ids = [i for i, r in self.records.items() if r.storage_key == storage_key]
        for i in ids:
            del self.records[i]
        return len(ids)

    async def update_auth_flag(self, file_id: int, requires_auth: bool) -> bool:
        record = self.records.get(file_id)
        if record is None:
            return False
        self.records[file_id] = replace(record, requires_auth=bool(requires_auth))
        return True


class FakeUnitOfWork(AbstractUnitOfWork):
    """Snapshot-based UoW over a shared in-memory repository."""

    def __init__(self, repository: InMemoryStoredFileRepository, *, readonly: bool = False):
        super().__init__(readonly=readonly)
        self._repository = repository
        self.commits = 0
        self.rollbacks = 0

    async def __aenter__(self):
        self._snapshot = (dict(self._repository.records), self._repository._next_id)
        self.stored_file_repository = self._repository
        return self

    async def commit(self) -> None:
        self._committed = True
        self.commits += 1

    async def rollback(self) -> None:
        self._repository.records, self._repository._next_id = self._snapshot
        self.rollbacks += 1


class FakeObjectStore:
    """Records calls; ``fail_on`` maps an operation name to the exception it raises."""

    def __init__(self, *, configured: bool = True, path_prefix: str = ""):
        self.configured = configured
        self._path_prefix = path_prefix
        self.objects: dict[str, RemoteObject] = {}
        self.calls: list[tuple] = []
        self.fail_on: dict[str, Exception] = {}
        self.parts: list[tuple[int, int]] = []

    def _maybe_fail(self, operation: str) -> None:
        exc = self.fail_on.get(operation)
        if exc is not None:
            raise exc

    def is_configured(self) -> bool:
        return self.configured

    @property
    def path_prefix(self) -> str:
        return self._path_prefix

    def add_remote(self, key: str, size: int = 1, last_modified: Optional[datetime] = None) -> None:
        self.objects[key] = RemoteObject(
            key=key,
            size=size,
            last_modified=last_modified or datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
            etag="etag-" + key,
        )

    async def put_object(self, source, key, content_type):
        self.calls.append(("put_object", key, content_type))
        self._maybe_fail("put_object")
        self.add_remote(key)
        return StoredObject(key=key, etag="put-etag")

    async def delete_object(self, key):
        self.calls.append(("delete_object", key))
        self._maybe_fail("delete_object")
        self.objects.pop(key, None)
        return True

    async def presigned_url(self, key, expires_in):
        self.calls.append(("presigned_url", key, expires_in))
        self._maybe_fail("presigned_url")
        return f"https://bucket.s3.amazonaws.com/{key}?X-Amz-Expires={expires_in}&X-Amz-Signature=abc"

    async def list_objects(self, prefix="", max_keys=1000):
        self.calls.append(("list_objects", prefix, max_keys))
        self._maybe_fail("list_objects")
        return list(self.objects.values())

    async def test_connection(self):
        self.calls.append(("test_connection",))
        self._maybe_fail("test_connection")
        return True

    async def initiate_multipart(self, key, content_type):
        self.calls.append(("initiate_multipart", key, content_type))
        self._maybe_fail("initiate_multipart")
        return MultipartSession(upload_id="upload-1", key=key)

    async def upload_part(self, key, upload_id, part_number, source):
        self.calls.append(("upload_part", key, upload_id, part_number))
        self._maybe_fail("upload_part")
        self.parts.append((part_number, len(source)))
        return PartReceipt(part_number=part_number, etag=f"etag-{part_number}")

    async def complete_multipart(self, key, upload_id, parts):
        parts = list(parts)
        self.calls.append(("complete_multipart", key, upload_id, [p.part_number for p in parts]))
        self._maybe_fail("complete_multipart")
        self.add_remote(key)
        return StoredObject(key=key, etag="final-etag")

    async def abort_multipart(self, key, upload_id):
        self.calls.append(("abort_multipart", key, upload_id))
        self._maybe_fail("abort_multipart")
        return True

    def call_names(self) -> list[str]:
        return [c[0] for c in self.calls]


def make_record(key: str, *, token: Optional[str] = None, requires_auth: bool = True, **kwargs) -> StoredFile:
    return StoredFile(
        id=None,
        file_name=key.rsplit("/", 1)[-1],
        storage_key=key,
        access_token=token or (key.replace("/", "_") * 32)[:32],
        requires_auth=requires_auth,
        uploaded_at=kwargs.pop("uploaded_at", datetime(2024, 1, 1, tzinfo=timezone.utc)),
        **kwargs,
    )


@pytest.fixture
def repository():
    return InMemoryStoredFileRepository()


@pytest.fixture
def uow_factory(repository):
    def factory(readonly: bool = False):
        return FakeUnitOfWork(repository, readonly=readonly)

    return factory


@pytest.fixture
def storage():
    return FakeObjectStore()


@pytest.fixture
def transient_error():
    return StorageOperationException(operation="list_objects", transient=True)
