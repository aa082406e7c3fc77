from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from application.dto import ChunkPartDTO, ChunkedUploadCompleteRequestDTO
from application.services.stored_file_service import StoredFileApplicationService
from domain.common.exceptions import (
    FileRecordSaveFailedException,
    StorageNotConfiguredException,
    StorageOperationException,
    StoredFileNotFoundException,
)
from shared.codes import BusinessCode
from tests.conftest import FakeObjectStore, FakeUnitOfWork, make_record

pytestmark = pytest.mark.asyncio

MB = 1024 * 1024


@pytest.fixture
def service(uow_factory, storage):
    return StoredFileApplicationService(
        uow_factory,
        storage,
        public_base_url="https://vault.example.com/",
        chunk_size=5 * MB,
    )


@pytest.fixture
def small_file(tmp_path):
    path = tmp_path / "notes.txt"
    path.write_bytes(b"hello vault")
    return path


async def test_small_file_uses_single_put(service, storage, repository, small_file):
    dto = await service.upload_file(small_file, "notes.txt", uploaded_by=7)

    assert storage.call_names() == ["put_object"]
    _, key, content_type = storage.calls[0]
    assert key.startswith("notes-") and key.endswith(".txt")
    assert content_type == "text/plain"

    assert dto.file_size == len(b"hello vault")
    assert dto.uploaded_by == 7
    assert dto.requires_auth is True
    record = repository.records[dto.id]
    assert dto.access_url == f"https://vault.example.com/files/access/{record.access_token}"
    assert len(record.access_token) >= 32


async def test_twelve_megabytes_go_up_in_three_ascending_parts(service, storage, repository, tmp_path):
    path = tmp_path / "video.mp4"
    path.write_bytes(b"\0" * (12 * MB))

    dto = await service.upload_file(path, "video.mp4")

    assert storage.call_names() == [
        "initiate_multipart",
        "upload_part",
        "upload_part",
        "upload_part",
        "complete_multipart",
    ]
    assert storage.parts == [(1, 5 * MB), (2, 5 * MB), (3, 2 * MB)]
    complete = storage.calls[-1]
    assert complete[3] == [1, 2, 3]
    assert dto.file_size == 12 * MB
    assert dto.mime_type == "video/mp4"
    assert len(repository.records) == 1


async def test_key_uses_storage_prefix(uow_factory, small_file):
    storage = FakeObjectStore(path_prefix="vault/uploads/")
    service = StoredFileApplicationService(uow_factory, storage, chunk_size=5 * MB)

    dto = await service.upload_file(small_file, "../../etc/passwd")

    assert dto.storage_key.startswith("vault/uploads/passwd-")
    assert ".." not in dto.storage_key


async def test_multipart_failure_aborts_and_reraises(service, storage, repository, tmp_path):
    path = tmp_path / "big.bin"
    path.write_bytes(b"\1" * (6 * MB))
    storage.fail_on["upload_part"] = StorageOperationException(operation="upload_part", transient=True)

    with pytest.raises(StorageOperationException):
        await service.upload_file(path, "big.bin")

    assert storage.call_names() == ["initiate_multipart", "upload_part", "abort_multipart"]
    assert repository.records == {}


async def test_abort_failure_never_masks_original_error(service, storage, tmp_path):
    path = tmp_path / "big.bin"
    path.write_bytes(b"\1" * (6 * MB))
    original = StorageOperationException(operation="complete_multipart")
    storage.fail_on["complete_multipart"] = original
    storage.fail_on["abort_multipart"] = StorageOperationException(operation="abort_multipart")

    with pytest.raises(StorageOperationException) as exc_info:
        await service.upload_file(path, "big.bin")
    assert exc_info.value is original
    assert storage.call_names()[-1] == "abort_multipart"


async def test_missing_local_file(service, tmp_path):
    with pytest.raises(StorageOperationException) as exc_info:
        await service.upload_file(tmp_path / "nope.bin", "nope.bin")
    assert exc_info.value.code == BusinessCode.STORAGE_SOURCE_MISSING


async def test_upload_requires_configuration(service, storage, small_file):
    storage.configured = False
    with pytest.raises(StorageNotConfiguredException):
        await service.upload_file(small_file, "notes.txt")
    assert storage.calls == []


async def test_record_save_failure_is_reported(service, storage, repository, small_file, monkeypatch):
    async def broken_create(record):
        raise RuntimeError("db down")

    monkeypatch.setattr(repository, "create", broken_create)

    with pytest.raises(FileRecordSaveFailedException):
        await service.upload_file(small_file, "notes.txt")
    assert storage.call_names() == ["put_object"]


async def test_chunked_session_round(service, storage, repository):
    session = await service.init_chunked_upload("archive.zip")
    assert session.upload_id == "upload-1"
    assert session.key.endswith(".zip")

    p2 = await service.upload_chunk(session.key, session.upload_id, 2, b"b" * 10)
    p1 = await service.upload_chunk(session.key, session.upload_id, 1, b"a" * 10)

    dto = await service.complete_chunked_upload(
        key=session.key,
        upload_id=session.upload_id,
        parts=[p2, p1],
        file_name="archive.zip",
        file_size=20,
        uploaded_by=3,
    )

    assert dto.mime_type == "application/zip"
    assert dto.file_size == 20
    assert repository.records[dto.id].storage_key == session.key


async def test_abort_chunked_upload_swallows_errors(service, storage):
    storage.fail_on["abort_multipart"] = StorageOperationException(operation="abort_multipart")

    assert await service.abort_chunked_upload("k.bin", "upload-1") is None
    assert storage.call_names() == ["abort_multipart"]


async def test_list_files_most_recent_first(service, repository):
    await repository.create(make_record("old.pdf", uploaded_at=datetime(2023, 1, 1, tzinfo=timezone.utc)))
    await repository.create(make_record("new.pdf", uploaded_at=datetime(2024, 1, 1, tzinfo=timezone.utc)))

    files = await service.list_files()

    assert [f.storage_key for f in files] == ["new.pdf", "old.pdf"]
    assert all(f.access_url.startswith("https://vault.example.com/files/access/") for f in files)


async def test_delete_file_removes_remote_then_record(service, storage, repository):
    created = await repository.create(make_record("doomed.pdf"))

    await service.delete_file(created.id)

    assert storage.calls == [("delete_object", "doomed.pdf")]
    assert repository.records == {}


async def test_delete_file_keeps_record_when_remote_delete_fails(service, storage, repository):
    created = await repository.create(make_record("stuck.pdf"))
    storage.fail_on["delete_object"] = StorageOperationException(operation="delete_object")

    with pytest.raises(StorageOperationException):
        await service.delete_file(created.id)
    assert created.id in repository.records


async def test_delete_file_holds_no_write_transaction_during_remote_call(repository, storage):
    created = await repository.create(make_record("slow.pdf"))
    opened: list[FakeUnitOfWork] = []
    writers_during_delete: list[int] = []

    def factory(readonly: bool = False):
        uow = FakeUnitOfWork(repository, readonly=readonly)
        opened.append(uow)
        return uow

    original_delete = storage.delete_object

    async def tracking_delete(key):
        writers_during_delete.append(sum(1 for u in opened if not u.readonly))
        return await original_delete(key)

    storage.delete_object = tracking_delete

    await StoredFileApplicationService(factory, storage).delete_file(created.id)

    assert writers_during_delete == [0]
    assert [u.readonly for u in opened] == [True, False]
    assert opened[1].commits == 1
    assert repository.records == {}


async def test_delete_unknown_file(service, storage):
    with pytest.raises(StoredFileNotFoundException):
        await service.delete_file(404)
    assert storage.calls == []


async def test_toggle_auth(service, repository):
    created = await repository.create(make_record("a.pdf"))

    dto = await service.toggle_auth(created.id, False)

    assert dto.requires_auth is False
    assert repository.records[created.id].requires_auth is False

    with pytest.raises(StoredFileNotFoundException):
        await service.toggle_auth(999, True)


async def test_test_connection(service, storage):
    status = await service.test_connection()
    assert status.ok is True

    storage.configured = False
    with pytest.raises(StorageNotConfiguredException):
        await service.test_connection()


async def test_sync_files_delegates_to_reconciler(service, storage, repository):
    storage.add_remote("synced.txt")

    result = await service.sync_files()

    assert result.added_count == 1
    assert await repository.list_all_keys() == ["synced.txt"]


async def test_complete_request_rejects_duplicate_parts():
    with pytest.raises(ValidationError):
        ChunkedUploadCompleteRequestDTO(
            key="k",
            upload_id="u",
            parts=[ChunkPartDTO(part_number=1, etag="a"), ChunkPartDTO(part_number=1, etag="b")],
            file_name="k.bin",
        )
