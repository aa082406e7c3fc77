import tempfile
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlsplit

import jwt
import pytest
from fastapi.testclient import TestClient

from api.dependencies import get_file_access_service, get_stored_file_service
from api.routes.files import spool_to_tempfile
from application.services.file_access_service import FileAccessService
from application.services.stored_file_service import StoredFileApplicationService
from core.config import settings
from domain.common.exceptions import StorageOperationException
from main import app
from shared.codes import BusinessCode
from tests.conftest import make_record

PRIVATE_TOKEN = "p" * 32
PUBLIC_TOKEN = "q" * 32


def _jwt(**claims) -> str:
    payload = {"sub": "1", "type": "access", "exp": datetime.now(timezone.utc) + timedelta(minutes=5)}
    payload.update(claims)
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


ADMIN = {"Authorization": f"Bearer {_jwt(roles=['admin'])}"}
USER = {"Authorization": f"Bearer {_jwt(sub='2')}"}


@pytest.fixture
def client(uow_factory, repository, storage):
    repository.records[1] = replace(make_record("private/report.pdf", token=PRIVATE_TOKEN), id=1)
    repository.records[2] = replace(
        make_record("public/flyer.pdf", token=PUBLIC_TOKEN, requires_auth=False), id=2
    )
    repository._next_id = 3

    app.dependency_overrides[get_file_access_service] = lambda: FileAccessService(uow_factory, storage)
    app.dependency_overrides[get_stored_file_service] = lambda: StoredFileApplicationService(
        uow_factory, storage, public_base_url="https://vault.example.com"
    )
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# /files/access/{token}
# ---------------------------------------------------------------------------


def test_unknown_token_is_404(client):
    response = client.get("/files/access/" + "z" * 32, follow_redirects=False)

    assert response.status_code == 404
    body = response.json()
    assert body["code"] == BusinessCode.FILE_NOT_FOUND
    assert body["error"]["message_key"] == "file.not_found"


def test_anonymous_access_to_private_file_redirects_to_login(client, storage):
    response = client.get(f"/files/access/{PRIVATE_TOKEN}", follow_redirects=False)

    assert response.status_code == 302
    location = urlsplit(response.headers["location"])
    assert location.path == settings.LOGIN_URL
    assert parse_qs(location.query)["redirect_to"] == [f"http://testserver/files/access/{PRIVATE_TOKEN}"]
    assert storage.calls == []


def test_authenticated_access_redirects_to_presigned_url(client):
    response = client.get(f"/files/access/{PRIVATE_TOKEN}", headers=USER, follow_redirects=False)

    assert response.status_code == 302
    assert response.headers["location"].startswith("https://bucket.s3.amazonaws.com/private/report.pdf?")
    assert response.headers["cache-control"] == "no-store"


def test_cookie_token_is_accepted(client):
    client.cookies.set(settings.AUTH_COOKIE_NAME, _jwt(sub="3"))

    response = client.get(f"/files/access/{PRIVATE_TOKEN}", follow_redirects=False)

    assert response.status_code == 302
    assert "private/report.pdf" in response.headers["location"]


def test_public_file_needs_no_login(client):
    response = client.get(f"/files/access/{PUBLIC_TOKEN}", follow_redirects=False)

    assert response.status_code == 302
    assert "public/flyer.pdf" in response.headers["location"]


def test_presign_failure_is_500(client, storage):
    storage.fail_on["presigned_url"] = StorageOperationException(operation="presign")

    response = client.get(f"/files/access/{PUBLIC_TOKEN}", follow_redirects=False)

    assert response.status_code == 500
    assert response.json()["error"]["message_key"] == "file.access.failed"


# ---------------------------------------------------------------------------
# /api/v1/admin/files
# ---------------------------------------------------------------------------


def test_admin_routes_require_credentials(client):
    assert client.get("/api/v1/admin/files").status_code == 401
    assert client.get("/api/v1/admin/files", headers=USER).status_code == 403


def test_list_files(client):
    response = client.get("/api/v1/admin/files", headers=ADMIN)

    assert response.status_code == 200
    data = response.json()["data"]
    assert {f["storage_key"] for f in data} == {"private/report.pdf", "public/flyer.pdf"}
    assert all(f["access_url"].startswith("https://vault.example.com/files/access/") for f in data)


def test_upload_file(client, storage, repository):
    response = client.post(
        "/api/v1/admin/files/upload",
        headers=ADMIN,
        files={"file": ("notes.txt", b"hello vault", "text/plain")},
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["file_name"] == "notes.txt"
    assert data["file_size"] == len(b"hello vault")
    assert data["uploaded_by"] == 1
    assert storage.call_names() == ["put_object"]
    assert len(repository.records) == 3


@pytest.fixture
def spool_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(tempfile, "tempdir", str(tmp_path))
    return tmp_path


def test_upload_failure_removes_temp_file(client, storage, spool_dir):
    storage.fail_on["put_object"] = StorageOperationException(operation="put_object")

    response = client.post(
        "/api/v1/admin/files/upload",
        headers=ADMIN,
        files={"file": ("notes.txt", b"hello vault", "text/plain")},
    )

    assert response.status_code == 500
    assert storage.call_names() == ["put_object"]
    assert list(spool_dir.iterdir()) == []


class _ChunkedUpload:
    def __init__(self, *chunks, error=None):
        self._chunks = list(chunks)
        self._error = error

    async def read(self, size=-1):
        if self._chunks:
            return self._chunks.pop(0)
        if self._error is not None:
            raise self._error
        return b""


@pytest.mark.asyncio
async def test_spool_failure_removes_temp_file(spool_dir):
    with pytest.raises(OSError):
        await spool_to_tempfile(_ChunkedUpload(b"partial", error=OSError("client went away")))

    assert list(spool_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_spool_reports_size(spool_dir):
    path, size = await spool_to_tempfile(_ChunkedUpload(b"hello ", b"vault"))

    assert size == len(b"hello vault")
    with open(path, "rb") as fh:
        assert fh.read() == b"hello vault"


def test_delete_file(client, storage, repository):
    response = client.delete("/api/v1/admin/files/1", headers=ADMIN)

    assert response.status_code == 200
    assert storage.calls == [("delete_object", "private/report.pdf")]
    assert 1 not in repository.records
    assert client.delete("/api/v1/admin/files/1", headers=ADMIN).status_code == 404


def test_toggle_auth(client, repository):
    response = client.patch("/api/v1/admin/files/1/auth", headers=ADMIN, json={"requires_auth": False})

    assert response.status_code == 200
    assert response.json()["data"]["requires_auth"] is False
    assert repository.records[1].requires_auth is False


def test_sync(client, storage, repository):
    storage.add_remote("public/flyer.pdf")
    storage.add_remote("new/arrival.png")

    response = client.post("/api/v1/admin/files/sync", headers=ADMIN)

    assert response.status_code == 200
    assert response.json()["data"] == {"added_count": 1, "removed_count": 1, "total_s3_files": 2}
    assert sorted(r.storage_key for r in repository.records.values()) == ["new/arrival.png", "public/flyer.pdf"]


def test_test_connection_not_configured_is_503(client, storage):
    storage.configured = False

    response = client.post("/api/v1/admin/files/test-connection", headers=ADMIN)

    assert response.status_code == 503
    assert response.json()["code"] == BusinessCode.STORAGE_NOT_CONFIGURED


def test_rejected_storage_error_hides_provider_detail(client, storage):
    storage.fail_on["test_connection"] = StorageOperationException(
        operation="test_connection",
        message_key="storage.remote_rejected",
        format_params={"status_code": 403},
    )

    response = client.post("/api/v1/admin/files/test-connection", headers=ADMIN)

    assert response.status_code == 500
    assert response.json()["message"] == (
        "Storage request failed with status 403. Please contact administrator."
    )


def test_chunked_upload_flow(client, storage, repository):
    init = client.post("/api/v1/admin/files/chunked/init", headers=ADMIN, json={"file_name": "big.zip"})
    assert init.status_code == 200
    session = init.json()["data"]

    part = client.post(
        "/api/v1/admin/files/chunked/part",
        headers=ADMIN,
        data={"key": session["key"], "upload_id": session["upload_id"], "part_number": "1"},
        files={"chunk": ("blob", b"x" * 16, "application/octet-stream")},
    )
    assert part.status_code == 200
    assert part.json()["data"] == {"part_number": 1, "etag": "etag-1"}

    done = client.post(
        "/api/v1/admin/files/chunked/complete",
        headers=ADMIN,
        json={
            "key": session["key"],
            "upload_id": session["upload_id"],
            "parts": [{"part_number": 1, "etag": "etag-1"}],
            "file_name": "big.zip",
            "file_size": 16,
        },
    )
    assert done.status_code == 200
    assert done.json()["data"]["mime_type"] == "application/zip"
    assert storage.call_names() == ["initiate_multipart", "upload_part", "complete_multipart"]


def test_chunked_complete_rejects_duplicate_parts(client):
    response = client.post(
        "/api/v1/admin/files/chunked/complete",
        headers=ADMIN,
        json={
            "key": "k.zip",
            "upload_id": "u",
            "parts": [{"part_number": 1, "etag": "a"}, {"part_number": 1, "etag": "b"}],
            "file_name": "k.zip",
        },
    )
    assert response.status_code == 422


def test_chunked_abort_always_succeeds(client, storage):
    storage.fail_on["abort_multipart"] = StorageOperationException(operation="abort_multipart")

    response = client.post(
        "/api/v1/admin/files/chunked/abort", headers=ADMIN, json={"key": "k.zip", "upload_id": "u"}
    )

    assert response.status_code == 200
    assert storage.call_names() == ["abort_multipart"]


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["data"] == {"status": "healthy"}
