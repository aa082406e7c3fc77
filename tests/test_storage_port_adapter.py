import pytest

from application.ports.storage import ObjectStorePort, PartReceipt
from domain.common.exceptions import StorageNotConfiguredException, StorageOperationException
from infrastructure.adapters.storage_port import S3StoragePortAdapter
from infrastructure.external.storage import (
    InvalidKeyError,
    LocalSourceMissingError,
    NotConfiguredError,
    PutObjectResult,
    RemoteRejectedError,
    ResponseUnparsableError,
    S3Credentials,
    TransportError,
    UploadedPart,
)
from shared.codes import BusinessCode

pytestmark = pytest.mark.asyncio


class StubClient:
    def __init__(self, error=None):
        self.error = error
        self.credentials = S3Credentials(
            access_key_id="AK", secret_access_key="SK", bucket="vault", path_prefix="uploads/"
        )
        self.completed_with = None

    @property
    def is_configured(self):
        return self.credentials.is_configured

    async def put_object(self, source, key, content_type):
        if self.error:
            raise self.error
        return PutObjectResult(key=key, etag="e")

    def generate_presigned_url(self, key, expires_in):
        if self.error:
            raise self.error
        return f"https://vault.s3.amazonaws.com/{key}?X-Amz-Expires={expires_in}"

    async def complete_multipart(self, key, upload_id, parts):
        self.completed_with = parts
        return PutObjectResult(key=key, etag="final")


async def test_adapter_satisfies_port():
    assert isinstance(S3StoragePortAdapter(StubClient()), ObjectStorePort)


async def test_adapter_passes_results_through():
    adapter = S3StoragePortAdapter(StubClient())

    assert adapter.is_configured() is True
    assert adapter.path_prefix == "uploads/"
    stored = await adapter.put_object(b"x", "a.txt", "text/plain")
    assert (stored.key, stored.etag) == ("a.txt", "e")
    assert await adapter.presigned_url("a.txt", 300) == "https://vault.s3.amazonaws.com/a.txt?X-Amz-Expires=300"


async def test_adapter_converts_part_receipts():
    client = StubClient()
    adapter = S3StoragePortAdapter(client)

    await adapter.complete_multipart("k", "u", [PartReceipt(part_number=1, etag="a")])

    assert client.completed_with == [UploadedPart(part_number=1, etag="a")]


@pytest.mark.parametrize(
    "error,code,message_key,transient",
    [
        (InvalidKeyError("bad", operation="put_object"), BusinessCode.STORAGE_INVALID_KEY, "storage.invalid_key", False),
        (LocalSourceMissingError("gone"), BusinessCode.STORAGE_SOURCE_MISSING, "storage.source_missing", False),
        (TransportError("timeout"), BusinessCode.NETWORK_ERROR, "storage.transport_failed", True),
        (RemoteRejectedError(403, operation="put_object"), BusinessCode.STORAGE_ERROR, "storage.remote_rejected", False),
        (ResponseUnparsableError("xml"), BusinessCode.STORAGE_ERROR, "storage.response_unparsable", False),
    ],
)
async def test_storage_errors_become_sanitized_exceptions(error, code, message_key, transient):
    adapter = S3StoragePortAdapter(StubClient(error))

    with pytest.raises(StorageOperationException) as exc_info:
        await adapter.put_object(b"x", "a.txt", "text/plain")

    exc = exc_info.value
    assert exc.code == code
    assert exc.message_key == message_key
    assert exc.transient is transient
    assert exc.operation == "put_object"
    assert exc.__cause__ is error


async def test_rejected_status_is_available_for_message_formatting():
    adapter = S3StoragePortAdapter(StubClient(RemoteRejectedError(503, operation="put_object")))

    with pytest.raises(StorageOperationException) as exc_info:
        await adapter.put_object(b"x", "a.txt", "text/plain")
    assert exc_info.value.format_params == {"status_code": 503}


async def test_not_configured_maps_to_dedicated_exception():
    adapter = S3StoragePortAdapter(StubClient(NotConfiguredError(operation="presign")))

    with pytest.raises(StorageNotConfiguredException) as exc_info:
        await adapter.presigned_url("a.txt", 300)
    assert exc_info.value.code == BusinessCode.STORAGE_NOT_CONFIGURED
    assert exc_info.value.operation == "presign"
