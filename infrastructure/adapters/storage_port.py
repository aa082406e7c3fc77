"""Infrastructure adapter that implements the application ObjectStorePort
by delegating to the S3 client and translating models and errors.

Storage errors are already logged with full diagnostic detail by the client;
here they are narrowed to a sanitized ``StorageOperationException`` carrying
only a business code and a message key.
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterable, Iterator

from application.ports.storage import (
    ByteSource,
    MultipartSession,
    ObjectStorePort,
    PartReceipt,
    RemoteObject,
    StoredObject,
)
from domain.common.exceptions import StorageNotConfiguredException, StorageOperationException
from infrastructure.external.storage import (
    InvalidKeyError,
    LocalSourceMissingError,
    NotConfiguredError,
    S3ObjectStoreClient,
    StorageError,
    TransportError,
    UploadedPart,
)
from shared.codes import BusinessCode

_CODE_BY_ERROR = {
    InvalidKeyError: BusinessCode.STORAGE_INVALID_KEY,
    LocalSourceMissingError: BusinessCode.STORAGE_SOURCE_MISSING,
    TransportError: BusinessCode.NETWORK_ERROR,
}


@contextmanager
def translate_storage_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except NotConfiguredError as exc:
        raise StorageNotConfiguredException(operation=exc.operation or operation) from exc
    except StorageError as exc:
        raise StorageOperationException(
            code=_CODE_BY_ERROR.get(type(exc), BusinessCode.STORAGE_ERROR),
            operation=exc.operation or operation,
            message_key=exc.message_key,
            format_params=exc.format_params,
            transient=isinstance(exc, TransportError),
        ) from exc


class S3StoragePortAdapter(ObjectStorePort):
    def __init__(self, client: S3ObjectStoreClient):
        self.client = client

    def is_configured(self) -> bool:
        return self.client.is_configured

    @property
    def path_prefix(self) -> str:
        return self.client.credentials.path_prefix

    async def put_object(self, source: ByteSource, key: str, content_type: str) -> StoredObject:
        with translate_storage_errors("put_object"):
            result = await self.client.put_object(source, key, content_type)
        return StoredObject(key=result.key, etag=result.etag)

    async def delete_object(self, key: str) -> bool:
        with translate_storage_errors("delete_object"):
            return await self.client.delete_object(key)

    async def presigned_url(self, key: str, expires_in: int) -> str:
        with translate_storage_errors("presign"):
            return self.client.generate_presigned_url(key, expires_in)

    async def list_objects(self, prefix: str = "", max_keys: int = 1000) -> list[RemoteObject]:
        with translate_storage_errors("list_objects"):
            listed = await self.client.list_objects(prefix, max_keys)
        return [
            RemoteObject(key=o.key, size=o.size, last_modified=o.last_modified, etag=o.etag)
            for o in listed
        ]

    async def test_connection(self) -> bool:
        with translate_storage_errors("test_connection"):
            return await self.client.test_connection()

    async def initiate_multipart(self, key: str, content_type: str) -> MultipartSession:
        with translate_storage_errors("initiate_multipart"):
            upload = await self.client.initiate_multipart(key, content_type)
        return MultipartSession(upload_id=upload.upload_id, key=upload.key)

    async def upload_part(
        self, key: str, upload_id: str, part_number: int, source: ByteSource
    ) -> PartReceipt:
        with translate_storage_errors("upload_part"):
            part = await self.client.upload_part(key, upload_id, part_number, source)
        return PartReceipt(part_number=part.part_number, etag=part.etag)

    async def complete_multipart(
        self, key: str, upload_id: str, parts: Iterable[PartReceipt]
    ) -> StoredObject:
        uploaded = [UploadedPart(part_number=p.part_number, etag=p.etag) for p in parts]
        with translate_storage_errors("complete_multipart"):
            result = await self.client.complete_multipart(key, upload_id, uploaded)
        return StoredObject(key=result.key, etag=result.etag)

    async def abort_multipart(self, key: str, upload_id: str) -> bool:
        with translate_storage_errors("abort_multipart"):
            return await self.client.abort_multipart(key, upload_id)
