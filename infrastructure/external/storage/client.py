"""SDK-free S3 client speaking the REST API with SigV4 signing."""
from __future__ import annotations

import os
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional, Union
from xml.etree import ElementTree as ET

import aiofiles
import httpx

from core.logging_config import get_logger
from .config import S3Credentials, StorageTimeouts
from .exceptions import (
    LocalSourceMissingError,
    NotConfiguredError,
    RemoteRejectedError,
    ResponseUnparsableError,
    TransportError,
)
from .keys import sanitize_key
from .models import ListedObject, MultipartUpload, PutObjectResult, UploadedPart
from .signer import EMPTY_PAYLOAD_HASH, SignedRequest, presign_url, sha256_hex, sign_request

logger = get_logger(__name__)

Source = Union[bytes, bytearray, str, "os.PathLike[str]"]

MAX_LIST_KEYS = 1000
MAX_PRESIGN_SECONDS = 7 * 24 * 3600
MAX_PART_NUMBER = 10000


def _strip_namespaces(root: ET.Element) -> ET.Element:
    for element in root.iter():
        if isinstance(element.tag, str) and "}" in element.tag:
            element.tag = element.tag.split("}", 1)[1]
    return root


def _strip_etag(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip().strip('"')


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class S3ObjectStoreClient:
    """Builds, signs and sends the handful of S3 requests the vault needs.

    The client never retries; transport failures and rejected responses are
    raised as :mod:`.exceptions` types and the caller owns retry policy.

    Args:
        credentials: Bucket credentials; a missing key, secret or bucket makes
            every network operation raise :class:`NotConfiguredError`.
        timeouts: Per-operation timeouts.
        http_client: Shared ``httpx.AsyncClient``; one is created (and owned)
            when omitted.
        clock: Returns the current UTC time; used once per operation.
    """

    def __init__(
        self,
        credentials: S3Credentials,
        *,
        timeouts: Optional[StorageTimeouts] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._credentials = credentials
        self._timeouts = timeouts or StorageTimeouts()
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def credentials(self) -> S3Credentials:
        return self._credentials

    @property
    def is_configured(self) -> bool:
        return self._credentials.is_configured

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> "S3ObjectStoreClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Request plumbing
    # ------------------------------------------------------------------

    def _ensure_configured(self, operation: str) -> None:
        if not self._credentials.is_configured:
            raise NotConfiguredError("S3 credentials are incomplete", operation=operation)

    def _sign(
        self,
        method: str,
        path: str,
        *,
        query: Optional[dict[str, str]] = None,
        payload_hash: str = EMPTY_PAYLOAD_HASH,
        content_type: Optional[str] = None,
    ) -> SignedRequest:
        creds = self._credentials
        return sign_request(
            method=method,
            host=creds.host,
            path=path,
            access_key=creds.access_key_id,
            secret_key=creds.secret_access_key,
            region=creds.region,
            now=self._clock(),
            query=query,
            payload_hash=payload_hash,
            extra_headers={"content-type": content_type} if content_type else None,
        )

    async def _send(
        self,
        operation: str,
        request: SignedRequest,
        *,
        timeout: float,
        content: Optional[bytes] = None,
        expected: tuple[int, ...] = (200,),
    ) -> httpx.Response:
        try:
            response = await self._http.request(
                request.method,
                request.url,
                headers=request.headers,
                content=content,
                timeout=timeout,
            )
        except httpx.HTTPError as exc:
            logger.error(
                "storage_transport_failed",
                operation=operation,
                host=request.host,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise TransportError(str(exc), operation=operation) from exc

        if response.status_code not in expected:
            logger.error(
                "storage_request_rejected",
                operation=operation,
                status_code=response.status_code,
                body=response.text,
            )
            raise RemoteRejectedError(response.status_code, operation=operation)
        return response

    def _unparsable(self, operation: str, error: str, body: bytes) -> ResponseUnparsableError:
        logger.error(
            "storage_response_unparsable",
            operation=operation,
            error=error,
            body=body.decode("utf-8", errors="replace"),
        )
        return ResponseUnparsableError(error, operation=operation)

    def _parse_xml(self, operation: str, body: bytes, root_tag: str) -> ET.Element:
        """Parse a 200 body and require ``root_tag`` as the document root.

        S3 can return an ``<Error>`` document with status 200; that counts as
        a broken response, not an empty result.
        """
        try:
            root = _strip_namespaces(ET.fromstring(body))
        except ET.ParseError as exc:
            raise self._unparsable(operation, str(exc), body) from exc
        if root.tag != root_tag:
            raise self._unparsable(operation, f"expected <{root_tag}>, got <{root.tag}>", body)
        return root

    async def _read_source(self, source: Source, operation: str) -> bytes:
        if isinstance(source, (bytes, bytearray)):
            return bytes(source)
        path = os.fspath(source)
        try:
            async with aiofiles.open(path, "rb") as fh:
                return await fh.read()
        except (FileNotFoundError, IsADirectoryError, PermissionError) as exc:
            logger.error("storage_source_missing", operation=operation, path=path)
            raise LocalSourceMissingError(f"cannot read {path}", operation=operation) from exc

    # ------------------------------------------------------------------
    # Single-request operations
    # ------------------------------------------------------------------

    async def put_object(
        self,
        source: Source,
        key: str,
        content_type: str = "application/octet-stream",
    ) -> PutObjectResult:
        """Upload ``source`` (bytes or local path) as a single object."""
        operation = "put_object"
        body = await self._read_source(source, operation)
        self._ensure_configured(operation)
        key = sanitize_key(key, operation=operation)

        request = self._sign(
            "PUT",
            self._credentials.object_path(key),
            payload_hash=sha256_hex(body),
            content_type=content_type,
        )
        response = await self._send(operation, request, content=body, timeout=self._timeouts.put_object)
        etag = _strip_etag(response.headers.get("etag"))
        logger.info("storage_object_put", key=key, size=len(body), etag=etag)
        return PutObjectResult(key=key, etag=etag)

    async def delete_object(self, key: str) -> bool:
        operation = "delete_object"
        self._ensure_configured(operation)
        key = sanitize_key(key, operation=operation)

        request = self._sign("DELETE", self._credentials.object_path(key))
        await self._send(operation, request, timeout=self._timeouts.metadata, expected=(200, 204))
        logger.info("storage_object_deleted", key=key)
        return True

    def generate_presigned_url(self, key: str, expires_in: int = 3600) -> str:
        """Return a self-authenticating GET URL; no network I/O."""
        operation = "presign"
        self._ensure_configured(operation)
        key = sanitize_key(key, operation=operation)
        if not 1 <= int(expires_in) <= MAX_PRESIGN_SECONDS:
            raise ValueError(f"expires_in must be between 1 and {MAX_PRESIGN_SECONDS} seconds")

        creds = self._credentials
        return presign_url(
            host=creds.host,
            path=creds.object_path(key),
            access_key=creds.access_key_id,
            secret_key=creds.secret_access_key,
            region=creds.region,
            now=self._clock(),
            expires_in=int(expires_in),
        )

    async def list_objects(self, prefix: str = "", max_keys: int = MAX_LIST_KEYS) -> list[ListedObject]:
        """List the first page of objects (at most 1000).

        Continuation tokens are not followed.
        """
        operation = "list_objects"
        self._ensure_configured(operation)

        query = {"max-keys": str(max(1, min(int(max_keys), MAX_LIST_KEYS)))}
        if prefix:
            query["prefix"] = prefix
        request = self._sign("GET", self._credentials.bucket_path, query=query)
        response = await self._send(operation, request, timeout=self._timeouts.metadata)

        root = self._parse_xml(operation, response.content, "ListBucketResult")
        objects: list[ListedObject] = []
        try:
            for item in root.findall("Contents"):
                key = item.findtext("Key")
                if key is None:
                    continue
                objects.append(
                    ListedObject(
                        key=key,
                        size=int(item.findtext("Size") or 0),
                        last_modified=_parse_timestamp(item.findtext("LastModified")),
                        etag=_strip_etag(item.findtext("ETag")),
                    )
                )
        except ValueError as exc:
            raise self._unparsable(operation, str(exc), response.content) from exc

        if root.findtext("IsTruncated") == "true":
            logger.warning("storage_listing_truncated", returned=len(objects))
        return objects

    async def test_connection(self) -> bool:
        operation = "test_connection"
        self._ensure_configured(operation)
        request = self._sign("GET", self._credentials.bucket_path, query={"max-keys": "1"})
        await self._send(operation, request, timeout=self._timeouts.connectivity)
        logger.info("storage_connection_ok", bucket=self._credentials.bucket)
        return True

    # ------------------------------------------------------------------
    # Multipart lifecycle
    # ------------------------------------------------------------------

    async def initiate_multipart(
        self,
        key: str,
        content_type: str = "application/octet-stream",
    ) -> MultipartUpload:
        operation = "initiate_multipart"
        self._ensure_configured(operation)
        key = sanitize_key(key, operation=operation)

        request = self._sign(
            "POST",
            self._credentials.object_path(key),
            query={"uploads": ""},
            content_type=content_type,
        )
        response = await self._send(operation, request, timeout=self._timeouts.metadata)
        root = self._parse_xml(operation, response.content, "InitiateMultipartUploadResult")
        upload_id = (root.findtext("UploadId") or "").strip()
        if not upload_id:
            raise self._unparsable(operation, "missing UploadId", response.content)

        logger.info("storage_multipart_initiated", key=key, upload_id=upload_id)
        return MultipartUpload(upload_id=upload_id, key=key)

    async def upload_part(
        self,
        key: str,
        upload_id: str,
        part_number: int,
        source: Source,
    ) -> UploadedPart:
        operation = "upload_part"
        if not 1 <= part_number <= MAX_PART_NUMBER:
            raise ValueError(f"part_number must be between 1 and {MAX_PART_NUMBER}")
        body = await self._read_source(source, operation)
        self._ensure_configured(operation)
        key = sanitize_key(key, operation=operation)

        request = self._sign(
            "PUT",
            self._credentials.object_path(key),
            query={"partNumber": str(part_number), "uploadId": upload_id},
            payload_hash=sha256_hex(body),
        )
        response = await self._send(operation, request, content=body, timeout=self._timeouts.upload_part)
        etag = _strip_etag(response.headers.get("etag"))
        if not etag:
            # 没有 ETag 的分片无法参与 complete
            raise self._unparsable(operation, f"missing ETag for part {part_number}", response.content)
        logger.debug("storage_part_uploaded", key=key, part_number=part_number, size=len(body))
        return UploadedPart(part_number=part_number, etag=etag)

    async def complete_multipart(
        self,
        key: str,
        upload_id: str,
        parts: Iterable[UploadedPart],
    ) -> PutObjectResult:
        """Finish the upload; parts are sent in ascending part-number order."""
        operation = "complete_multipart"
        self._ensure_configured(operation)
        key = sanitize_key(key, operation=operation)

        root = ET.Element("CompleteMultipartUpload")
        for part in sorted(parts, key=lambda p: p.part_number):
            node = ET.SubElement(root, "Part")
            ET.SubElement(node, "PartNumber").text = str(part.part_number)
            ET.SubElement(node, "ETag").text = f'"{_strip_etag(part.etag)}"'
        body = ET.tostring(root, encoding="utf-8")

        request = self._sign(
            "POST",
            self._credentials.object_path(key),
            query={"uploadId": upload_id},
            payload_hash=sha256_hex(body),
            content_type="application/xml",
        )
        response = await self._send(operation, request, content=body, timeout=self._timeouts.complete)

        result = self._parse_xml(operation, response.content, "CompleteMultipartUploadResult")
        etag = _strip_etag(result.findtext("ETag"))
        logger.info("storage_multipart_completed", key=key, upload_id=upload_id, etag=etag)
        return PutObjectResult(key=key, etag=etag)

    async def abort_multipart(self, key: str, upload_id: str) -> bool:
        operation = "abort_multipart"
        self._ensure_configured(operation)
        key = sanitize_key(key, operation=operation)

        request = self._sign(
            "DELETE",
            self._credentials.object_path(key),
            query={"uploadId": upload_id},
        )
        await self._send(operation, request, timeout=self._timeouts.metadata, expected=(200, 204))
        logger.info("storage_multipart_aborted", key=key, upload_id=upload_id)
        return True
