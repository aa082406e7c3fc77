"""AWS Signature Version 4 primitives for the S3 REST dialect.

Everything here is pure: the caller supplies the timestamp, so one operation
can reuse a single instant for the canonical request, the headers it emits
and the credential scope.
"""
from __future__ import annotations

import hashlib
import hmac
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
from typing import Mapping, Optional

ALGORITHM = "AWS4-HMAC-SHA256"
SERVICE = "s3"
TERMINATOR = "aws4_request"
UNSIGNED_PAYLOAD = "UNSIGNED-PAYLOAD"
EMPTY_PAYLOAD_HASH = hashlib.sha256(b"").hexdigest()

AMZ_DATE_FORMAT = "%Y%m%dT%H%M%SZ"
DATE_STAMP_FORMAT = "%Y%m%d"

_AWS_UNRESERVED = frozenset(
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_.~"
)


def uri_encode(value: str, *, encode_slash: bool = True) -> str:
    """Percent-encode per RFC 3986 the way SigV4 expects.

    Unreserved characters pass through, every other byte of the UTF-8
    encoding becomes ``%XX`` with uppercase hex. ``/`` is kept when
    ``encode_slash`` is False (object paths).
    """
    result: list[str] = []
    for byte in value.encode("utf-8"):
        ch = chr(byte)
        if ch in _AWS_UNRESERVED:
            result.append(ch)
        elif ch == "/" and not encode_slash:
            result.append("/")
        else:
            result.append(f"%{byte:02X}")
    return "".join(result)


def sha256_hex(payload: bytes) -> str:
    return hashlib.sha256(payload).hexdigest()


def timestamps(now: datetime) -> tuple[str, str]:
    """Return ``(amz_date, date_stamp)`` for ``now`` in UTC."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    now = now.astimezone(timezone.utc)
    return now.strftime(AMZ_DATE_FORMAT), now.strftime(DATE_STAMP_FORMAT)


def canonical_query_string(params: Optional[Mapping[str, str]]) -> str:
    """Encode names and values, then sort by encoded name and value."""
    if not params:
        return ""
    encoded = sorted((uri_encode(str(k)), uri_encode(str(v))) for k, v in params.items())
    return "&".join(f"{k}={v}" for k, v in encoded)


def canonical_headers_string(headers: Mapping[str, str]) -> tuple[str, str]:
    """Return ``(canonical_headers, signed_headers)`` for every header given."""
    lowered = {name.lower(): " ".join(str(value).split()) for name, value in headers.items()}
    names = sorted(lowered)
    canonical = "".join(f"{name}:{lowered[name]}\n" for name in names)
    return canonical, ";".join(names)


def build_canonical_request(
    method: str,
    canonical_uri: str,
    canonical_query: str,
    canonical_headers: str,
    signed_headers: str,
    payload_hash: str,
) -> str:
    return "\n".join(
        [
            method,
            canonical_uri,
            canonical_query,
            canonical_headers,
            signed_headers,
            payload_hash,
        ]
    )


def credential_scope(date_stamp: str, region: str, service: str = SERVICE) -> str:
    return f"{date_stamp}/{region}/{service}/{TERMINATOR}"


def build_string_to_sign(amz_date: str, scope: str, canonical_request: str) -> str:
    return "\n".join(
        [
            ALGORITHM,
            amz_date,
            scope,
            sha256_hex(canonical_request.encode("utf-8")),
        ]
    )


def _hmac_sha256(key: bytes, msg: str) -> bytes:
    return hmac.new(key, msg.encode("utf-8"), hashlib.sha256).digest()


@lru_cache(maxsize=32)
def derive_signing_key(secret_key: str, date_stamp: str, region: str, service: str = SERVICE) -> bytes:
    """Derive the per-day signing key.

    Cached, so requests sharing a date/region/service scope reuse one key.
    """
    k_date = _hmac_sha256(("AWS4" + secret_key).encode("utf-8"), date_stamp)
    k_region = _hmac_sha256(k_date, region)
    k_service = _hmac_sha256(k_region, service)
    return _hmac_sha256(k_service, TERMINATOR)


def compute_signature(signing_key: bytes, string_to_sign: str) -> str:
    return hmac.new(signing_key, string_to_sign.encode("utf-8"), hashlib.sha256).hexdigest()


@dataclass(frozen=True)
class SignedRequest:
    """A fully signed request ready to hand to the HTTP transport."""

    method: str
    host: str
    path: str
    query: str
    payload_hash: str
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def url(self) -> str:
        base = f"https://{self.host}{self.path}"
        return f"{base}?{self.query}" if self.query else base


def sign_request(
    *,
    method: str,
    host: str,
    path: str,
    access_key: str,
    secret_key: str,
    region: str,
    now: datetime,
    query: Optional[Mapping[str, str]] = None,
    payload_hash: str = EMPTY_PAYLOAD_HASH,
    extra_headers: Optional[Mapping[str, str]] = None,
) -> SignedRequest:
    """Sign a header-authenticated request.

    ``host``, ``x-amz-content-sha256``, ``x-amz-date`` and any
    ``extra_headers`` (e.g. ``content-type``) are all signed.
    """
    amz_date, date_stamp = timestamps(now)
    canonical_uri = uri_encode(path, encode_slash=False)
    canonical_query = canonical_query_string(query)

    headers = {
        "host": host,
        "x-amz-content-sha256": payload_hash,
        "x-amz-date": amz_date,
    }
    for name, value in (extra_headers or {}).items():
        headers[name.lower()] = value
    canonical_headers, signed_headers = canonical_headers_string(headers)

    canonical_request = build_canonical_request(
        method, canonical_uri, canonical_query, canonical_headers, signed_headers, payload_hash
    )
    scope = credential_scope(date_stamp, region)
    signature = compute_signature(
        derive_signing_key(secret_key, date_stamp, region),
        build_string_to_sign(amz_date, scope, canonical_request),
    )
    headers["authorization"] = (
        f"{ALGORITHM} Credential={access_key}/{scope}, "
        f"SignedHeaders={signed_headers}, Signature={signature}"
    )
    return SignedRequest(
        method=method,
        host=host,
        path=canonical_uri,
        query=canonical_query,
        payload_hash=payload_hash,
        headers=headers,
    )


def presign_url(
    *,
    host: str,
    path: str,
    access_key: str,
    secret_key: str,
    region: str,
    now: datetime,
    expires_in: int,
    method: str = "GET",
) -> str:
    """Build a query-authenticated URL valid for ``expires_in`` seconds from ``now``."""
    amz_date, date_stamp = timestamps(now)
    scope = credential_scope(date_stamp, region)
    canonical_uri = uri_encode(path, encode_slash=False)
    canonical_query = canonical_query_string(
        {
            "X-Amz-Algorithm": ALGORITHM,
            "X-Amz-Credential": f"{access_key}/{scope}",
            "X-Amz-Date": amz_date,
            "X-Amz-Expires": str(expires_in),
            "X-Amz-SignedHeaders": "host",
        }
    )
    canonical_headers, signed_headers = canonical_headers_string({"host": host})
    canonical_request = build_canonical_request(
        method, canonical_uri, canonical_query, canonical_headers, signed_headers, UNSIGNED_PAYLOAD
    )
    signature = compute_signature(
        derive_signing_key(secret_key, date_stamp, region),
        build_string_to_sign(amz_date, scope, canonical_request),
    )
    return f"https://{host}{canonical_uri}?{canonical_query}&X-Amz-Signature={signature}"
