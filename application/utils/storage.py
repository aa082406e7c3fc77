"""Application-level storage helpers to avoid infra coupling."""
from __future__ import annotations

import posixpath
import re
import secrets
import string
import uuid
from typing import Optional

DEFAULT_MIME_TYPE = "application/octet-stream"
ACCESS_TOKEN_LENGTH = 32

# Extension -> MIME type used when importing objects found in the bucket
MIME_TYPES: dict[str, str] = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "jpe": "image/jpeg",
    "gif": "image/gif",
    "png": "image/png",
    "bmp": "image/bmp",
    "tiff": "image/tiff",
    "tif": "image/tiff",
    "ico": "image/x-icon",
    "pdf": "application/pdf",
    "doc": "application/msword",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "xls": "application/vnd.ms-excel",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "ppt": "application/vnd.ms-powerpoint",
    "pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "txt": "text/plain",
    "csv": "text/csv",
    "xml": "application/xml",
    "json": "application/json",
    "zip": "application/zip",
    "rar": "application/x-rar-compressed",
    "7z": "application/x-7z-compressed",
    "mp4": "video/mp4",
    "avi": "video/x-msvideo",
    "mov": "video/quicktime",
    "wmv": "video/x-ms-wmv",
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "flac": "audio/flac",
}

_TOKEN_ALPHABET = string.ascii_letters + string.digits
_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9\-_.]+")


def guess_content_type(filename: str) -> str:
    _, ext = posixpath.splitext(filename or "")
    return MIME_TYPES.get(ext.lstrip(".").lower(), DEFAULT_MIME_TYPE)


def generate_access_token(length: int = ACCESS_TOKEN_LENGTH) -> str:
    """Cryptographically random alphanumeric token."""
    return "".join(secrets.choice(_TOKEN_ALPHABET) for _ in range(length))


def display_name_from_key(key: str) -> str:
    return posixpath.basename(key or "")


def safe_file_name(filename: str) -> str:
    """Reduce an uploaded file name to characters allowed in object keys."""
    base = posixpath.basename((filename or "").replace("\\", "/"))
    stem, ext = posixpath.splitext(base)
    stem = _UNSAFE_NAME_CHARS.sub("-", stem).strip("-.") or "file"
    ext = _UNSAFE_NAME_CHARS.sub("", ext.lstrip(".")).lower()
    return f"{stem}.{ext}" if ext else stem


def build_storage_key(filename: str, prefix: Optional[str] = None) -> str:
    """``{prefix/}{safe-name}-{unique}.{ext}``; never contains ``..`` or ``//``."""
    name = safe_file_name(filename)
    stem, ext = posixpath.splitext(name)
    unique = uuid.uuid4().hex[:12]
    filename_part = f"{stem}-{unique}{ext}"

    parts = [
        _UNSAFE_NAME_CHARS.sub("-", segment)
        for segment in (prefix or "").split("/")
        if segment and segment not in (".", "..")
    ]
    parts.append(filename_part)
    key = "/".join(parts)
    while ".." in key:
        key = key.replace("..", ".")
    return key
