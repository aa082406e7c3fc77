"""Domain entity representing a catalogued object in the private bucket."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from domain.common.exceptions import DomainValidationException

ACCESS_TOKEN_MIN_LENGTH = 32


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class StoredFile:
    """Catalog record indexing one object in the bucket.

    The bucket is the source of truth for existence; this record is a cache
    over it keyed by ``storage_key`` and reachable by ``access_token``.
    """

    id: Optional[int]
    file_name: str
    storage_key: str
    access_token: str
    file_size: int = 0
    mime_type: str = "application/octet-stream"
    requires_auth: bool = True
    uploaded_by: Optional[int] = None
    uploaded_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if len(self.access_token or "") < ACCESS_TOKEN_MIN_LENGTH:
            raise DomainValidationException(
                "Access token too short",
                field="access_token",
                details={"min_length": ACCESS_TOKEN_MIN_LENGTH},
            )
        if not self.storage_key:
            raise DomainValidationException("Storage key must not be empty", field="storage_key")
        self.uploaded_at = _ensure_utc(self.uploaded_at)

    def is_accessible_by(self, authenticated: bool) -> bool:
        return authenticated or not self.requires_auth
