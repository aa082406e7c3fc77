"""Storage configuration models."""
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Legacy region served from the global endpoint with virtual-hosted addressing
LEGACY_REGION = "us-east-1"


class S3Credentials(BaseModel):
    """Immutable bucket credentials handed to the client at composition time."""

    model_config = ConfigDict(frozen=True)

    access_key_id: str = ""
    secret_access_key: str = Field(default="", repr=False)
    region: str = LEGACY_REGION
    bucket: str = ""
    path_prefix: str = ""

    @property
    def is_configured(self) -> bool:
        return bool(self.access_key_id and self.secret_access_key and self.bucket)

    @property
    def uses_virtual_host(self) -> bool:
        return (self.region or LEGACY_REGION) == LEGACY_REGION

    @property
    def host(self) -> str:
        if self.uses_virtual_host:
            return f"{self.bucket}.s3.amazonaws.com"
        return f"s3.{self.region}.amazonaws.com"

    def object_path(self, key: str) -> str:
        if self.uses_virtual_host:
            return f"/{key}"
        return f"/{self.bucket}/{key}"

    @property
    def bucket_path(self) -> str:
        if self.uses_virtual_host:
            return "/"
        return f"/{self.bucket}"

    @classmethod
    def from_settings(cls, storage: Any) -> "S3Credentials":
        return cls(
            access_key_id=storage.aws_access_key_id or "",
            secret_access_key=storage.aws_secret_access_key or "",
            region=storage.region or LEGACY_REGION,
            bucket=storage.bucket or "",
            path_prefix=storage.path_prefix or "",
        )


class StorageTimeouts(BaseModel):
    """Per-operation request timeouts in seconds."""

    model_config = ConfigDict(frozen=True)

    metadata: float = 30.0
    connectivity: float = 15.0
    put_object: float = 120.0
    upload_part: float = 300.0
    complete: float = 60.0

    @classmethod
    def from_settings(cls, storage: Any) -> "StorageTimeouts":
        return cls(
            metadata=storage.timeout_metadata,
            connectivity=min(storage.timeout_metadata, 15.0),
            put_object=max(storage.timeout_upload, 120.0),
            upload_part=storage.timeout_upload,
            complete=storage.timeout_complete,
        )
