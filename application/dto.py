"""
数据传输对象（DTO）- 应用层与表现层之间的数据传输
"""
from pydantic import BaseModel, Field, field_validator, model_serializer, ConfigDict
from shared.codes import BusinessCode
from typing import Optional
from datetime import datetime, timezone


class DTOBase(BaseModel):
    """Base DTO: unify datetime serialization to UTC-Z for all subclasses."""

    @model_serializer(mode="wrap")
    def _serialize_model(self, handler):  # type: ignore[override]
        data = handler(self)

        def convert(value):
            if isinstance(value, datetime):
                ts = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
                s = ts.astimezone(timezone.utc).isoformat()
                return s.replace("+00:00", "Z")
            if isinstance(value, list):
                return [convert(v) for v in value]
            if isinstance(value, tuple):
                return tuple(convert(v) for v in value)
            if isinstance(value, dict):
                return {k: convert(v) for k, v in value.items()}
            return value

        return convert(data)


class MessageDTO(DTOBase):
    """消息响应DTO"""
    message: str
    code: int = BusinessCode.SUCCESS


class StoredFileDTO(DTOBase):
    """Catalog record as returned to admins."""

    id: int
    file_name: str
    storage_key: str
    file_size: int
    mime_type: str
    requires_auth: bool
    uploaded_by: Optional[int] = None
    uploaded_at: Optional[datetime] = None
    access_url: str

    model_config = ConfigDict(from_attributes=True)


class SyncResultDTO(DTOBase):
    """Outcome of one reconciliation pass."""

    added_count: int = 0
    removed_count: int = 0
    total_s3_files: int = 0


class ConnectionStatusDTO(DTOBase):
    ok: bool


class ToggleAuthRequestDTO(DTOBase):
    requires_auth: bool


class ChunkedUploadInitRequestDTO(DTOBase):
    file_name: str = Field(..., min_length=1, max_length=255)
    content_type: Optional[str] = None


class ChunkedUploadSessionDTO(DTOBase):
    upload_id: str
    key: str


class ChunkPartDTO(DTOBase):
    part_number: int = Field(..., ge=1, le=10000)
    etag: str = Field(..., min_length=1)


class ChunkedUploadCompleteRequestDTO(DTOBase):
    key: str
    upload_id: str
    parts: list[ChunkPartDTO] = Field(..., min_length=1)
    file_name: str = Field(..., min_length=1, max_length=255)
    file_size: int = Field(0, ge=0)
    content_type: Optional[str] = None

    @field_validator("parts")
    def _unique_part_numbers(cls, v):
        numbers = [p.part_number for p in v]
        if len(numbers) != len(set(numbers)):
            raise ValueError("part_number 不能重复")
        return v


class ChunkedUploadAbortRequestDTO(DTOBase):
    key: str
    upload_id: str
