"""Storage data transfer objects."""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class ListedObject(BaseModel):
    """One entry of a bucket listing."""
    key: str
    size: int = 0
    last_modified: Optional[datetime] = None
    etag: Optional[str] = None


class PutObjectResult(BaseModel):
    """Result of a single PUT or a completed multipart upload."""
    key: str
    etag: Optional[str] = None


class MultipartUpload(BaseModel):
    """Provider-issued multipart session handle."""
    upload_id: str
    key: str


class UploadedPart(BaseModel):
    part_number: int
    etag: str
