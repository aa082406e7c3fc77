"""Stored file catalog model definitions."""
from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    text,
)
from sqlalchemy.sql import func

from .base import Base


class StoredFileModel(Base):
    """ORM mapping for stored_files table."""

    __tablename__ = "stored_files"
    __table_args__ = (
        Index("ix_stored_files_storage_key", "storage_key"),
        {
            "comment": "私有存储桶文件目录，索引桶内对象并提供访问令牌",
        },
    )

    id = Column(
        Integer,
        primary_key=True,
        autoincrement=True,
        comment="主键ID",
    )
    file_name = Column(
        String(255),
        nullable=False,
        comment="显示文件名",
    )
    storage_key = Column(
        String(512),
        nullable=False,
        comment="对象存储中的Key（路径）",
    )
    file_size = Column(
        BigInteger,
        nullable=False,
        default=0,
        server_default=text("0"),
        comment="文件大小（字节）",
    )
    mime_type = Column(
        String(100),
        nullable=False,
        default="application/octet-stream",
        server_default=text("'application/octet-stream'"),
        comment="MIME类型",
    )
    access_token = Column(
        String(64),
        nullable=False,
        unique=True,
        comment="访问令牌（不透明随机串）",
    )
    requires_auth = Column(
        Boolean,
        nullable=False,
        default=True,
        server_default=text("true"),
        comment="是否需要登录才能访问",
    )
    uploaded_by = Column(
        Integer,
        nullable=True,
        comment="上传者ID（同步导入时为空）",
    )
    uploaded_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
        comment="上传时间",
    )

    def __repr__(self) -> str:
        return (
            "<StoredFileModel(id={id}, storage_key='{key}', requires_auth={auth})>"
        ).format(
            id=self.id,
            key=self.storage_key,
            auth=self.requires_auth,
        )
