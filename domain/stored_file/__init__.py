"""Stored file domain exports."""
from .entity import StoredFile
from .repository import StoredFileRepository

__all__ = ["StoredFile", "StoredFileRepository"]
