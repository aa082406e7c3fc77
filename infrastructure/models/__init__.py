"""Infrastructure models package exports."""
from .base import Base, metadata
from .stored_file import StoredFileModel

__all__ = [
    "Base",
    "metadata",
    "StoredFileModel",
]
