"""Storage service exceptions.

Each error carries the failing ``operation`` and a ``message_key`` for the
sanitized, localized text shown to end users. Provider response bodies are
only ever written to the logs, never stored on the exception.
"""
from typing import Optional


class StorageError(Exception):
    """Base storage exception."""

    message_key = "storage.remote_rejected"

    def __init__(self, message: str = "", *, operation: Optional[str] = None):
        self.operation = operation
        super().__init__(message or self.__class__.__name__)

    @property
    def format_params(self) -> dict:
        return {}


class NotConfiguredError(StorageError):
    """Access key, secret key or bucket is missing."""

    message_key = "storage.not_configured"


class InvalidKeyError(StorageError):
    """Object key failed sanitization."""

    message_key = "storage.invalid_key"


class LocalSourceMissingError(StorageError):
    """Local file to upload could not be read."""

    message_key = "storage.source_missing"


class TransportError(StorageError):
    """Network-level failure, no HTTP response received."""

    message_key = "storage.transport_failed"


class RemoteRejectedError(StorageError):
    """Provider answered with a non-success status."""

    message_key = "storage.remote_rejected"

    def __init__(self, status_code: int, *, operation: Optional[str] = None):
        self.status_code = status_code
        super().__init__(f"{operation or 'request'} rejected with status {status_code}", operation=operation)

    @property
    def format_params(self) -> dict:
        return {"status_code": self.status_code}


class ResponseUnparsableError(StorageError):
    """Success status, but the body did not match the expected contract."""

    message_key = "storage.response_unparsable"
