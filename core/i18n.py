from __future__ import annotations

import gettext
import logging
from contextvars import ContextVar
from pathlib import Path

_current_locale: ContextVar[str] = ContextVar("current_locale", default="en")
_translators: dict[str, gettext.NullTranslations] = {}
_logger = logging.getLogger(__name__)

# English defaults used when no compiled catalog provides the key.
DEFAULT_MESSAGES: dict[str, str] = {
    "welcome": "Welcome to the S3 file vault",
    "health.ok": "OK",
    "error.internal": "Internal server error",
    "validation.failed": "Validation failed: {reason}",
    "validation.domain": "Validation failed",
    "auth.unauthorized": "Authentication required",
    "auth.forbidden": "Permission denied",
    "auth.token.invalid": "Invalid authentication credentials",
    "auth.token.expired": "Token expired",
    "file.not_found": "File not found.",
    "file.auth_required": "You must be logged in to access this file.",
    "file.record.save_failed": "Failed to save file record.",
    "file.deleted": "File deleted.",
    "file.uploaded": "File uploaded.",
    "file.auth.updated": "Authentication setting updated.",
    "file.access.failed": "Unable to generate file access URL.",
    "storage.error": "Storage operation failed. Please contact administrator.",
    "storage.not_configured": "S3 credentials are not configured.",
    "storage.invalid_key": "Invalid S3 key provided.",
    "storage.source_missing": "Local file not found.",
    "storage.transport_failed": "Could not reach the storage service. Please try again later.",
    "storage.remote_rejected": "Storage request failed with status {status_code}. Please contact administrator.",
    "storage.response_unparsable": "Failed to parse storage service response.",
    "storage.connection.ok": "Connection successful.",
    "storage.multipart.aborted": "Upload aborted.",
    "storage.multipart.parts_invalid": "Invalid parts data.",
    "sync.completed": "Sync completed. Added {added_count}, removed {removed_count} files.",
}


def set_locale(locale: str) -> None:
    """Set current request locale (fallback to 'en')."""
    _current_locale.set(locale or "en")


def get_locale() -> str:
    """Get current request locale (default 'en')."""
    return _current_locale.get()


def _get_translator(locale: str) -> gettext.NullTranslations:
    tr = _translators.get(locale)
    if tr is not None:
        return tr
    localedir = Path(__file__).resolve().parent.parent / "locales"
    tr = gettext.translation(
        domain="messages",
        localedir=str(localedir),
        languages=[locale],
        fallback=True,
    )
    _translators[locale] = tr
    return tr


def t(msgid: str, **params) -> str:
    """Translate msgid using current locale and format with params.

    Falls back to the English default for known keys, then to msgid itself.
    """
    text = _get_translator(get_locale()).gettext(msgid)
    if text == msgid:
        text = DEFAULT_MESSAGES.get(msgid, msgid)
    if not params:
        return text
    try:
        return text.format(**params)
    except (KeyError, IndexError, ValueError) as exc:
        _logger.warning("i18n_format_failed msgid=%s params=%s error=%s", msgid, list(params.keys()), exc)
        return text
