"""Object key validation applied before any key reaches the wire."""
import re
from typing import Optional

from .exceptions import InvalidKeyError

MAX_KEY_BYTES = 1024

_ALLOWED_KEY = re.compile(r"[A-Za-z0-9\-_/.]+")
_TRAVERSAL_SEQUENCES = ("..", "//")


def sanitize_key(raw_key: Optional[str], *, operation: Optional[str] = None) -> str:
    """Return the normalized key or raise :class:`InvalidKeyError`.

    Keys containing ``..`` or ``//`` are rejected outright rather than
    rewritten. A leading ``/`` is stripped.
    """
    if not raw_key:
        raise InvalidKeyError("empty key", operation=operation)
    for sequence in _TRAVERSAL_SEQUENCES:
        if sequence in raw_key:
            raise InvalidKeyError(f"key contains {sequence!r}", operation=operation)

    key = raw_key.lstrip("/")
    if not key:
        raise InvalidKeyError("empty key", operation=operation)
    if len(key.encode("utf-8")) > MAX_KEY_BYTES:
        raise InvalidKeyError(f"key exceeds {MAX_KEY_BYTES} bytes", operation=operation)
    if not _ALLOWED_KEY.fullmatch(key):
        raise InvalidKeyError("key contains disallowed characters", operation=operation)
    return key
