from .logging import LoggingMiddleware, mask_path
from .request_id import REQUEST_ID_HEADER, RequestIDMiddleware

__all__ = [
    "LoggingMiddleware",
    "RequestIDMiddleware",
    "REQUEST_ID_HEADER",
    "mask_path",
]
