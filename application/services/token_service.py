"""
令牌服务 - 校验外部身份系统签发的访问令牌（JWT）
"""
from dataclasses import dataclass
from typing import Optional

import jwt

from core.config import settings
from core.exceptions import TokenExpiredException
from core.logging_config import get_logger


logger = get_logger(__name__)


@dataclass(frozen=True)
class Principal:
    """Authenticated caller resolved from an access token."""

    user_id: int
    is_admin: bool = False


class TokenService:
    """Verify HS256 access tokens; issuing them is owned by the identity system."""

    def __init__(self, secret_key: Optional[str] = None, algorithm: Optional[str] = None):
        self._secret_key = secret_key or settings.SECRET_KEY
        self._algorithm = algorithm or settings.ALGORITHM

    def verify_access_token(self, token: str) -> Optional[Principal]:
        """Verify an access JWT and return the caller.

        - Expired token: raise TokenExpiredException
        - Invalid token or wrong type: return None
        """
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self._algorithm],
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpiredException()
        except jwt.InvalidTokenError as e:
            logger.info("access_token_invalid", error=str(e))
            return None

        token_type = payload.get("type")
        if token_type is not None and token_type != "access":
            return None

        user_id = payload.get("sub")
        if user_id is None:
            return None
        try:
            uid = int(user_id)
        except (TypeError, ValueError):
            return None

        roles = payload.get("roles") or []
        is_admin = bool(payload.get("is_admin")) or "admin" in roles
        return Principal(user_id=uid, is_admin=is_admin)
