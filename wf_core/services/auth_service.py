"""
操作员令牌

只负责签发和校验 HS256 访问令牌；账号、登录和刷新由上游身份系统处理。
令牌声明：sub（操作员ID）、role（operator / manager / admin）、type=access、exp、jti。
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from uuid import uuid4

from jose import JWTError, jwt

from wf_core.config import get_settings
from wf_core.utils.errors import UnauthorizedError
from wf_core.utils.logger import get_logger

logger = get_logger(__name__)

TOKEN_TYPE = "access"


class AuthService:

    def __init__(self):
        self.settings = get_settings()
        self.algorithm = self.settings.algorithm
        self.access_token_expire = timedelta(minutes=self.settings.access_token_expire_minutes)

    def create_access_token(self, user_id: int, role: str = "operator", extra: Optional[Dict[str, Any]] = None) -> str:
        """签发访问令牌；extra 中的同名声明会被覆盖"""
        claims = {
            **(extra or {}),
            "sub": str(user_id),
            "role": role,
            "type": TOKEN_TYPE,
            "exp": datetime.now(timezone.utc) + self.access_token_expire,
            "jti": uuid4().hex,
        }
        return jwt.encode(claims, self.settings.secret_key, algorithm=self.algorithm)

    def decode_token(self, token: str) -> Dict[str, Any]:
        try:
            claims = jwt.decode(token, self.settings.secret_key, algorithms=[self.algorithm])
        except JWTError as e:
            logger.info("Rejected bearer token", reason=str(e))
            raise UnauthorizedError(code="INVALID_TOKEN", detail=f"Token validation failed: {e}")

        self._check_claims(claims)
        return claims

    @staticmethod
    def _check_claims(claims: Dict[str, Any]) -> None:
        if claims.get("type") != TOKEN_TYPE:
            raise UnauthorizedError(code="INVALID_TOKEN_TYPE", detail="Access token required")
        if not str(claims.get("sub", "")).isdigit():
            raise UnauthorizedError(code="INVALID_TOKEN", detail="Token subject is not a user id")


_auth_service: Optional[AuthService] = None


def get_auth_service() -> AuthService:
    global _auth_service
    if _auth_service is None:
        _auth_service = AuthService()
    return _auth_service


def reset_auth_service() -> None:
    global _auth_service
    _auth_service = None
