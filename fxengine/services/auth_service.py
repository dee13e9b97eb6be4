"""
Access-token handling.

Tokens are issued by the finance tracker's auth service with a shared HS256
secret; the engine only verifies them. create_access_token exists for
internal tooling and tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import jwt, JWTError
import structlog

from fxengine.config import settings

logger = structlog.get_logger()

ACCESS_TOKEN_EXPIRE_MINUTES = 15


def _secret() -> str:
    if not settings.JWT_SECRET:
        raise JWTError("JWT_SECRET is not configured")
    return settings.JWT_SECRET


def create_access_token(
    user_id: str,
    role: str = "user",
    email: Optional[str] = None,
    expires_minutes: int = ACCESS_TOKEN_EXPIRE_MINUTES,
) -> str:
    now = datetime.now(timezone.utc)
    claims = {
        "sub": str(user_id),
        "role": role,
        "iat": now,
        "exp": now + timedelta(minutes=expires_minutes),
        "type": "access",
    }
    if email:
        claims["email"] = email
    return jwt.encode(claims, _secret(), algorithm=settings.JWT_ALGORITHM)


def verify_access_token(token: str) -> dict:
    """Verify an access token and return its claims. Raises JWTError on failure."""
    payload = jwt.decode(token, _secret(), algorithms=[settings.JWT_ALGORITHM])
    if payload.get("type") != "access":
        raise JWTError("Not an access token")
    return payload
