# farmbid/core/jwt.py
"""JWT bearer tokens carrying the caller's identity."""

from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from jose import JWTError, jwt
from pydantic import BaseModel

from farmbid.core.config import settings


class TokenData(BaseModel):
    """JWT Token payload data."""

    user_id: UUID
    username: str
    role: str
    exp: datetime


def create_access_token(
    user_id: UUID,
    username: str,
    role: str,
    expires_minutes: int | None = None,
) -> str:
    """
    Create a JWT access token for a user.

    Tokens are issued by the identity provider; this helper exists for
    scripts, load tests and the test-suite.

    Args:
        user_id: User's UUID
        username: User's username
        role: "farmer" or "trader"
        expires_minutes: Override for settings.ACCESS_TOKEN_EXPIRE_MINUTES

    Returns:
        JWT token string
    """
    now = datetime.now(timezone.utc)
    expire = now + timedelta(
        minutes=expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES
    )

    payload = {
        "user_id": str(user_id),
        "username": username,
        "role": role,
        "exp": expire,
        "iat": now,
    }

    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Optional[TokenData]:
    """
    Decode and validate a JWT token.

    Args:
        token: JWT token string

    Returns:
        TokenData if valid, None if invalid or expired
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None

    user_id_str = payload.get("user_id")
    username = payload.get("username")
    role = payload.get("role")
    exp = payload.get("exp")

    if user_id_str is None or username is None or role is None or exp is None:
        return None

    try:
        user_id = UUID(user_id_str)
    except ValueError:
        return None

    return TokenData(
        user_id=user_id,
        username=username,
        role=role,
        exp=datetime.fromtimestamp(exp, tz=timezone.utc),
    )
