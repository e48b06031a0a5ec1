# farmbid/api/auth.py
import logging
from datetime import datetime
from typing import Any, Mapping
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from farmbid.core.config import settings
from farmbid.core.database import get_async_db
from farmbid.core.jwt import decode_access_token
from farmbid.core.redis import get_redis
from farmbid.models.user import User

logger = logging.getLogger(__name__)

# Tokens are issued by the identity provider; tokenUrl only feeds the OpenAPI docs
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


def _safe_decode(value) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


def _normalize_payload(payload: Mapping[Any, Any]) -> dict[str, str]:
    """Convert redis cache payload keys and values to plain strings."""
    return {_safe_decode(key): _safe_decode(value) for key, value in payload.items()}


def _user_from_payload(payload: Mapping[str, str]) -> User:
    return User(
        id=UUID(payload["id"]),
        username=payload.get("username", ""),
        email=payload.get("email", ""),
        full_name=payload.get("full_name") or None,
        role=payload.get("role", ""),
        created_at=datetime.fromisoformat(payload["created_at"]),
        updated_at=datetime.fromisoformat(payload["updated_at"]),
    )


def _serialize_user(user: User) -> dict[str, str]:
    return {
        "id": str(user.id),
        "username": user.username,
        "email": user.email,
        "full_name": user.full_name or "",
        "role": user.role,
        "created_at": user.created_at.isoformat(),
        "updated_at": user.updated_at.isoformat(),
    }


async def cache_user_in_redis(redis: Redis, user: User) -> None:
    """
    Cache user data in Redis for fast lookup.
    TTL: USER_CACHE_TTL_SECONDS (defaults to the token lifetime)
    """
    user_cache_key = f"user:{user.id}"
    await redis.hset(user_cache_key, mapping=_serialize_user(user))
    await redis.expire(user_cache_key, settings.USER_CACHE_TTL_SECONDS)


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    redis: Redis = Depends(get_redis),
    db: AsyncSession = Depends(get_async_db),
) -> User:
    """
    Resolve the bearer token to a user.

    Flow:
    1. Decode JWT token (signature and expiry only)
    2. Try the Redis user cache
    3. Fall back to the users table and refill the cache
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    token_data = decode_access_token(token)
    if token_data is None:
        raise credentials_exception

    user_cache_key = f"user:{token_data.user_id}"
    try:
        cached_user = await redis.hgetall(user_cache_key)
    except Exception as e:
        logger.warning(f"User cache lookup failed for {token_data.user_id}: {e}")
        cached_user = None

    if cached_user:
        return _user_from_payload(_normalize_payload(cached_user))

    user = await db.get(User, token_data.user_id)
    if user is None:
        raise credentials_exception

    try:
        await cache_user_in_redis(redis, user)
    except Exception as e:
        logger.warning(f"Failed to cache user {user.id}: {e}")
    return user


async def require_farmer(current_user: User = Depends(get_current_user)) -> User:
    """Dependency to ensure current user is a farmer"""
    if not current_user.is_farmer:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Farmer access required"
        )
    return current_user


async def require_trader(current_user: User = Depends(get_current_user)) -> User:
    """Dependency to ensure current user is a trader"""
    if not current_user.is_trader:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Trader access required"
        )
    return current_user
