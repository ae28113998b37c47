"""API key authentication middleware."""

import hashlib
import secrets
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import APIKeyHeader
from sqlalchemy.ext.asyncio import AsyncSession

from ites.auth.roles import is_admin
from ites.config import settings
from ites.database import get_db
from ites.models.user import User
from ites.storage.repositories import get_user_by_api_key_hash


API_KEY_HEADER = APIKeyHeader(name="Authorization", auto_error=False)


def hash_api_key(api_key: str) -> str:
    """Hash API key with salt for storage/lookup."""
    return hashlib.sha256(
        f"{settings.api_key_hash_salt}:{api_key}".encode()
    ).hexdigest()


def generate_api_key() -> str:
    return f"sk_ite_{secrets.token_urlsafe(24)}"


async def get_current_user(
    db: Annotated[AsyncSession, Depends(get_db)],
    auth_header: str | None = Depends(API_KEY_HEADER),
) -> User | None:
    """Resolve the caller from a Bearer token (API key). None when unresolvable."""
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    api_key = auth_header[7:].strip()
    if not api_key:
        return None
    return await get_user_by_api_key_hash(db, hash_api_key(api_key))


async def require_current_user(
    user: Annotated[User | None, Depends(get_current_user)],
) -> User:
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "unauthorized", "reason": "Missing or invalid API key"},
        )
    return user


async def require_admin(
    user: Annotated[User, Depends(require_current_user)],
) -> User:
    if not is_admin(user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error": "forbidden", "reason": "Admin access required"},
        )
    return user


# Type aliases for dependency injection
OptionalUserDep = Annotated[User | None, Depends(get_current_user)]
UserDep = Annotated[User, Depends(require_current_user)]
AdminDep = Annotated[User, Depends(require_admin)]
