"""User endpoints - identity and admin-only role management."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from ites.auth.middleware import AdminDep, UserDep, generate_api_key, hash_api_key
from ites.database import get_db
from ites.schemas.user import CreatedUserResponse, CreateUserRequest, RoleUpdateRequest, UserOut
from ites.storage.repositories import (
    create_user,
    get_user_by_email,
    get_user_by_id,
    list_users,
    set_user_role,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/me", response_model=UserOut)
async def me(user: UserDep):
    return UserOut.from_user(user)


@router.get("", response_model=list[UserOut])
async def get_users(admin: AdminDep, db: Annotated[AsyncSession, Depends(get_db)]):
    """All users, newest first (admin only)."""
    return [UserOut.from_user(u) for u in await list_users(db)]


@router.post("", response_model=CreatedUserResponse)
async def provision_user(
    body: CreateUserRequest,
    admin: AdminDep,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Provision a user and issue its API key. The key is not retrievable later."""
    if await get_user_by_email(db, body.email):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"error": "conflict", "reason": "A user with this email already exists"},
        )
    api_key = generate_api_key()
    user = await create_user(
        db,
        email=body.email,
        name=body.name,
        role=body.role,
        api_key_hash=hash_api_key(api_key),
    )
    logger.info("User %s provisioned with role %s by %s", user.id, user.role, admin.id)
    return CreatedUserResponse(user=UserOut.from_user(user), api_key=api_key)


@router.put("/{user_id}/role", response_model=UserOut)
async def update_role(
    user_id: str,
    body: RoleUpdateRequest,
    admin: AdminDep,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Change a user's role (admin only)."""
    user = await get_user_by_id(db, user_id)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "not_found", "reason": "User not found"},
        )
    old_role = user.role
    await set_user_role(db, user, body.role)
    logger.info("User %s role changed %s -> %s by %s", user.id, old_role, user.role, admin.id)
    return UserOut.from_user(user)
