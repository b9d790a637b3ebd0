"""
AcademicAlly — Users API

Endpoints for student registration, lookup, and block management.
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from academically.database import get_db
from academically.models.user import User
from academically.schemas.user import BlockCreate, BlockedUser, UserCreate, UserResponse
from academically.services.directory_service import UserDirectory

logger = structlog.get_logger("academically.api.users")

router = APIRouter()


# ──────────────────────────────────────────────────────────────────────────────
# POST /: Create a new user
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new user",
)
async def create_user(
    payload: UserCreate,
    db: AsyncSession = Depends(get_db),
) -> User:
    """Register a student with their courses and study preferences.

    Validates that the email is not already in use.
    """
    log = logger.bind(email=payload.email)
    log.info("create_user_start")

    stmt = select(User).where(User.email == payload.email.strip().lower())
    result = await db.execute(stmt)
    if result.scalar_one_or_none() is not None:
        log.warning("create_user_duplicate_email")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A user with this email already exists.",
        )

    user = await UserDirectory(db).create_user(payload)

    log.info("create_user_complete", user_id=str(user.id))
    return user


# ──────────────────────────────────────────────────────────────────────────────
# GET /: List users with pagination
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/",
    response_model=list[UserResponse],
    summary="List users with pagination",
)
async def list_users(
    limit: int = Query(20, ge=1, le=100, description="Max users to return"),
    offset: int = Query(0, ge=0, description="Number of users to skip"),
    db: AsyncSession = Depends(get_db),
) -> list[User]:
    """Return a paginated list of active users."""
    logger.info("list_users", limit=limit, offset=offset)

    stmt = (
        select(User)
        .where(User.is_active.is_(True))
        .order_by(User.created_at.desc(), User.id)
        .limit(limit)
        .offset(offset)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


# ──────────────────────────────────────────────────────────────────────────────
# GET /{user_id}: Get user by ID
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/{user_id}",
    response_model=UserResponse,
    summary="Get user by ID",
)
async def get_user(
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
) -> User:
    logger.info("get_user", user_id=str(user_id))
    return await UserDirectory(db).get_user(user_id)


# ──────────────────────────────────────────────────────────────────────────────
# Blocks
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/{user_id}/blocks",
    response_model=BlockedUser,
    status_code=status.HTTP_201_CREATED,
    summary="Block another user",
)
async def block_user(
    user_id: uuid.UUID,
    payload: BlockCreate,
    db: AsyncSession = Depends(get_db),
) -> BlockedUser:
    """Hide ``blocked_user_id`` from this user's future suggestions (and
    vice versa).  Existing matches are not changed."""
    block = await UserDirectory(db).block_user(user_id, payload.blocked_user_id, payload.reason)
    return BlockedUser(user_id=block.blocked_id, reason=block.reason, blocked_at=block.created_at)


@router.get(
    "/{user_id}/blocks",
    response_model=list[BlockedUser],
    summary="List users blocked by this user",
)
async def list_blocked(
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
) -> list[BlockedUser]:
    blocks = await UserDirectory(db).list_blocked(user_id)
    return [
        BlockedUser(user_id=b.blocked_id, reason=b.reason, blocked_at=b.created_at)
        for b in blocks
    ]


@router.delete(
    "/{user_id}/blocks/{blocked_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Unblock a user",
)
async def unblock_user(
    user_id: uuid.UUID,
    blocked_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
) -> Response:
    removed = await UserDirectory(db).unblock_user(user_id, blocked_id)
    if not removed:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"User {blocked_id} is not blocked.",
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)
