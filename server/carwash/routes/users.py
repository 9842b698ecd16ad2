"""User profile and role management endpoints."""

import logging
from typing import Optional

from carwash.dependencies import CurrentUser, get_current_user, require_admin
from carwash.models.staff import Staff
from carwash.models.user import User, UserRole
from carwash.schemas import RoleUpdate
from carwash.services.database import get_db
from carwash.services.identity import IdentityClient, IdentityError, get_identity_client
from carwash.services.redis_client import invalidate_user_cache
from carwash.utils.serialization import enum_value, serialize_user
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

router = APIRouter()

# Local role -> role string stored in the provider's public metadata
METADATA_ROLES = {
    UserRole.CUSTOMER: "customer",
    UserRole.STAFF: "staff",
    UserRole.ADMIN: "admin",
}


async def ensure_staff_profile(db: AsyncSession, user_id: str) -> Staff:
    """Return the user's staff profile, creating a fresh one if missing."""
    result = await db.execute(select(Staff).where(Staff.user_id == user_id))
    staff = result.scalar_one_or_none()
    if staff:
        return staff

    staff = Staff(user_id=user_id, role="CLEANER", average_rating=0.0, total_reviews=0)
    db.add(staff)
    logger.info(f"Created staff profile for user {user_id}")
    return staff


def parse_role(value: str) -> UserRole:
    normalized = value.strip().upper()
    if normalized == "EMPLOYEE":
        return UserRole.STAFF
    try:
        return UserRole(normalized)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid role")


@router.get("/users/me")
async def get_my_profile(
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Current user's profile."""
    user = await db.get(User, current_user.id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return serialize_user(user)


@router.get("/users")
async def list_users(
    role: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Users, newest first, optionally filtered by role."""
    query = select(User).order_by(User.created_at.desc()).limit(limit)
    if role:
        query = query.where(User.role == parse_role(role))

    result = await db.execute(query)
    return [
        {"id": u.id, "name": u.name, "email": u.email, "role": enum_value(u.role)}
        for u in result.scalars().all()
    ]


@router.patch("/users/{user_id}/role")
async def update_user_role(
    user_id: str,
    payload: RoleUpdate,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    identity: IdentityClient = Depends(get_identity_client),
):
    """Change a user's role in the identity provider and locally.

    Promoting a user to STAFF creates their staff profile.
    """
    role = parse_role(payload.role)

    user = await db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    try:
        await identity.update_user_metadata(user.clerk_id, {"role": METADATA_ROLES[role]})
    except IdentityError as e:
        logger.error(f"Failed to update provider role for {user_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update user role",
        )

    user.role = role
    if role == UserRole.STAFF:
        await ensure_staff_profile(db, user.id)
    await db.commit()

    await invalidate_user_cache(user.clerk_id)
    logger.info(f"User {user_id} role changed to {role.value} by {current_user.id}")
    return serialize_user(user)
