"""Authentication dependencies shared by the route modules."""

import logging
from dataclasses import asdict, dataclass
from typing import Optional

from carwash.models.user import User, UserRole
from carwash.services.database import get_db
from carwash.services.identity import IdentityError, verify_session_token
from carwash.services.redis_client import cache_user, get_cached_user
from fastapi import Depends, Header, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


@dataclass
class CurrentUser:
    """The authenticated caller, as resolved from the session token."""

    id: str
    clerk_id: str
    name: str
    email: str
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_staff(self) -> bool:
        return self.role in (UserRole.STAFF, UserRole.ADMIN)

    @classmethod
    def from_user(cls, user: User) -> "CurrentUser":
        return cls(
            id=user.id,
            clerk_id=user.clerk_id,
            name=user.name,
            email=user.email,
            role=UserRole(user.role),
        )

    @classmethod
    def from_cache(cls, data: dict) -> "CurrentUser":
        return cls(
            id=data["id"],
            clerk_id=data["clerk_id"],
            name=data.get("name", ""),
            email=data.get("email", ""),
            role=UserRole(data["role"]),
        )

    def to_cache(self) -> dict:
        data = asdict(self)
        data["role"] = self.role.value
        return data


def extract_bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing authorization header"
        )

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid authorization header"
        )
    return token.strip()


async def get_current_user(
    authorization: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
) -> CurrentUser:
    """Resolve the bearer session token to a local user.

    Raises:
        HTTPException: 401 for a missing or invalid token, 404 when the
            token's subject has no local user yet.
    """
    token = extract_bearer_token(authorization)

    try:
        claims = await verify_session_token(token)
    except IdentityError as e:
        logger.warning(f"Rejected session token: {e}")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    clerk_id = claims.get("sub")
    if not clerk_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    cached = await get_cached_user(clerk_id)
    if cached:
        try:
            return CurrentUser.from_cache(cached)
        except (KeyError, ValueError) as e:
            logger.warning(f"Ignoring malformed cached profile for {clerk_id}: {e}")

    result = await db.execute(select(User).where(User.clerk_id == clerk_id))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    current = CurrentUser.from_user(user)
    await cache_user(clerk_id, current.to_cache())
    return current


def require_roles(*roles: UserRole):
    """Dependency factory allowing only the given roles.

    Example:
        @router.get("/bookings")
        async def list_bookings(user: CurrentUser = Depends(require_roles(UserRole.ADMIN))):
            ...
    """

    async def checker(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
        return user

    return checker


require_admin = require_roles(UserRole.ADMIN)
require_staff = require_roles(UserRole.STAFF, UserRole.ADMIN)
