"""
Request dependencies: resolve the bearer token into the current user / principal.
"""
from dataclasses import dataclass
from typing import Optional
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from app.db.base import get_db
from app.core.errors import NotAuthenticated
from app.core.security import verify_token
from app.models.user import User

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    """The authenticated identity performing an operation."""
    id: str
    is_admin: bool = False

    @classmethod
    def from_user(cls, user: User) -> "Principal":
        return cls(id=user.id, is_admin=bool(user.is_admin))


async def get_current_user_optional(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db)
) -> Optional[User]:
    """Return the user named by the bearer token, or None if absent or invalid."""
    if credentials is None:
        return None

    user_id = verify_token(credentials.credentials)
    if user_id is None:
        return None

    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_current_user(
    user: Optional[User] = Depends(get_current_user_optional)
) -> User:
    """Require an authenticated user."""
    if user is None:
        raise NotAuthenticated("Invalid or missing authentication token")
    return user


async def get_current_principal_optional(
    user: Optional[User] = Depends(get_current_user_optional)
) -> Optional[Principal]:
    if user is None:
        return None
    return Principal.from_user(user)


async def get_current_principal(
    user: User = Depends(get_current_user)
) -> Principal:
    return Principal.from_user(user)
