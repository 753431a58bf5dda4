"""
Authentication endpoints.

Endpoints:
- POST /api/v1/auth/register - Register new user
- POST /api/v1/auth/login - Login with email and password
- POST /api/v1/auth/refresh - Refresh token
- GET /api/v1/auth/me - Current user, including the pumpkin they vote for

Note: Logout is handled client-side by discarding the JWT.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from app.db.base import get_db
from app.core.security import get_password_hash, verify_password, create_access_token, is_admin_email
from app.core.deps import get_current_user
from app.models.user import User
from app.schemas.auth import UserCreate, UserLogin, UserResponse, TokenResponse

router = APIRouter()


def user_to_response(user: User) -> UserResponse:
    """Convert User model to UserResponse schema."""
    return UserResponse(
        id=user.id,
        email=user.email,
        display_name=user.display_name,
        is_admin=user.is_admin,
        voted_for=user.voted_for_id,
        created=user.created,
        updated=user.updated,
    )


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(
    user_data: UserCreate,
    db: AsyncSession = Depends(get_db)
):
    """Register a new user. Emails listed in ADMIN_EMAILS become admins."""
    # Validate passwords match
    if user_data.password != user_data.passwordConfirm:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Passwords do not match"
        )

    email = user_data.email.lower()

    # Check if email exists
    result = await db.execute(select(User).where(User.email == email))
    if result.scalar_one_or_none():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered"
        )

    user = User(
        email=email,
        password_hash=get_password_hash(user_data.password),
        display_name=user_data.display_name,
        is_admin=is_admin_email(email),
    )

    db.add(user)
    await db.commit()  # Commit immediately so subsequent login can find the user
    await db.refresh(user)

    return user_to_response(user)


@router.post("/login", response_model=TokenResponse)
async def login(
    credentials: UserLogin,
    db: AsyncSession = Depends(get_db)
):
    """Authenticate user with email/password."""
    result = await db.execute(select(User).where(User.email == credentials.email.lower()))
    user = result.scalar_one_or_none()

    if user is None or not verify_password(credentials.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid email or password"
        )

    token = create_access_token(subject=user.id)

    return TokenResponse(
        token=token,
        record=user_to_response(user)
    )


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(
    current_user: User = Depends(get_current_user)
):
    """Refresh the current auth token."""
    token = create_access_token(subject=current_user.id)

    return TokenResponse(
        token=token,
        record=user_to_response(current_user)
    )


@router.get("/me", response_model=UserResponse)
async def me(
    current_user: User = Depends(get_current_user)
):
    """Get the current user."""
    return user_to_response(current_user)
