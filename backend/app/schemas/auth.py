"""
Authentication and user schemas.
"""
from typing import Optional
from pydantic import BaseModel, EmailStr, Field
from datetime import datetime


class UserCreate(BaseModel):
    """User registration request."""
    email: EmailStr
    password: str = Field(..., min_length=8)
    passwordConfirm: str = Field(..., min_length=8)
    display_name: str = Field(..., min_length=1, max_length=200)


class UserLogin(BaseModel):
    """User login request."""
    email: EmailStr
    password: str


class UserResponse(BaseModel):
    """User response."""
    id: str
    email: str
    display_name: str
    is_admin: bool = False
    voted_for: Optional[str] = None
    created: datetime
    updated: datetime

    class Config:
        from_attributes = True


class TokenResponse(BaseModel):
    """Auth token response."""
    token: str
    record: UserResponse
