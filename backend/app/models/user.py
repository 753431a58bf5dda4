"""
User model.
"""
from typing import Optional
from sqlalchemy import String, Boolean
from sqlalchemy.orm import Mapped, mapped_column
from app.models.base import BaseModel


class User(BaseModel):
    """User model for authentication and profile."""
    __tablename__ = "users"

    # Core auth fields
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    display_name: Mapped[str] = mapped_column(String(200), nullable=False)

    # Moderators: may approve, reject and delete pumpkins and reset votes
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Cache of the user's row in the votes table; the votes table wins on disagreement
    voted_for_id: Mapped[Optional[str]] = mapped_column(String(15), nullable=True, index=True)

    def __repr__(self) -> str:
        return f"<User {self.email}>"
