"""
Vote model.
"""
from typing import TYPE_CHECKING
from datetime import datetime
from sqlalchemy import String, ForeignKey, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.models.base import BaseModel, utcnow

if TYPE_CHECKING:
    from app.models.pumpkin import Pumpkin
    from app.models.user import User


class Vote(BaseModel):
    """A user's single active ballot."""
    __tablename__ = "votes"
    __table_args__ = (
        UniqueConstraint("user_id", name="uq_votes_user"),
    )

    user_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False
    )
    pumpkin_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("pumpkins.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    voted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False
    )

    # Relationships
    pumpkin: Mapped["Pumpkin"] = relationship(
        "Pumpkin",
        back_populates="votes"
    )
    user: Mapped["User"] = relationship(
        "User",
        foreign_keys=[user_id]
    )

    def __repr__(self) -> str:
        return f"<Vote by {self.user_id} for pumpkin {self.pumpkin_id}>"
