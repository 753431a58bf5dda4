"""
Pumpkin model.
"""
from typing import Optional, TYPE_CHECKING
from datetime import datetime
from sqlalchemy import String, Text, Integer, ForeignKey, DateTime, Enum, Index, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
import enum
from app.models.base import BaseModel, utcnow

if TYPE_CHECKING:
    from app.models.user import User
    from app.models.vote import Vote


class PumpkinStatus(str, enum.Enum):
    """Moderation status."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Pumpkin(BaseModel):
    """A carved pumpkin entered into the contest."""
    __tablename__ = "pumpkins"
    __table_args__ = (
        CheckConstraint("vote_count >= 0", name="vote_count_non_negative"),
        Index("ix_pumpkins_status_submitted_at", "status", "submitted_at"),
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    carver_name: Mapped[str] = mapped_column(String(200), nullable=False)

    # data:image/...;base64,... URI
    image: Mapped[str] = mapped_column(Text, nullable=False)

    status: Mapped[PumpkinStatus] = mapped_column(
        Enum(PumpkinStatus, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=PumpkinStatus.PENDING,
        index=True
    )

    # Submitter
    submitted_by_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False
    )
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False
    )

    # Set once, on pending -> approved
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_by_id: Mapped[Optional[str]] = mapped_column(
        String(15),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True
    )

    # Materialized count of rows in votes referencing this pumpkin
    vote_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Relationships
    submitted_by: Mapped["User"] = relationship(
        "User",
        foreign_keys=[submitted_by_id]
    )
    votes: Mapped[list["Vote"]] = relationship(
        "Vote",
        back_populates="pumpkin",
        cascade="all, delete-orphan",
        passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<Pumpkin {self.title} ({self.status.value})>"
