"""
Pumpkin and leaderboard schemas.
"""
import base64
import binascii
import re
from typing import Optional
from pydantic import BaseModel, Field, field_validator
from datetime import datetime

from app.core.config import settings
from app.models.pumpkin import Pumpkin, PumpkinStatus

DATA_URI_RE = re.compile(r"^data:image/(png|jpeg|jpg|gif|webp);base64,(?P<payload>[A-Za-z0-9+/=\s]+)$")


class PumpkinCreate(BaseModel):
    """Submit pumpkin request."""
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=2000)
    carver_name: str = Field(..., min_length=1, max_length=200)
    image: str = Field(..., description="data:image/...;base64,... URI")

    @field_validator("title", "description", "carver_name")
    @classmethod
    def not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("image")
    @classmethod
    def check_image(cls, value: str) -> str:
        match = DATA_URI_RE.match(value.strip())
        if match is None:
            raise ValueError("image must be a base64 data URI (png, jpeg, gif or webp)")
        try:
            payload = base64.b64decode(match.group("payload"), validate=False)
        except (binascii.Error, ValueError):
            raise ValueError("image payload is not valid base64")
        if not payload:
            raise ValueError("image is empty")
        if len(payload) > settings.MAX_IMAGE_BYTES:
            raise ValueError(
                f"image is {len(payload) // 1024} KB; the limit is {settings.MAX_IMAGE_BYTES // 1024} KB"
            )
        return value.strip()


class PumpkinStatusUpdate(BaseModel):
    """Moderation request."""
    status: str = Field(..., pattern="^(pending|approved|rejected)$")


class PumpkinResponse(BaseModel):
    """Pumpkin response."""
    id: str
    title: str
    description: str
    carver_name: str
    image: str
    status: str
    submitted_by: str
    submitted_at: datetime
    approved_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    vote_count: int = 0

    class Config:
        from_attributes = True


def pumpkin_to_response(pumpkin: Pumpkin) -> PumpkinResponse:
    """Convert Pumpkin model to PumpkinResponse schema."""
    return PumpkinResponse(
        id=pumpkin.id,
        title=pumpkin.title,
        description=pumpkin.description,
        carver_name=pumpkin.carver_name,
        image=pumpkin.image,
        status=pumpkin.status.value if isinstance(pumpkin.status, PumpkinStatus) else pumpkin.status,
        submitted_by=pumpkin.submitted_by_id,
        submitted_at=pumpkin.submitted_at,
        approved_at=pumpkin.approved_at,
        approved_by=pumpkin.approved_by_id,
        vote_count=pumpkin.vote_count or 0,
    )


class PumpkinListResponse(BaseModel):
    items: list[PumpkinResponse]
    total: int


class LeaderboardRow(BaseModel):
    rank: int
    pumpkin: PumpkinResponse


class LeaderboardResponse(BaseModel):
    """Pumpkins ranked by votes."""
    rankings: list[LeaderboardRow]
    winner_id: Optional[str] = None
    total_votes: int = 0
