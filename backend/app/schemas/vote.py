"""
Vote schemas.
"""
from typing import Optional
from pydantic import BaseModel


class VoteCreate(BaseModel):
    """Cast vote request."""
    pumpkin_id: str


class VoteOutcomeResponse(BaseModel):
    """Result of casting a vote."""
    pumpkin_id: str
    previous_pumpkin_id: Optional[str] = None
    changed: bool
    message: str


class MyVoteResponse(BaseModel):
    voted_for: Optional[str] = None


class VoteCountsResponse(BaseModel):
    """Tallies of approved pumpkins keyed by pumpkin id."""
    counts: dict[str, int]


class ResetSummaryResponse(BaseModel):
    votes_deleted: int
    pumpkins_reset: int
    users_cleared: int
    message: str


class RecountSummaryResponse(BaseModel):
    pumpkins_corrected: int
    users_corrected: int
    message: str
