"""
Pydantic schemas for request/response validation.
"""
from app.schemas.auth import UserCreate, UserLogin, UserResponse, TokenResponse
from app.schemas.pumpkin import (
    PumpkinCreate, PumpkinStatusUpdate, PumpkinResponse, PumpkinListResponse,
    LeaderboardRow, LeaderboardResponse
)
from app.schemas.vote import (
    VoteCreate, VoteOutcomeResponse, MyVoteResponse, VoteCountsResponse,
    ResetSummaryResponse, RecountSummaryResponse
)
from app.schemas.common import HealthResponse
