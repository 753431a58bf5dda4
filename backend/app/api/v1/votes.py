"""
Voting endpoints.
"""
from typing import Optional
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.deps import Principal, get_current_principal, get_current_principal_optional
from app.db.base import get_session_maker
from app.schemas.vote import VoteCreate, VoteOutcomeResponse, MyVoteResponse, VoteCountsResponse
from app.services import voting

router = APIRouter()


@router.post("", response_model=VoteOutcomeResponse)
async def cast_vote(
    vote_data: VoteCreate,
    session_maker: async_sessionmaker = Depends(get_session_maker),
    principal: Principal = Depends(get_current_principal)
):
    """
    Cast or change your vote.
    Each user has one vote; voting again moves it.
    """
    outcome = await voting.cast_vote(session_maker, principal, vote_data.pumpkin_id)

    if not outcome.changed:
        message = "You already voted for this pumpkin"
    elif outcome.previous_pumpkin_id:
        message = "Vote changed"
    else:
        message = "Vote recorded"

    return VoteOutcomeResponse(
        pumpkin_id=outcome.pumpkin_id,
        previous_pumpkin_id=outcome.previous_pumpkin_id,
        changed=outcome.changed,
        message=message,
    )


@router.get("/me", response_model=MyVoteResponse)
async def get_my_vote(
    session_maker: async_sessionmaker = Depends(get_session_maker),
    principal: Optional[Principal] = Depends(get_current_principal_optional)
):
    """The pumpkin you currently vote for, or null."""
    return MyVoteResponse(voted_for=await voting.get_my_vote(session_maker, principal))


@router.get("/counts", response_model=VoteCountsResponse)
async def get_vote_counts(
    session_maker: async_sessionmaker = Depends(get_session_maker)
):
    """Vote tallies of every approved pumpkin."""
    return VoteCountsResponse(counts=await voting.get_vote_counts(session_maker))
