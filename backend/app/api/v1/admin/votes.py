"""
Vote maintenance API - admin only.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.deps import Principal, get_current_principal
from app.db.base import get_session_maker
from app.schemas.vote import ResetSummaryResponse, RecountSummaryResponse
from app.services import voting

router = APIRouter()


@router.post("/reset", response_model=ResetSummaryResponse)
async def reset_votes(
    session_maker: async_sessionmaker = Depends(get_session_maker),
    principal: Principal = Depends(get_current_principal)
):
    """
    Delete every vote and zero every tally.

    Runs in batches. If it fails part way, call it again to finish.
    """
    summary = await voting.reset_all_votes(session_maker, principal)
    return ResetSummaryResponse(
        votes_deleted=summary.votes_deleted,
        pumpkins_reset=summary.pumpkins_reset,
        users_cleared=summary.users_cleared,
        message="All votes have been reset",
    )


@router.post("/recount", response_model=RecountSummaryResponse)
async def recount_votes(
    session_maker: async_sessionmaker = Depends(get_session_maker),
    principal: Principal = Depends(get_current_principal)
):
    """Rebuild vote tallies and users' current votes from the vote records."""
    summary = await voting.recount_votes(session_maker, principal)
    return RecountSummaryResponse(
        pumpkins_corrected=summary.pumpkins_corrected,
        users_corrected=summary.users_corrected,
        message="Vote tallies rebuilt",
    )
