"""
Pumpkin gallery endpoints.

- GET  /api/v1/pumpkins            - list by status (approved is public)
- POST /api/v1/pumpkins            - submit a pumpkin for moderation
- GET  /api/v1/pumpkins/live       - Server-Sent Events stream of the approved gallery
- GET  /api/v1/pumpkins/{id}       - one pumpkin
- GET  /api/v1/leaderboard         - approved pumpkins ranked by votes
"""
import asyncio
import json
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.config import settings
from app.core.deps import Principal, get_current_principal, get_current_principal_optional
from app.db.base import get_session_maker
from app.models.pumpkin import PumpkinStatus
from app.schemas.pumpkin import (
    PumpkinCreate, PumpkinResponse, PumpkinListResponse, LeaderboardResponse,
    pumpkin_to_response
)
from app.services import pumpkins as pumpkin_service
from app.services.leaderboard import build_leaderboard
from app.services.live import get_feed

router = APIRouter()
leaderboard_router = APIRouter()


def parse_status(value: str) -> Optional[PumpkinStatus]:
    """Map the ``status`` query parameter to a PumpkinStatus; "all" means no filter."""
    if value == "all":
        return None
    try:
        return PumpkinStatus(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown status '{value}'"
        )


@router.get("", response_model=PumpkinListResponse)
async def list_pumpkins(
    status_filter: str = Query("approved", alias="status", description="approved, pending, rejected or all"),
    session_maker: async_sessionmaker = Depends(get_session_maker),
    principal: Optional[Principal] = Depends(get_current_principal_optional)
):
    """
    List pumpkins, newest first.
    Anyone may list approved pumpkins; other statuses require admin.
    """
    pumpkins = await pumpkin_service.list_by_status(
        session_maker, principal, parse_status(status_filter)
    )
    items = [pumpkin_to_response(p) for p in pumpkins]
    return PumpkinListResponse(items=items, total=len(items))


@router.post("", response_model=PumpkinResponse, status_code=status.HTTP_201_CREATED)
async def submit_pumpkin(
    pumpkin_data: PumpkinCreate,
    session_maker: async_sessionmaker = Depends(get_session_maker),
    principal: Principal = Depends(get_current_principal)
):
    """Submit a pumpkin. It stays pending until an admin approves it."""
    pumpkin = await pumpkin_service.submit_pumpkin(session_maker, principal, pumpkin_data)
    return pumpkin_to_response(pumpkin)


@router.get("/live")
async def live_pumpkins(
    request: Request,
    session_maker: async_sessionmaker = Depends(get_session_maker)
):
    """
    Stream the approved gallery as Server-Sent Events.

    Each ``pumpkins`` event carries the full gallery and its leaderboard.
    """
    feed = get_feed(session_maker, PumpkinStatus.APPROVED)

    async def events():
        queue: asyncio.Queue = asyncio.Queue()
        unsubscribe = await feed.subscribe(queue.put)
        try:
            while True:
                try:
                    snapshot = await asyncio.wait_for(
                        queue.get(), timeout=settings.LIVE_FEED_KEEPALIVE_SECONDS
                    )
                except asyncio.TimeoutError:
                    if await request.is_disconnected():
                        break
                    yield ": keep-alive\n\n"
                    continue

                payload = json.dumps({
                    "items": [p.model_dump(mode="json") for p in snapshot],
                    "leaderboard": build_leaderboard(snapshot).model_dump(mode="json"),
                })
                yield f"event: pumpkins\ndata: {payload}\n\n"
        finally:
            unsubscribe()

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("/{pumpkin_id}", response_model=PumpkinResponse)
async def get_pumpkin(
    pumpkin_id: str,
    session_maker: async_sessionmaker = Depends(get_session_maker),
    principal: Optional[Principal] = Depends(get_current_principal_optional)
):
    """
    Get pumpkin by ID.
    Pending and rejected pumpkins are visible to admins and their submitter only.
    """
    pumpkin = await pumpkin_service.get_pumpkin(session_maker, pumpkin_id, principal)
    return pumpkin_to_response(pumpkin)


@leaderboard_router.get("", response_model=LeaderboardResponse)
async def get_leaderboard(
    session_maker: async_sessionmaker = Depends(get_session_maker)
):
    """Approved pumpkins ranked by votes."""
    pumpkins = await pumpkin_service.list_by_status(session_maker, None, PumpkinStatus.APPROVED)
    return build_leaderboard(pumpkin_to_response(p) for p in pumpkins)
