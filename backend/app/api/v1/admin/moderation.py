"""
Pumpkin moderation API - admin only.

Pending pumpkins are approved (shown in the gallery and open for votes) or
rejected. Deleting a pumpkin also deletes its votes.
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.deps import Principal, get_current_principal
from app.db.base import get_session_maker
from app.models.pumpkin import PumpkinStatus
from app.schemas.pumpkin import PumpkinResponse, PumpkinStatusUpdate, pumpkin_to_response
from app.services import pumpkins as pumpkin_service

router = APIRouter()


@router.post("/{pumpkin_id}/approve", response_model=PumpkinResponse)
async def approve_pumpkin(
    pumpkin_id: str,
    session_maker: async_sessionmaker = Depends(get_session_maker),
    principal: Principal = Depends(get_current_principal)
):
    """Approve a pending pumpkin. Approving twice is harmless."""
    pumpkin = await pumpkin_service.approve(session_maker, principal, pumpkin_id)
    return pumpkin_to_response(pumpkin)


@router.post("/{pumpkin_id}/reject", response_model=PumpkinResponse)
async def reject_pumpkin(
    pumpkin_id: str,
    session_maker: async_sessionmaker = Depends(get_session_maker),
    principal: Principal = Depends(get_current_principal)
):
    """Reject a pending pumpkin. The carver has to submit a new one."""
    pumpkin = await pumpkin_service.reject(session_maker, principal, pumpkin_id)
    return pumpkin_to_response(pumpkin)


@router.patch("/{pumpkin_id}", response_model=PumpkinResponse)
async def update_pumpkin_status(
    pumpkin_id: str,
    update_data: PumpkinStatusUpdate,
    session_maker: async_sessionmaker = Depends(get_session_maker),
    principal: Principal = Depends(get_current_principal)
):
    """Set the moderation status directly."""
    pumpkin = await pumpkin_service.set_status(
        session_maker, principal, pumpkin_id, PumpkinStatus(update_data.status)
    )
    return pumpkin_to_response(pumpkin)


@router.delete("/{pumpkin_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_pumpkin(
    pumpkin_id: str,
    session_maker: async_sessionmaker = Depends(get_session_maker),
    principal: Principal = Depends(get_current_principal)
):
    """Permanently delete a pumpkin and its votes."""
    await pumpkin_service.delete_pumpkin(session_maker, principal, pumpkin_id)
    return None
