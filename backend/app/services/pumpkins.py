"""
Pumpkin submission and moderation.

Status moves pending -> approved or pending -> rejected, once. Approved and
rejected are final; a rejected carver resubmits as a new pumpkin. Deletion
is allowed from any status and takes the pumpkin's votes with it.
"""
import logging
from typing import Optional

from sqlalchemy import select, delete, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.deps import Principal
from app.core.errors import NotFound, InvalidTransition, Conflict
from app.core.permissions import require_principal, require_admin, can_view_unapproved
from app.db.transaction import run_transaction
from app.models.base import utcnow
from app.models.pumpkin import Pumpkin, PumpkinStatus
from app.models.user import User
from app.models.vote import Vote
from app.schemas.pumpkin import PumpkinCreate
from app.services.live import ChangeBus, ChangeEvent, change_bus

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[PumpkinStatus, set[PumpkinStatus]] = {
    PumpkinStatus.PENDING: {PumpkinStatus.APPROVED, PumpkinStatus.REJECTED},
    PumpkinStatus.APPROVED: set(),
    PumpkinStatus.REJECTED: set(),
}


async def submit_pumpkin(
    session_maker: async_sessionmaker,
    principal: Optional[Principal],
    data: PumpkinCreate,
    bus: Optional[ChangeBus] = None,
) -> Pumpkin:
    """Create a pending pumpkin owned by the principal."""
    principal = require_principal(principal, "submit a pumpkin")

    async def create(session: AsyncSession) -> Pumpkin:
        pumpkin = Pumpkin(
            title=data.title,
            description=data.description,
            carver_name=data.carver_name,
            image=data.image,
            status=PumpkinStatus.PENDING,
            submitted_by_id=principal.id,
            submitted_at=utcnow(),
            vote_count=0,
        )
        session.add(pumpkin)
        await session.flush()
        return pumpkin

    pumpkin = await run_transaction(session_maker, create, label="submit_pumpkin")
    logger.info(f"Pumpkin {pumpkin.id} submitted by {principal.id}")
    (bus or change_bus).publish(ChangeEvent("submitted", (pumpkin.id,)))
    return pumpkin


async def get_pumpkin(
    session_maker: async_sessionmaker,
    pumpkin_id: str,
    principal: Optional[Principal] = None,
) -> Pumpkin:
    """
    Fetch one pumpkin.

    Pending and rejected pumpkins are only visible to admins and their
    submitter; everyone else gets NotFound.
    """
    async with session_maker() as session:
        result = await session.execute(select(Pumpkin).where(Pumpkin.id == pumpkin_id))
        pumpkin = result.scalar_one_or_none()

    if pumpkin is None:
        raise NotFound()
    if pumpkin.status != PumpkinStatus.APPROVED and not can_view_unapproved(principal, pumpkin.submitted_by_id):
        raise NotFound()
    return pumpkin


async def list_by_status(
    session_maker: async_sessionmaker,
    principal: Optional[Principal],
    status: Optional[PumpkinStatus] = PumpkinStatus.APPROVED,
) -> list[Pumpkin]:
    """
    List pumpkins with the given status, newest submission first.

    Approved pumpkins are public. Any other status, or ``None`` for every
    pumpkin, is admin only.
    """
    if status != PumpkinStatus.APPROVED:
        require_admin(principal, "review submissions")

    query = select(Pumpkin).order_by(Pumpkin.submitted_at.desc(), Pumpkin.id)
    if status is not None:
        query = query.where(Pumpkin.status == status)

    async with session_maker() as session:
        result = await session.execute(query)
        return list(result.scalars().all())


async def set_status(
    session_maker: async_sessionmaker,
    principal: Optional[Principal],
    pumpkin_id: str,
    status: PumpkinStatus,
    bus: Optional[ChangeBus] = None,
) -> Pumpkin:
    """
    Move a pumpkin through moderation.

    Setting the status it already has is a no-op, so approving twice keeps
    the first approved_at/approved_by.

    Raises:
        NotAuthorized: principal is not an admin
        NotFound: no such pumpkin
        InvalidTransition: the move is not pending -> approved/rejected
    """
    principal = require_admin(principal, "moderate pumpkins")

    async def transition(session: AsyncSession) -> tuple[Pumpkin, bool]:
        result = await session.execute(
            select(Pumpkin).where(Pumpkin.id == pumpkin_id).with_for_update()
        )
        pumpkin = result.scalar_one_or_none()
        if pumpkin is None:
            raise NotFound()

        if pumpkin.status == status:
            return pumpkin, False

        if status not in ALLOWED_TRANSITIONS[pumpkin.status]:
            raise InvalidTransition(
                f"Cannot move a {pumpkin.status.value} pumpkin to {status.value}"
            )

        # Compare-and-swap on the status we read, for stores without row locks
        values: dict = {"status": status}
        if status == PumpkinStatus.APPROVED:
            values["approved_at"] = utcnow()
            values["approved_by_id"] = principal.id
        swapped = await session.execute(
            update(Pumpkin)
            .where(Pumpkin.id == pumpkin_id, Pumpkin.status == pumpkin.status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if swapped.rowcount != 1:
            raise Conflict()

        await session.refresh(pumpkin)
        return pumpkin, True

    pumpkin, changed = await run_transaction(
        session_maker, transition, label=f"set_status {pumpkin_id}"
    )
    if changed:
        logger.info(f"Pumpkin {pumpkin_id} {status.value} by {principal.id}")
        (bus or change_bus).publish(ChangeEvent("status", (pumpkin_id,)))
    return pumpkin


async def approve(
    session_maker: async_sessionmaker,
    principal: Optional[Principal],
    pumpkin_id: str,
    bus: Optional[ChangeBus] = None,
) -> Pumpkin:
    return await set_status(session_maker, principal, pumpkin_id, PumpkinStatus.APPROVED, bus)


async def reject(
    session_maker: async_sessionmaker,
    principal: Optional[Principal],
    pumpkin_id: str,
    bus: Optional[ChangeBus] = None,
) -> Pumpkin:
    return await set_status(session_maker, principal, pumpkin_id, PumpkinStatus.REJECTED, bus)


async def delete_pumpkin(
    session_maker: async_sessionmaker,
    principal: Optional[Principal],
    pumpkin_id: str,
    bus: Optional[ChangeBus] = None,
) -> int:
    """
    Delete a pumpkin, its votes, and every voted_for pointer at it.

    The pumpkin's tally disappears with it, so no decrement is needed. The
    affected voters are left with no active vote.

    Returns:
        Number of votes removed
    """
    principal = require_admin(principal, "delete pumpkins")

    async def remove(session: AsyncSession) -> int:
        result = await session.execute(select(Pumpkin.id).where(Pumpkin.id == pumpkin_id))
        if result.scalar_one_or_none() is None:
            raise NotFound()

        votes = await session.execute(
            delete(Vote)
            .where(Vote.pumpkin_id == pumpkin_id)
            .execution_options(synchronize_session=False)
        )
        await session.execute(
            update(User)
            .where(User.voted_for_id == pumpkin_id)
            .values(voted_for_id=None)
            .execution_options(synchronize_session=False)
        )
        await session.execute(
            delete(Pumpkin)
            .where(Pumpkin.id == pumpkin_id)
            .execution_options(synchronize_session=False)
        )
        return votes.rowcount

    votes_removed = await run_transaction(session_maker, remove, label=f"delete_pumpkin {pumpkin_id}")
    logger.info(f"Pumpkin {pumpkin_id} deleted by {principal.id} ({votes_removed} votes removed)")
    (bus or change_bus).publish(ChangeEvent("deleted", (pumpkin_id,)))
    return votes_removed
