"""
Vote transfer protocol.

Each user holds at most one row in ``votes``. Casting a vote moves that row
to the new pumpkin, decrements the old pumpkin's tally and increments the new
one, all in one transaction. The votes table is the source of truth;
``pumpkins.vote_count`` and ``users.voted_for_id`` are caches kept in step
by this module and rebuilt by ``recount_votes``.

Tallies only ever change through in-database ``vote_count = vote_count +/- 1``
updates, so concurrent voters on the same pumpkin cannot lose each other's
increments. Races on a single user's ballot are caught by the unique index
on ``votes.user_id`` or by the compare-and-swap on the ballot row, and the
whole transfer is retried by run_transaction.
"""
import logging
from collections import Counter
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from sqlalchemy import select, delete, update, func, case
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.deps import Principal
from app.core.errors import NotFound, Conflict
from app.core.permissions import require_principal, require_admin
from app.db.transaction import run_transaction
from app.models.base import utcnow
from app.models.pumpkin import Pumpkin, PumpkinStatus
from app.models.user import User
from app.models.vote import Vote
from app.services.live import ChangeBus, ChangeEvent, change_bus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VoteOutcome:
    """Result of cast_vote. ``changed`` is False for a repeat vote."""
    pumpkin_id: str
    previous_pumpkin_id: Optional[str]
    changed: bool


@dataclass(frozen=True)
class ResetSummary:
    votes_deleted: int
    pumpkins_reset: int
    users_cleared: int


@dataclass(frozen=True)
class RecountSummary:
    pumpkins_corrected: int
    users_corrected: int


async def cast_vote(
    session_maker: async_sessionmaker,
    principal: Optional[Principal],
    pumpkin_id: str,
    bus: Optional[ChangeBus] = None,
) -> VoteOutcome:
    """
    Make ``pumpkin_id`` the principal's one vote.

    Voting again for the pumpkin already voted for changes nothing and
    reports ``previous_pumpkin_id == pumpkin_id``. Voting for your own
    pumpkin is allowed.

    Raises:
        NotAuthenticated: no principal
        NotFound: the pumpkin does not exist or is not approved
        TransientFailure: lost the race on every attempt
    """
    principal = require_principal(principal, "vote")

    async def transfer(session: AsyncSession) -> VoteOutcome:
        result = await session.execute(
            select(Vote).where(Vote.user_id == principal.id).with_for_update()
        )
        previous = result.scalar_one_or_none()

        if previous is not None and previous.pumpkin_id == pumpkin_id:
            return VoteOutcome(pumpkin_id, pumpkin_id, changed=False)

        now = utcnow()
        counted = await session.execute(
            update(Pumpkin)
            .where(Pumpkin.id == pumpkin_id, Pumpkin.status == PumpkinStatus.APPROVED)
            .values(vote_count=Pumpkin.vote_count + 1)
            .execution_options(synchronize_session=False)
        )
        if counted.rowcount != 1:
            raise NotFound("Pumpkin not found or not open for voting")

        previous_id = None
        if previous is None:
            session.add(Vote(user_id=principal.id, pumpkin_id=pumpkin_id, voted_at=now))
            # Unique index on user_id rejects a concurrent first vote here
            await session.flush()
        else:
            previous_id = previous.pumpkin_id
            moved = await session.execute(
                update(Vote)
                .where(Vote.id == previous.id, Vote.pumpkin_id == previous_id)
                .values(pumpkin_id=pumpkin_id, voted_at=now)
                .execution_options(synchronize_session=False)
            )
            if moved.rowcount != 1:
                # The ballot changed after we read it
                raise Conflict()

            released = await session.execute(
                update(Pumpkin)
                .where(Pumpkin.id == previous_id, Pumpkin.vote_count > 0)
                .values(vote_count=Pumpkin.vote_count - 1)
                .execution_options(synchronize_session=False)
            )
            if released.rowcount != 1:
                logger.warning(
                    f"Tally of pumpkin {previous_id} was already zero while moving a vote off it; "
                    "run a recount"
                )

        await session.execute(
            update(User)
            .where(User.id == principal.id)
            .values(voted_for_id=pumpkin_id)
            .execution_options(synchronize_session=False)
        )
        return VoteOutcome(pumpkin_id, previous_id, changed=True)

    outcome = await run_transaction(
        session_maker, transfer, label=f"cast_vote user={principal.id}"
    )

    if outcome.changed:
        if outcome.previous_pumpkin_id:
            logger.info(
                f"User {principal.id} moved vote {outcome.previous_pumpkin_id} -> {pumpkin_id}"
            )
            touched = (outcome.previous_pumpkin_id, pumpkin_id)
        else:
            logger.info(f"User {principal.id} voted for {pumpkin_id}")
            touched = (pumpkin_id,)
        (bus or change_bus).publish(ChangeEvent("vote", touched))
    return outcome


async def get_my_vote(
    session_maker: async_sessionmaker,
    principal: Optional[Principal],
) -> Optional[str]:
    """The pumpkin the principal currently votes for, read from the ledger."""
    if principal is None:
        return None
    async with session_maker() as session:
        result = await session.execute(
            select(Vote.pumpkin_id).where(Vote.user_id == principal.id)
        )
        return result.scalar_one_or_none()


async def get_vote_count(session_maker: async_sessionmaker, pumpkin_id: str) -> int:
    async with session_maker() as session:
        result = await session.execute(
            select(Pumpkin.vote_count).where(Pumpkin.id == pumpkin_id)
        )
        count = result.scalar_one_or_none()
    if count is None:
        raise NotFound()
    return count


async def get_vote_counts(session_maker: async_sessionmaker) -> dict[str, int]:
    """Tallies of every approved pumpkin."""
    async with session_maker() as session:
        result = await session.execute(
            select(Pumpkin.id, Pumpkin.vote_count).where(Pumpkin.status == PumpkinStatus.APPROVED)
        )
        return {pumpkin_id: count or 0 for pumpkin_id, count in result.all()}


async def _drain(
    session_maker: async_sessionmaker,
    batch: Callable[[AsyncSession, int], Awaitable[int]],
    batch_size: int,
    label: str,
) -> int:
    """Run ``batch`` in its own transaction until it touches fewer than batch_size rows."""
    total = 0
    while True:
        touched = await run_transaction(
            session_maker, lambda session: batch(session, batch_size), label=label
        )
        total += touched
        if touched < batch_size:
            return total


async def _delete_vote_batch(session: AsyncSession, size: int) -> int:
    # Each batch removes votes together with their tally and pointer, so every commit is consistent
    result = await session.execute(
        select(Vote.id, Vote.user_id, Vote.pumpkin_id).order_by(Vote.id).limit(size)
    )
    rows = result.all()
    if not rows:
        return 0

    await session.execute(
        delete(Vote)
        .where(Vote.id.in_([row.id for row in rows]))
        .execution_options(synchronize_session=False)
    )
    for pumpkin_id, removed in Counter(row.pumpkin_id for row in rows).items():
        await session.execute(
            update(Pumpkin)
            .where(Pumpkin.id == pumpkin_id)
            .values(vote_count=case((Pumpkin.vote_count > removed, Pumpkin.vote_count - removed), else_=0))
            .execution_options(synchronize_session=False)
        )
    await session.execute(
        update(User)
        .where(User.id.in_([row.user_id for row in rows]))
        .values(voted_for_id=None)
        .execution_options(synchronize_session=False)
    )
    return len(rows)


def _ballot_count():
    """Correlated count of the votes held by the enclosing pumpkin row."""
    return select(func.count(Vote.id)).where(Vote.pumpkin_id == Pumpkin.id).scalar_subquery()


def _ballot_target():
    """Correlated pumpkin id of the enclosing user's vote, NULL if they have none."""
    return select(Vote.pumpkin_id).where(Vote.user_id == User.id).scalar_subquery()


async def _reconcile_tallies(session: AsyncSession, size: Optional[int] = None) -> int:
    # New value is computed inside the UPDATE so a vote committed since the SELECT is counted
    query = select(Pumpkin.id).where(Pumpkin.vote_count != _ballot_count()).order_by(Pumpkin.id)
    if size is not None:
        query = query.limit(size)
    ids = list((await session.execute(query)).scalars().all())
    if ids:
        await session.execute(
            update(Pumpkin)
            .where(Pumpkin.id.in_(ids))
            .values(vote_count=_ballot_count())
            .execution_options(synchronize_session=False)
        )
    return len(ids)


async def _reconcile_pointers(session: AsyncSession, size: Optional[int] = None) -> int:
    query = (
        select(User.id)
        .where(User.voted_for_id.is_distinct_from(_ballot_target()))
        .order_by(User.id)
    )
    if size is not None:
        query = query.limit(size)
    ids = list((await session.execute(query)).scalars().all())
    if ids:
        await session.execute(
            update(User)
            .where(User.id.in_(ids))
            .values(voted_for_id=_ballot_target())
            .execution_options(synchronize_session=False)
        )
    return len(ids)


async def reset_all_votes(
    session_maker: async_sessionmaker,
    principal: Optional[Principal],
    batch_size: Optional[int] = None,
    bus: Optional[ChangeBus] = None,
) -> ResetSummary:
    """
    Delete every vote, then bring every tally and voted_for pointer back in
    line with whatever remains in the votes table.

    Works in batches of RESET_BATCH_SIZE, each its own transaction. Votes
    are removed together with the tally and pointer they account for. The
    follow-up passes recompute cached values from the votes table rather
    than blanking them, so a vote cast while the reset runs keeps its tally
    and pointer. A crash part way through leaves a partial reset; running
    it again finishes the job.
    """
    principal = require_admin(principal, "reset votes")
    size = batch_size or settings.RESET_BATCH_SIZE

    logger.info(f"Vote reset started by {principal.id}")
    votes_deleted = await _drain(session_maker, _delete_vote_batch, size, "reset: votes")
    pumpkins_reset = await _drain(session_maker, _reconcile_tallies, size, "reset: tallies")
    users_cleared = await _drain(session_maker, _reconcile_pointers, size, "reset: pointers")
    logger.info(
        f"Vote reset finished: {votes_deleted} votes deleted, "
        f"{pumpkins_reset} drifted tallies and {users_cleared} drifted pointers reconciled"
    )

    (bus or change_bus).publish(ChangeEvent("reset"))
    return ResetSummary(votes_deleted, pumpkins_reset, users_cleared)


async def recount_votes(
    session_maker: async_sessionmaker,
    principal: Optional[Principal],
    bus: Optional[ChangeBus] = None,
) -> RecountSummary:
    """Rebuild every vote_count and voted_for_id from the votes table."""
    principal = require_admin(principal, "recount votes")

    async def rebuild(session: AsyncSession) -> RecountSummary:
        pumpkins_corrected = await _reconcile_tallies(session)
        users_corrected = await _reconcile_pointers(session)
        return RecountSummary(pumpkins_corrected, users_corrected)

    summary = await run_transaction(session_maker, rebuild, label="recount_votes")
    logger.info(
        f"Recount by {principal.id}: {summary.pumpkins_corrected} tallies and "
        f"{summary.users_corrected} pointers corrected"
    )
    if summary.pumpkins_corrected or summary.users_corrected:
        (bus or change_bus).publish(ChangeEvent("recount"))
    return summary
