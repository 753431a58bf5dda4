"""
Leaderboard derived from the approved-pumpkin snapshot.
"""
from datetime import datetime, timezone
from typing import Iterable

from app.schemas.pumpkin import LeaderboardResponse, LeaderboardRow, PumpkinResponse


def _submitted_key(submitted_at: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if submitted_at.tzinfo is None:
        return submitted_at.replace(tzinfo=timezone.utc)
    return submitted_at


def build_leaderboard(pumpkins: Iterable[PumpkinResponse]) -> LeaderboardResponse:
    """
    Rank pumpkins by votes, most first; ties go to the earliest submission.

    The top pumpkin is only the winner once it has at least one vote.
    """
    ranked = sorted(
        pumpkins,
        key=lambda p: (-p.vote_count, _submitted_key(p.submitted_at), p.id),
    )
    rows = [LeaderboardRow(rank=i + 1, pumpkin=p) for i, p in enumerate(ranked)]

    winner_id = None
    if ranked and ranked[0].vote_count > 0:
        winner_id = ranked[0].id

    return LeaderboardResponse(
        rankings=rows,
        winner_id=winner_id,
        total_votes=sum(p.vote_count for p in ranked),
    )
