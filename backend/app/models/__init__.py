"""
SQLAlchemy models for the pumpkin carving contest.

- User: accounts, admin flag, cached current vote
- Pumpkin: contest entries and their moderation status and tally
- Vote: at most one active ballot per user
"""
from app.models.user import User
from app.models.pumpkin import Pumpkin, PumpkinStatus
from app.models.vote import Vote

__all__ = [
    "User",
    "Pumpkin",
    "PumpkinStatus",
    "Vote",
]
