"""
Pydantic v2 data models — the contract for every durable live-session row.

Every write to the record store passes through these models first.
If validation fails, nothing is written.
"""

from models.session import SessionStatus, LiveSession, FinalizedPlayer, FinalizedSession
from models.players import SessionPlayer
from models.games import Team, GameRecord

__all__ = [
    "SessionStatus",
    "LiveSession",
    "FinalizedPlayer",
    "FinalizedSession",
    "SessionPlayer",
    "Team",
    "GameRecord",
]
