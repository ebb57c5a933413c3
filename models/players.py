"""
Player-in-session schema — one row per player per live session.

Totals here are a cache of what the game ledger says. They are rewritten
from the ledger after every game and healed from it on resume.
"""

from pydantic import BaseModel, Field, field_validator


class SessionPlayer(BaseModel):
    """Schema for a live_session_players row."""

    live_session_id: str
    player_name: str
    total_games_played: int = Field(default=0, ge=0)
    total_games_won: int = Field(default=0, ge=0)
    notes: str = ""

    @field_validator("player_name")
    @classmethod
    def strip_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("player_name cannot be blank")
        return v

    @field_validator("total_games_won")
    @classmethod
    def won_cannot_exceed_played(cls, v, info):
        played = info.data.get("total_games_played")
        if played is not None and v > played:
            raise ValueError(f"total_games_won ({v}) exceeds total_games_played ({played})")
        return v

    model_config = {"extra": "ignore"}
