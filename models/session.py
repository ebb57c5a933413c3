"""
Live session schemas — the session row and the finalized aggregate.

A live session moves active -> completed or active -> abandoned. Both are
terminal. Only a completed session produces a FinalizedSession, which is the
per-player summary the rest of the stats app reads.
"""

from enum import Enum
from typing import List, Optional
from datetime import date as date_type, datetime
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator


class SessionStatus(str, Enum):
    """Lifecycle states of a live session row."""

    ACTIVE = "active"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class LiveSession(BaseModel):
    """Schema for a live_sessions row."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    date: str
    location: Optional[str] = None
    status: SessionStatus = SessionStatus.ACTIVE
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None

    @field_validator("date")
    @classmethod
    def validate_date(cls, v):
        v = v.strip()
        # Sessions are keyed by calendar day: YYYY-MM-DD
        date_type.fromisoformat(v)
        return v

    @field_validator("location")
    @classmethod
    def blank_location_is_none(cls, v):
        if v is not None and not v.strip():
            return None
        return v.strip() if v else v

    @field_validator("status", mode="before")
    @classmethod
    def validate_status(cls, v):
        if isinstance(v, str):
            return v.lower()
        return v

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE

    model_config = {"extra": "ignore", "use_enum_values": True}


class FinalizedPlayer(BaseModel):
    """One player line of a finalized session."""

    name: str
    games_played: int = Field(alias="gamesPlayed", default=0, ge=0)
    games_won: int = Field(alias="gamesWon", default=0, ge=0)
    notes: str = ""

    model_config = {"populate_by_name": True}


class FinalizedSession(BaseModel):
    """Schema for a sessions row: the aggregate of one completed live session.

    The downstream stats views consume this shape (camelCase player keys),
    so writes always dump by alias.
    """

    live_session_id: str
    date: str
    location: Optional[str] = None
    players: List[FinalizedPlayer] = Field(min_length=1)

    @field_validator("date")
    @classmethod
    def date_required(cls, v):
        if not v or not v.strip():
            raise ValueError("Session date is required for saving")
        return v

    model_config = {"populate_by_name": True}
