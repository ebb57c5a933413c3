"""
Game record schema — one completed game inside a live session.

Rows are immutable once written. The only sanctioned removal is an
undo of the most recent game.
"""

from enum import Enum
from typing import List
from datetime import datetime, timezone

from pydantic import BaseModel, Field, model_validator


class Team(str, Enum):
    """The two on-court sides."""

    A = "team_a"
    B = "team_b"

    @property
    def other(self) -> "Team":
        return Team.B if self is Team.A else Team.A

    @property
    def label(self) -> str:
        return "Team A" if self is Team.A else "Team B"


class GameRecord(BaseModel):
    """Schema for a games row."""

    live_session_id: str
    game_number: int = Field(ge=1)
    team_a_players: List[str]
    team_b_players: List[str]
    sitting_out_players: List[str] = []
    winning_team: Team
    recorded_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"extra": "ignore", "frozen": True}

    @model_validator(mode="after")
    def groups_are_disjoint(self):
        a, b, bench = set(self.team_a_players), set(self.team_b_players), set(self.sitting_out_players)
        if not a or not b:
            raise ValueError(f"Game {self.game_number} has an empty team")
        if a & b or a & bench or b & bench:
            raise ValueError(f"Game {self.game_number} lists a player in more than one group")
        return self

    def players_on(self, team: Team) -> List[str]:
        return self.team_a_players if Team(team) is Team.A else self.team_b_players

    @property
    def winners(self) -> List[str]:
        return self.players_on(self.winning_team)

    @property
    def losers(self) -> List[str]:
        return self.players_on(Team(self.winning_team).other)

    @property
    def participants(self) -> List[str]:
        return self.team_a_players + self.team_b_players
