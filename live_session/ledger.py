"""
GameLedger — append-only log of the games played in one live session.

The ledger is the single source of truth for per-player totals: games
played and games won are always recomputed from the records, never
tracked as separate counters that could drift. Durable player rows are
just a cache of totals() and get healed from it on resume.
"""

import logging
from typing import Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel

from models.games import GameRecord, Team
from live_session.errors import EmptyLedger, InvariantViolation

logger = logging.getLogger("GameLedger")


class PlayerTotals(BaseModel):
    """Derived per-player record for the session."""

    name: str
    games_played: int = 0
    games_won: int = 0

    model_config = {"frozen": True}

    @property
    def games_lost(self) -> int:
        return self.games_played - self.games_won

    @property
    def win_rate(self) -> float:
        """Fraction 0-1. Zero games played counts as 0."""
        if self.games_played == 0:
            return 0.0
        return self.games_won / self.games_played


class GameLedger:
    """Ordered, gapless game history for a single session.

    Usage:
        ledger = GameLedger(session_id, ["Ana", "Ben", "Cal", "Dee"])
        ledger.record_game(["Ana", "Ben"], ["Cal", "Dee"], [], Team.A)
        ledger.totals()["Ana"].games_won  # 1
    """

    def __init__(self, session_id: str, players: Iterable[str] = ()):
        self.session_id = session_id
        self._players: List[str] = []
        self._records: List[GameRecord] = []
        for name in players:
            if name not in self._players:
                self._players.append(name)

    @classmethod
    def from_records(
        cls,
        session_id: str,
        records: Iterable[GameRecord],
        players: Iterable[str] = (),
    ) -> "GameLedger":
        """Rebuild a ledger from durable history (full replay).

        Records must number 1..n with no gaps. Players that only show up in
        game rows are added so their totals are not lost.
        """
        ledger = cls(session_id, players)
        ordered = sorted(records, key=lambda r: r.game_number)
        for expected, record in enumerate(ordered, start=1):
            if record.game_number != expected:
                raise InvariantViolation(
                    f"Game history for {session_id} is not gapless: "
                    f"expected game {expected}, found {record.game_number}"
                )
            for name in record.participants + list(record.sitting_out_players):
                if name not in ledger._players:
                    logger.warning(f"Player {name} found in game {record.game_number} but not in roster rows")
                    ledger._players.append(name)
            ledger._records.append(record)
        return ledger

    def copy(self) -> "GameLedger":
        clone = GameLedger(self.session_id, self._players)
        clone._records = list(self._records)
        return clone

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._records)

    @property
    def records(self) -> Tuple[GameRecord, ...]:
        return tuple(self._records)

    @property
    def players(self) -> Tuple[str, ...]:
        return tuple(self._players)

    @property
    def next_game_number(self) -> int:
        return len(self._records) + 1

    @property
    def last_record(self) -> Optional[GameRecord]:
        return self._records[-1] if self._records else None

    def totals(self) -> Dict[str, PlayerTotals]:
        """Games played / won per player, derived from every record."""
        played = {name: 0 for name in self._players}
        won = {name: 0 for name in self._players}
        for record in self._records:
            for name in record.participants:
                played[name] += 1
            for name in record.winners:
                won[name] += 1
        return {
            name: PlayerTotals(name=name, games_played=played[name], games_won=won[name])
            for name in self._players
        }

    def win_streak(self, team: Team) -> int:
        """Consecutive most-recent games won by `team`."""
        team = Team(team)
        streak = 0
        for record in reversed(self._records):
            if Team(record.winning_team) is not team:
                break
            streak += 1
        return streak

    def standings(self) -> List[PlayerTotals]:
        """Totals sorted by win rate, then games won. Ties keep join order."""
        return sorted(
            self.totals().values(),
            key=lambda t: (-t.win_rate, -t.games_won),
        )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_player(self, name: str) -> None:
        if name in self._players:
            raise InvariantViolation(f"{name} is already in the ledger")
        self._players.append(name)

    def record_game(
        self,
        team_a: Iterable[str],
        team_b: Iterable[str],
        bench: Iterable[str],
        winner: Team,
    ) -> GameRecord:
        """Append the next game. Totals follow automatically."""
        record = GameRecord(
            live_session_id=self.session_id,
            game_number=self.next_game_number,
            team_a_players=list(team_a),
            team_b_players=list(team_b),
            sitting_out_players=list(bench),
            winning_team=Team(winner),
        )
        unknown = [n for n in record.participants + record.sitting_out_players if n not in self._players]
        if unknown:
            raise InvariantViolation(f"Game {record.game_number} names unknown players: {', '.join(unknown)}")
        self._records.append(record)
        logger.info(
            f"Game {record.game_number} recorded: {Team(record.winning_team).label} wins "
            f"({', '.join(record.winners)})"
        )
        return record

    def undo_last(self) -> GameRecord:
        """Drop the highest-numbered game and return it."""
        if not self._records:
            raise EmptyLedger("No games recorded yet, nothing to undo")
        before = self.totals()
        record = self._records[-1]
        for name in record.participants:
            # Floor check: a participant must have had at least this game counted.
            if before[name].games_played < 1:
                raise InvariantViolation(f"Undo would drive {name} below zero games played")
        self._records.pop()
        logger.info(f"Game {record.game_number} removed from ledger")
        return record
