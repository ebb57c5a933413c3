"""
RosterState — who is on Team A, Team B, and the bench.

An immutable value. Every operation returns a new RosterState; callers swap
the whole triple at once so a half-applied move can never be observed.
"""

from typing import Dict, Iterable, List, Tuple, FrozenSet

from pydantic import BaseModel, model_validator

from models.games import Team
from live_session.errors import InvariantViolation


def _unique(names: Iterable[str]) -> Tuple[str, ...]:
    seen = []
    for name in names:
        if name not in seen:
            seen.append(name)
    return tuple(seen)


class RosterState(BaseModel):
    """Partition of every session player into team_a, team_b and bench."""

    team_a: Tuple[str, ...] = ()
    team_b: Tuple[str, ...] = ()
    bench: Tuple[str, ...] = ()

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def groups_are_disjoint(self):
        everyone = self.team_a + self.team_b + self.bench
        if len(everyone) != len(set(everyone)):
            dupes = sorted({n for n in everyone if everyone.count(n) > 1})
            raise InvariantViolation(f"Players assigned to more than one spot: {', '.join(dupes)}")
        return self

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def initialize(cls, players: Iterable[str]) -> "RosterState":
        """Everyone starts on the bench."""
        return cls(bench=_unique(players))

    def set_teams(
        self,
        team_a: Iterable[str],
        team_b: Iterable[str],
        bench: Iterable[str],
    ) -> "RosterState":
        """Replace all three groups. They must partition exactly the known players."""
        team_a, team_b, bench = tuple(team_a), tuple(team_b), tuple(bench)
        candidate = RosterState(team_a=team_a, team_b=team_b, bench=bench)
        missing = self.players - candidate.players
        extra = candidate.players - self.players
        if missing or extra:
            raise InvariantViolation(
                f"Roster must cover exactly the session players "
                f"(missing: {sorted(missing)}, unknown: {sorted(extra)})"
            )
        return candidate

    def from_teams(self, team_a: Iterable[str], team_b: Iterable[str]) -> "RosterState":
        """Pick both teams from the full pool; everyone else sits."""
        team_a, team_b = _unique(team_a), _unique(team_b)
        picked = set(team_a) | set(team_b)
        bench = tuple(n for n in self.ordered_players if n not in picked)
        return self.set_teams(team_a, team_b, bench)

    def with_bench_player(self, name: str) -> "RosterState":
        if name in self.players:
            raise InvariantViolation(f"{name} is already in the roster")
        return RosterState(team_a=self.team_a, team_b=self.team_b, bench=self.bench + (name,))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def players(self) -> FrozenSet[str]:
        return frozenset(self.ordered_players)

    @property
    def ordered_players(self) -> Tuple[str, ...]:
        return self.team_a + self.team_b + self.bench

    @property
    def is_ready(self) -> bool:
        """Both teams set and of equal size, so a game can be played."""
        return len(self.team_a) > 0 and len(self.team_a) == len(self.team_b)

    def team(self, side: Team) -> Tuple[str, ...]:
        return self.team_a if Team(side) is Team.A else self.team_b

    def to_lists(self) -> Dict[str, List[str]]:
        return {
            "team_a": list(self.team_a),
            "team_b": list(self.team_b),
            "bench": list(self.bench),
        }
