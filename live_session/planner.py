"""
RotationPlanner — decides who plays next after a game ends.

Winners stay. The losing side keeps the players the operator picks and
fills the remaining spots from the bench. The planner walks the operator
through that choice one step at a time:

    AWAITING_STAYERS -> AWAITING_JOINERS -> CONFIRMED

An empty bench short-circuits straight to CONFIRMED with the roster
unchanged (both sides simply replay). If the bench alone can field a full
side, keeping nobody switches to "fully rotate" mode, where the whole new
losing side comes off the bench.

The planner never touches session state. The controller applies the
roster it confirms.
"""

import logging
from enum import Enum
from typing import Iterable, List, Optional, Set

from models.games import Team
from live_session.roster import RosterState
from live_session.errors import (
    InsufficientBench,
    InvariantViolation,
    PlannerStateError,
    TooFewStayers,
    TooManyStayers,
    UnknownPlayer,
    WrongJoinerCount,
)

logger = logging.getLogger("RotationPlanner")


class PlannerStage(Enum):
    """Where the operator is in the post-game flow."""
    AWAITING_STAYERS = "awaiting_stayers"
    AWAITING_JOINERS = "awaiting_joiners"
    CONFIRMED = "confirmed"
    DISCARDED = "discarded"


def _plural(n: int) -> str:
    return "player" if n == 1 else "players"


class RotationPlanner:
    """Post-game rotation flow for one completed game.

    Usage:
        planner = RotationPlanner(roster, winner=Team.A)
        planner.choose_stayers({"Dee", "Eve"})
        planner.choose_joiners({"Gus"})
        new_roster = planner.confirm()
    """

    def __init__(self, roster: RosterState, winner: Team):
        self.roster = roster
        self.winner = Team(winner)
        self.loser = self.winner.other
        self._stayers: List[str] = []
        self._joiners: List[str] = []
        self._full_rotation = False
        self._result: Optional[RosterState] = None

        if not roster.is_ready:
            raise PlannerStateError("Cannot rotate: both teams must be set and of equal size")

        if not roster.bench:
            # No bench, no rotation
            self.stage = PlannerStage.CONFIRMED
            self._result = roster
            logger.info("Bench is empty; keeping the same teams")
        else:
            self.stage = PlannerStage.AWAITING_STAYERS

    # ------------------------------------------------------------------
    # Read-only views for the UI
    # ------------------------------------------------------------------

    @property
    def winning_team(self) -> tuple:
        return self.roster.team(self.winner)

    @property
    def losing_team(self) -> tuple:
        return self.roster.team(self.loser)

    @property
    def bench(self) -> tuple:
        return self.roster.bench

    @property
    def target_size(self) -> int:
        """W: the new losing side must match the winners."""
        return len(self.winning_team)

    @property
    def full_rotation_allowed(self) -> bool:
        """True when the bench alone can field a full side (W - B <= 0)."""
        return self.target_size - len(self.bench) <= 0

    @property
    def min_stayers(self) -> int:
        """How many losers must stay so the bench can fill the rest."""
        return max(0, self.target_size - len(self.bench))

    @property
    def stayers(self) -> List[str]:
        return list(self._stayers)

    @property
    def joiners(self) -> List[str]:
        return list(self._joiners)

    @property
    def is_full_rotation(self) -> bool:
        return self._full_rotation

    @property
    def needed_from_bench(self) -> int:
        """Open spots on the new losing side after the stayers."""
        if self._full_rotation:
            return self.target_size
        return self.target_size - len(self._stayers)

    @property
    def remaining_picks(self) -> int:
        return self.needed_from_bench - len(self._joiners)

    @property
    def result(self) -> Optional[RosterState]:
        """The confirmed roster, once the planner reaches CONFIRMED."""
        return self._result

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _require(self, stage: PlannerStage) -> None:
        if self.stage is not stage:
            raise PlannerStateError(f"Expected {stage.value}, planner is {self.stage.value}")

    def choose_stayers(self, stayers: Iterable[str]) -> PlannerStage:
        """Pick which losing-team players keep their spot."""
        self._require(PlannerStage.AWAITING_STAYERS)
        chosen: List[str] = []
        for name in stayers:
            if name not in chosen:
                chosen.append(name)
        w = self.target_size
        b = len(self.bench)
        if len(chosen) > w:
            over = len(chosen) - w
            raise TooManyStayers(
                f"Too many players selected. Team needs {w} players; remove {over}",
                needed=over,
            )
        strangers = [n for n in chosen if n not in self.losing_team]
        if strangers:
            raise UnknownPlayer(f"Not on {self.loser.label}: {', '.join(strangers)}")

        if not chosen and w - b <= 0:
            self._stayers = []
            self._full_rotation = True
            self._joiners = []
            self.stage = PlannerStage.AWAITING_JOINERS
            logger.info(f"Full rotation: picking {w} from the bench")
            return self.stage

        if not chosen:
            raise TooFewStayers(
                f"Select at least {self.min_stayers} {_plural(self.min_stayers)} to stay on {self.loser.label}",
                needed=self.min_stayers,
            )
        need = w - len(chosen)
        if need > b:
            short = need - b
            raise InsufficientBench(
                f"Bench has only {b} {_plural(b)} for {need} open spots; keep {short} more",
                needed=short,
            )

        self._stayers = chosen
        self._full_rotation = False
        self._joiners = []
        if need == 0:
            # Team already full, nothing to pick
            self._apply()
        else:
            self.stage = PlannerStage.AWAITING_JOINERS
        return self.stage

    def toggle_joiner(self, name: str) -> List[str]:
        """Add or remove one bench player from the selection.

        Under-selection is allowed while picking; confirm() enforces the count.
        """
        self._require(PlannerStage.AWAITING_JOINERS)
        if name not in self.bench:
            raise UnknownPlayer(f"{name} is not on the bench")
        if name in self._joiners:
            self._joiners.remove(name)
        else:
            need = self.needed_from_bench
            if len(self._joiners) >= need:
                raise WrongJoinerCount(
                    f"You only need {need} {_plural(need)} from the bench",
                    needed=need,
                )
            self._joiners.append(name)
        return self.joiners

    def choose_joiners(self, joiners: Iterable[str]) -> List[str]:
        """Replace the bench selection wholesale."""
        self._require(PlannerStage.AWAITING_JOINERS)
        chosen: List[str] = []
        for name in joiners:
            if name not in chosen:
                chosen.append(name)
        strangers = [n for n in chosen if n not in self.bench]
        if strangers:
            raise UnknownPlayer(f"Not on the bench: {', '.join(strangers)}")
        self._joiners = chosen
        return self.joiners

    def back(self) -> PlannerStage:
        """Return from bench selection to choosing stayers."""
        self._require(PlannerStage.AWAITING_JOINERS)
        self._joiners = []
        self._stayers = []
        self._full_rotation = False
        self.stage = PlannerStage.AWAITING_STAYERS
        return self.stage

    def confirm(self) -> RosterState:
        """Lock in the selection and return the next roster."""
        if self.stage is PlannerStage.CONFIRMED:
            return self._result
        self._require(PlannerStage.AWAITING_JOINERS)
        need = self.needed_from_bench
        if len(self._joiners) != need:
            remaining = need - len(self._joiners)
            if remaining > 0:
                message = f"Need {remaining} more from bench"
            else:
                message = f"Too many from bench: remove {-remaining}"
            raise WrongJoinerCount(
                f"{message} (select exactly {need} {_plural(need)})",
                needed=remaining,
            )
        return self._apply()

    def reshoot(self) -> RosterState:
        """Drop the rotation and hand back the full pool for a fresh team draw."""
        self._stayers = []
        self._joiners = []
        self._full_rotation = False
        self._result = None
        self.stage = PlannerStage.DISCARDED
        logger.info("Rotation discarded for a reshoot")
        return self.roster

    # ------------------------------------------------------------------

    def _apply(self) -> RosterState:
        stayers: Set[str] = set() if self._full_rotation else set(self._stayers)
        joiners = set(self._joiners)

        new_losing = [n for n in self.losing_team if n in stayers] + [n for n in self.bench if n in joiners]
        sitting = [n for n in self.losing_team if n not in stayers]
        new_bench = [n for n in self.bench if n not in joiners] + sitting

        if len(new_losing) != self.target_size:
            raise InvariantViolation(
                f"Rotation would field {len(new_losing)} against {self.target_size}"
            )

        if self.loser is Team.A:
            result = self.roster.set_teams(new_losing, self.winning_team, new_bench)
        else:
            result = self.roster.set_teams(self.winning_team, new_losing, new_bench)

        self._result = result
        self.stage = PlannerStage.CONFIRMED
        logger.info(
            f"{self.loser.label} next game: {', '.join(new_losing)} | bench: {', '.join(new_bench) or '-'}"
        )
        return result
