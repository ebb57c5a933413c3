"""
SessionController — owns one live session from start to end.

The controller is an explicit handle: every caller gets its own instance
from start() or resume(), and nothing about the current session lives in
module globals. It exposes synchronous-looking command methods (async only
because the record store is network I/O) and publishes an immutable
LiveSnapshot to subscribers after every transition.

Ordering rule for every command that touches the record store: build the
new state on a copy, write it, and only then swap it in. A PersistenceError
therefore leaves the in-memory session exactly as it was, and the operator
can simply retry. Player totals are a cache of the ledger: once a game row
is stored the game counts, and a totals write that fails after it is
repaired by the next totals write or on resume.

Lifecycle:
    NOT_STARTED -> ACTIVE -> COMPLETED | ABANDONED
"""

import asyncio
import logging
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Tuple
from datetime import datetime, timedelta, timezone

from pydantic import BaseModel, ValidationError

from live_session import config
from live_session.errors import (
    DuplicatePlayer,
    LiveSessionError,
    NotEnoughPlayers,
    PersistenceError,
    PlannerStateError,
    RosterInputError,
    RosterNotReady,
    SessionNotActive,
    StaleSession,
    TeamSizeMismatch,
    UnknownPlayer,
)
from live_session.ledger import GameLedger, PlayerTotals
from live_session.planner import PlannerStage, RotationPlanner
from live_session.recovery import (
    apply_snapshot_roster,
    find_active_session,
    load_session_state,
    roster_for_game,
    snapshot_matches,
)
from live_session.roster import RosterState
from live_session.snapshots import LiveSnapshot, SnapshotStore
from models.session import FinalizedPlayer, FinalizedSession, LiveSession, SessionStatus
from models.players import SessionPlayer
from models.games import GameRecord, Team

logger = logging.getLogger("SessionController")

Listener = Callable[[LiveSnapshot], None]


class SessionPhase(Enum):
    NOT_STARTED = "not_started"
    ACTIVE = "active"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class GameOutcome(BaseModel):
    """Result of report_winner: who won, who rotates, and the stored row."""

    winner: Team
    loser: Team
    record: GameRecord
    totals_saved: bool = True

    model_config = {"frozen": True}


def _clean_names(names: Iterable[str]) -> List[str]:
    cleaned: List[str] = []
    for raw in names:
        name = (raw or "").strip()
        if not name:
            continue
        if name in cleaned:
            raise DuplicatePlayer(f"{name} is listed twice")
        cleaned.append(name)
    return cleaned


class SessionController:
    """Command interface for a single live session.

    Usage:
        controller = SessionController(store, SnapshotStore())
        await controller.start("2026-10-19", "Rec Center", ["Ana", "Ben", "Cal", "Dee"])
        controller.set_teams(["Ana", "Ben"], ["Cal", "Dee"])
        outcome = await controller.report_winner(Team.A)
        planner = controller.begin_rotation()
        ...
        controller.rotate(planner)
        aggregate = await controller.end()
    """

    def __init__(
        self,
        store,
        snapshots: Optional[SnapshotStore] = None,
        clock: Optional[Callable[[], datetime]] = None,
        stale_after: Optional[timedelta] = None,
    ):
        self.store = store
        self.snapshots = snapshots
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._stale_after = stale_after
        self._lock = asyncio.Lock()
        self._listeners: List[Listener] = []
        self._reset()

    def _reset(self) -> None:
        self.phase = SessionPhase.NOT_STARTED
        self.session: Optional[LiveSession] = None
        self._ledger: Optional[GameLedger] = None
        self._roster: Optional[RosterState] = None
        self._planner: Optional[RotationPlanner] = None
        self._rotation_pending = False
        self._totals_stale = False

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def is_active(self) -> bool:
        return self.phase is SessionPhase.ACTIVE

    @property
    def roster(self) -> Optional[RosterState]:
        return self._roster

    @property
    def games(self) -> Tuple[GameRecord, ...]:
        return self._ledger.records if self._ledger else ()

    @property
    def game_number(self) -> int:
        """Number of the game about to be played."""
        return self._ledger.next_game_number if self._ledger else 1

    @property
    def planner(self) -> Optional[RotationPlanner]:
        return self._planner

    @property
    def rotation_pending(self) -> bool:
        """A game just finished and its rotation has not been applied yet."""
        return self._rotation_pending

    @property
    def can_undo(self) -> bool:
        return self.is_active and len(self._ledger) > 0

    def totals(self) -> Dict[str, PlayerTotals]:
        self._require_active()
        return self._ledger.totals()

    def standings(self) -> List[PlayerTotals]:
        self._require_active()
        return self._ledger.standings()

    def win_streak(self, team: Team) -> int:
        self._require_active()
        return self._ledger.win_streak(team)

    def snapshot(self) -> LiveSnapshot:
        if self.session is None:
            raise SessionNotActive("No live session loaded")
        return LiveSnapshot(
            session=self.session,
            roster=self._roster,
            games=list(self.games),
            game_number=self.game_number,
            rotation_pending=self._rotation_pending,
            saved_at=self._clock(),
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register for a LiveSnapshot after every transition. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_active(self) -> None:
        if self.phase is not SessionPhase.ACTIVE or self.session is None:
            raise SessionNotActive("No active live session")

    def _require_fresh(self) -> None:
        if self.phase is not SessionPhase.NOT_STARTED:
            raise LiveSessionError("This controller already holds a session; create a new one")

    def _publish(self) -> None:
        """Checkpoint to the local snapshot and notify subscribers."""
        snap = self.snapshot()
        if self.snapshots is not None and self.is_active:
            if not self.snapshots.save_live(snap):
                logger.warning("Local snapshot not saved; recovery will rely on the record store")
        for listener in list(self._listeners):
            try:
                listener(snap)
            except Exception as e:
                logger.error(f"Snapshot listener error: {e}", exc_info=True)

    def _player_rows(self, ledger: GameLedger, names: Iterable[str]) -> List[SessionPlayer]:
        totals = ledger.totals()
        return [
            SessionPlayer(
                live_session_id=ledger.session_id,
                player_name=name,
                total_games_played=totals[name].games_played,
                total_games_won=totals[name].games_won,
            )
            for name in names
        ]

    async def _write_totals(self, names: Iterable[str]) -> bool:
        """Upsert ledger totals for `names` (every player if an earlier write failed)."""
        if self._totals_stale:
            names = self._ledger.players
        try:
            await self.store.upsert_players(self._player_rows(self._ledger, names))
        except PersistenceError as e:
            logger.warning(f"Player totals not saved, will rewrite from game history: {e}")
            self._totals_stale = True
            return False
        self._totals_stale = False
        return True

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, date: str, location: Optional[str], players: Iterable[str]) -> LiveSession:
        """Open a new live session with everyone on the bench."""
        self._require_fresh()
        names = _clean_names(players)
        if len(names) < config.MIN_PLAYERS:
            short = config.MIN_PLAYERS - len(names)
            raise NotEnoughPlayers(
                f"Please select at least {config.MIN_PLAYERS} players to start a live session "
                f"(need {short} more)",
                needed=short,
            )
        try:
            session = LiveSession(
                date=date,
                location=location,
                status=SessionStatus.ACTIVE,
                started_at=self._clock(),
            )
        except ValidationError as e:
            raise LiveSessionError(f"Invalid session details: {e}") from e

        async with self._lock:
            session = await self.store.insert_session(session)
            try:
                await self.store.insert_players(
                    [SessionPlayer(live_session_id=session.id, player_name=n) for n in names]
                )
            except PersistenceError:
                # Do not leave an empty active session blocking the next start
                try:
                    await self.store.update_session(session.id, {"status": SessionStatus.ABANDONED})
                except PersistenceError as cleanup_error:
                    logger.error(f"Could not abandon half-created session {session.id}: {cleanup_error}")
                raise

            self.session = session
            self._ledger = GameLedger(session.id, names)
            self._roster = RosterState.initialize(names)
            self.phase = SessionPhase.ACTIVE
            logger.info(f"Live session {session.id} started on {session.date} with {len(names)} players")
            self._publish()
        return session

    async def resume(self, session_id: str) -> LiveSession:
        """Rebuild an interrupted session from the record store."""
        self._require_fresh()
        async with self._lock:
            local = self.snapshots.load_live() if self.snapshots is not None else None
            try:
                recovered = await load_session_state(
                    self.store, session_id, now=self._clock(), window=self._stale_after
                )
            except StaleSession:
                if local is not None and local.session.id == session_id:
                    self.snapshots.clear_live()
                raise

            from_snapshot = apply_snapshot_roster(recovered, local)
            if snapshot_matches(recovered, local):
                pending = local.rotation_pending
            else:
                pending = len(recovered.ledger) > 0

            self.session = recovered.session
            self._ledger = recovered.ledger
            self._roster = recovered.roster
            self._rotation_pending = pending
            self.phase = SessionPhase.ACTIVE
            logger.info(
                f"Live session {self.session.id} ready at game {self.game_number}"
                + (" with the post-game roster from the local snapshot" if from_snapshot else "")
                + (f"; totals repaired for {len(recovered.healed)} players" if recovered.healed else "")
            )
            self._publish()
        return self.session

    @classmethod
    async def resume_active(
        cls,
        store,
        snapshots: Optional[SnapshotStore] = None,
        clock: Optional[Callable[[], datetime]] = None,
        stale_after: Optional[timedelta] = None,
    ) -> Optional["SessionController"]:
        """Find the current active session (abandoning stale ones) and resume it."""
        now = (clock or (lambda: datetime.now(timezone.utc)))()
        active = await find_active_session(store, now=now, window=stale_after)
        if active is None:
            return None
        controller = cls(store, snapshots, clock=clock, stale_after=stale_after)
        await controller.resume(active.id)
        return controller

    async def end(self) -> FinalizedSession:
        """Close the session and store its per-player aggregate."""
        self._require_active()
        async with self._lock:
            if self._totals_stale:
                await self.store.upsert_players(self._player_rows(self._ledger, self._ledger.players))
                self._totals_stale = False
            rows = await self.store.get_players(self.session.id)
            notes = {row.player_name: row.notes for row in rows}
            totals = self._ledger.totals()
            try:
                aggregate = FinalizedSession(
                    live_session_id=self.session.id,
                    date=self.session.date,
                    location=self.session.location,
                    players=[
                        FinalizedPlayer(
                            name=name,
                            games_played=totals[name].games_played,
                            games_won=totals[name].games_won,
                            notes=notes.get(name, ""),
                        )
                        for name in self._ledger.players
                    ],
                )
            except ValidationError as e:
                raise LiveSessionError(f"Session cannot be finalized: {e}") from e

            await self.store.insert_finalized_session(aggregate)
            ended = await self.store.update_session(
                self.session.id,
                {"status": SessionStatus.COMPLETED, "ended_at": self._clock()},
            )

            self.session = ended
            self.phase = SessionPhase.COMPLETED
            self._planner = None
            self._rotation_pending = False
            if self.snapshots is not None:
                self.snapshots.clear_live()
            logger.info(f"Live session {ended.id} completed after {len(self._ledger)} games")
            self._publish()
        return aggregate

    async def abandon(self) -> None:
        """Discard the session. No aggregate is produced."""
        self._require_active()
        async with self._lock:
            abandoned = await self.store.update_session(
                self.session.id, {"status": SessionStatus.ABANDONED}
            )
            self.session = abandoned
            self.phase = SessionPhase.ABANDONED
            self._planner = None
            self._rotation_pending = False
            if self.snapshots is not None:
                self.snapshots.clear_live()
            logger.info(f"Live session {abandoned.id} abandoned")
            self._publish()

    def exit(self) -> None:
        """Drop the in-memory session. It stays active in the store for a later resume."""
        if self.session is not None:
            logger.info(f"Leaving live session {self.session.id} (still {self.session.status})")
        self._reset()

    # ------------------------------------------------------------------
    # Team selection
    # ------------------------------------------------------------------

    def set_teams(self, team_a: Iterable[str], team_b: Iterable[str]) -> RosterState:
        """Pick both teams from the full pool (initial setup and reshoot)."""
        self._require_active()
        a = _clean_names(team_a)
        b = _clean_names(team_b)
        if not a or not b:
            raise TeamSizeMismatch("Please select at least 1 player for each team", needed=1)
        if len(a) != len(b):
            raise TeamSizeMismatch(
                f"Teams must be equal size. Team A has {len(a)} players, Team B has {len(b)} players.",
                needed=abs(len(a) - len(b)),
            )
        strangers = [n for n in a + b if n not in self._roster.players]
        if strangers:
            raise UnknownPlayer(f"Not in this session: {', '.join(strangers)}")
        both = [n for n in a if n in b]
        if both:
            raise RosterInputError(f"Picked for both teams: {', '.join(both)}")

        self._roster = self._roster.from_teams(a, b)
        self._planner = None
        self._rotation_pending = False
        logger.info(f"Teams set: A={', '.join(a)} | B={', '.join(b)}")
        self._publish()
        return self._roster

    def reshoot(self) -> Tuple[str, ...]:
        """Abandon any in-flight rotation and reopen team selection. Returns the full pool."""
        self._require_active()
        if self._planner is not None:
            self._planner.reshoot()
            self._planner = None
        self._publish()
        return self._roster.ordered_players

    # ------------------------------------------------------------------
    # Games
    # ------------------------------------------------------------------

    async def report_winner(self, team: Team) -> GameOutcome:
        """Record the current game, persist it, and refresh stored totals.

        The game counts as soon as its row is written. If the totals write
        after it fails, the outcome says so and the rows are rewritten from
        the ledger by the next totals write (or on resume).
        """
        self._require_active()
        team = Team(team)
        async with self._lock:
            if self._rotation_pending:
                raise PlannerStateError("Rotate (or re-pick teams) before reporting the next game")
            if not self._roster.is_ready:
                raise RosterNotReady("Set both teams (equal size) before reporting a winner")

            candidate = self._ledger.copy()
            record = candidate.record_game(
                self._roster.team_a, self._roster.team_b, self._roster.bench, team
            )
            await self.store.insert_game(record)

            self._ledger = candidate
            self._planner = None
            self._rotation_pending = True
            totals_saved = await self._write_totals(record.participants)
            self._publish()
        return GameOutcome(winner=team, loser=team.other, record=record, totals_saved=totals_saved)

    def begin_rotation(self) -> RotationPlanner:
        """Open the post-game flow for the last game's losing side."""
        self._require_active()
        last = self._ledger.last_record
        if last is None or not self._rotation_pending:
            raise PlannerStateError("Report a winner before rotating")
        if self._planner is None or self._planner.stage is PlannerStage.DISCARDED:
            self._planner = RotationPlanner(self._roster, Team(last.winning_team))
        return self._planner

    def rotate(self, planner: Optional[RotationPlanner] = None) -> RosterState:
        """Apply a confirmed rotation. Checkpointed locally only; the next game row records it."""
        self._require_active()
        planner = planner or self._planner
        if planner is None:
            raise PlannerStateError("No rotation in progress")
        if planner.stage is not PlannerStage.CONFIRMED:
            raise PlannerStateError(f"Rotation is not confirmed yet ({planner.stage.value})")
        if planner.roster != self._roster:
            raise PlannerStateError("Rotation was planned against a different roster")

        self._roster = planner.result
        self._planner = None
        self._rotation_pending = False
        self._publish()
        return self._roster

    async def undo(self) -> GameRecord:
        """Remove the last game, revert stored totals, and restore the roster it was played with.

        Totals go first and the game row last, so a failure part-way never
        leaves a hole in the stored game numbers.
        """
        self._require_active()
        async with self._lock:
            candidate = self._ledger.copy()
            record = candidate.undo_last()
            restored = roster_for_game(candidate.players, record)

            names = candidate.players if self._totals_stale else record.participants
            try:
                await self.store.upsert_players(self._player_rows(candidate, names))
                await self.store.delete_game(self.session.id, record.game_number)
            except PersistenceError:
                # Stored totals may now describe the undone state, or only part of it
                self._totals_stale = True
                raise

            self._ledger = candidate
            self._roster = restored
            self._planner = None
            self._rotation_pending = False
            self._totals_stale = False
            logger.info(f"Game {record.game_number} undone")
            self._publish()
        return record

    async def add_player(self, name: str) -> RosterState:
        """A late arrival joins the bench."""
        self._require_active()
        name = (name or "").strip()
        if not name:
            raise RosterInputError("Please enter a player name")
        if name in self._roster.players:
            raise DuplicatePlayer(f"{name} is already in this session")
        async with self._lock:
            await self.store.insert_players(
                [SessionPlayer(live_session_id=self.session.id, player_name=name)]
            )
            ledger = self._ledger.copy()
            ledger.add_player(name)
            self._ledger = ledger
            self._roster = self._roster.with_bench_player(name)
            if self._planner is not None:
                # The planner was built on the old bench
                self._planner.reshoot()
                self._planner = None
            logger.info(f"{name} joined the bench")
            self._publish()
        return self._roster
