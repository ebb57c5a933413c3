"""
Recovery — rebuild an interrupted live session from the record store.

Resume is a full reload, never an incremental patch: the ledger is replayed
from every stored game row, the roster comes from the last game's partition,
and per-player totals are recomputed from the ledger. Stored totals that
disagree (a crash between the game write and the totals write) are healed.

The local snapshot is consulted last and only to recover the one thing the
record store never holds: a rotation confirmed after the last game.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional

from live_session import config
from live_session.errors import SessionNotActive, StaleSession
from live_session.ledger import GameLedger
from live_session.roster import RosterState
from live_session.snapshots import LiveSnapshot
from models.session import LiveSession, SessionStatus
from models.games import GameRecord
from models.players import SessionPlayer

logger = logging.getLogger("Recovery")


@dataclass
class RecoveredSession:
    """State rebuilt from durable rows, ready to hand to a controller."""

    session: LiveSession
    ledger: GameLedger
    roster: RosterState
    healed: List[str] = field(default_factory=list)


def _as_utc(moment: datetime) -> datetime:
    # Mongo hands back stored datetimes naive; they are always UTC
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def is_stale(
    session: LiveSession,
    now: Optional[datetime] = None,
    window: Optional[timedelta] = None,
) -> bool:
    """An active session with no start time, or one older than the window, is stale."""
    if session.started_at is None:
        return True
    now = _as_utc(now or datetime.now(timezone.utc))
    window = window if window is not None else config.stale_window()
    return now - _as_utc(session.started_at) > window


async def abandon_stale(store, session: LiveSession) -> LiveSession:
    logger.warning(f"Live session {session.id} ({session.date}) is stale; marking abandoned")
    return await store.update_session(session.id, {"status": SessionStatus.ABANDONED})


async def find_active_session(
    store,
    now: Optional[datetime] = None,
    window: Optional[timedelta] = None,
) -> Optional[LiveSession]:
    """Most recent resumable session. Stale ones are abandoned along the way."""
    while True:
        session = await store.get_active_session()
        if session is None:
            return None
        if not is_stale(session, now, window):
            return session
        await abandon_stale(store, session)


def roster_for_game(players: Iterable[str], record: GameRecord) -> RosterState:
    """The partition a recorded game was played with, over the given player pool."""
    players = tuple(players)
    placed = set(record.participants) | set(record.sitting_out_players)
    # Late arrivals joined after that game: they sit
    bench = list(record.sitting_out_players) + [p for p in players if p not in placed]
    return RosterState.initialize(players).set_teams(record.team_a_players, record.team_b_players, bench)


def roster_from_ledger(ledger: GameLedger) -> RosterState:
    """Partition of the last recorded game, or everyone on the bench."""
    last = ledger.last_record
    if last is None:
        return RosterState.initialize(ledger.players)
    return roster_for_game(ledger.players, last)


async def heal_player_totals(store, ledger: GameLedger, rows: List[SessionPlayer]) -> List[str]:
    """Rewrite any stored totals that disagree with the ledger. Returns the names fixed."""
    stored = {row.player_name: row for row in rows}
    drifted = []
    for name, totals in ledger.totals().items():
        row = stored.get(name)
        if row is None or (row.total_games_played, row.total_games_won) != (
            totals.games_played,
            totals.games_won,
        ):
            drifted.append(name)
    if drifted:
        logger.warning(f"Healing stored totals from game history for: {', '.join(drifted)}")
        totals = ledger.totals()
        await store.upsert_players(
            [
                SessionPlayer(
                    live_session_id=ledger.session_id,
                    player_name=name,
                    total_games_played=totals[name].games_played,
                    total_games_won=totals[name].games_won,
                )
                for name in drifted
            ]
        )
    return drifted


async def load_session_state(
    store,
    session_id: str,
    now: Optional[datetime] = None,
    window: Optional[timedelta] = None,
) -> RecoveredSession:
    """Load session, players and full game history and rebuild the live state.

    Raises SessionNotActive if the session is missing or already ended, and
    StaleSession (after marking it abandoned) if it sat too long.
    """
    session = await store.get_session(session_id)
    if session is None:
        raise SessionNotActive(f"Live session {session_id} not found")
    if not session.is_active:
        raise SessionNotActive(f"Live session {session_id} is {session.status}")
    if is_stale(session, now, window):
        await abandon_stale(store, session)
        raise StaleSession(
            f"Live session from {session.date} was left open too long and has been abandoned. "
            f"Start a fresh session.",
            session_id=session_id,
        )

    rows = await store.get_players(session_id)
    games = await store.get_games(session_id)

    ledger = GameLedger.from_records(session_id, games, [row.player_name for row in rows])
    roster = roster_from_ledger(ledger)
    healed = await heal_player_totals(store, ledger, rows)

    logger.info(
        f"Resumed live session {session_id}: {len(ledger)} games, {len(ledger.players)} players"
    )
    return RecoveredSession(
        session=session,
        ledger=ledger,
        roster=roster,
        healed=healed,
    )


def snapshot_matches(recovered: RecoveredSession, snapshot: Optional[LiveSnapshot]) -> bool:
    """True if the snapshot belongs to this session and saw exactly the stored games."""
    if snapshot is None or snapshot.session.id != recovered.session.id:
        return False
    durable = [(g.game_number, g.winning_team) for g in recovered.ledger.records]
    local = [(g.game_number, g.winning_team) for g in snapshot.games]
    return durable == local


def apply_snapshot_roster(recovered: RecoveredSession, snapshot: Optional[LiveSnapshot]) -> bool:
    """Adopt the snapshot's roster if it describes the same session at the same game.

    The snapshot roster captures a rotation confirmed after the last game,
    which the record store does not hold. Anything that does not line up
    with the durable history is ignored.
    """
    if not snapshot_matches(recovered, snapshot):
        if snapshot is not None:
            logger.info("Local snapshot does not match the stored game history; ignoring it")
        return False
    if snapshot.roster.players != recovered.roster.players:
        logger.info("Local snapshot has a different player pool; ignoring it")
        return False
    if snapshot.roster == recovered.roster:
        return False
    recovered.roster = snapshot.roster
    logger.info("Restored post-game roster from local snapshot")
    return True
