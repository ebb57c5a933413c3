"""
Shared pytest fixtures for the live-session test suite.

MemoryRecordStore mirrors SessionStore's async interface over plain dicts,
with failure injection so tests can prove a PersistenceError leaves the
controller untouched.
"""

import copy
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest

from live_session.errors import PersistenceError
from live_session.snapshots import SnapshotStore
from models.session import LiveSession, FinalizedSession
from models.players import SessionPlayer
from models.games import GameRecord


FIXED_NOW = datetime(2026, 10, 19, 18, 0, tzinfo=timezone.utc)


class FixedClock:
    """Callable clock that tests can move forward."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class MemoryRecordStore:
    """In-memory stand-in for SessionStore.

    Usage:
        store = MemoryRecordStore()
        store.fail_on("insert_game")          # next insert_game raises PersistenceError
        store.fail_on("upsert_players", times=2)
    """

    def __init__(self):
        self.sessions: Dict[str, Dict[str, Any]] = {}
        self.players: Dict[tuple, Dict[str, Any]] = {}
        self.games: Dict[tuple, Dict[str, Any]] = {}
        self.finalized: Dict[str, Dict[str, Any]] = {}
        self.calls: List[str] = []
        self._failures: Dict[str, int] = {}

    def fail_on(self, method: str, times: int = 1) -> None:
        self._failures[method] = times

    def _enter(self, method: str) -> None:
        self.calls.append(method)
        remaining = self._failures.get(method, 0)
        if remaining:
            self._failures[method] = remaining - 1
            raise PersistenceError(f"{method} failed: simulated outage")

    # Sessions ----------------------------------------------------------

    async def insert_session(self, data: Any) -> LiveSession:
        self._enter("insert_session")
        model = LiveSession.model_validate(data.model_dump() if hasattr(data, "model_dump") else data)
        self.sessions[model.id] = model.model_dump()
        return model

    async def get_session(self, session_id: str) -> Optional[LiveSession]:
        self._enter("get_session")
        doc = self.sessions.get(session_id)
        return LiveSession.model_validate(doc) if doc else None

    async def get_active_session(self) -> Optional[LiveSession]:
        self._enter("get_active_session")
        active = [s for s in self.sessions.values() if s["status"] == "active"]
        if not active:
            return None
        active.sort(key=lambda s: s["started_at"] or datetime.min.replace(tzinfo=timezone.utc), reverse=True)
        return LiveSession.model_validate(active[0])

    async def update_session(self, session_id: str, updates: Dict[str, Any]) -> LiveSession:
        self._enter("update_session")
        if session_id not in self.sessions:
            raise PersistenceError(f"Live session {session_id} not found")
        merged = LiveSession.model_validate({**self.sessions[session_id], **updates})
        self.sessions[session_id] = merged.model_dump()
        return merged

    # Players -----------------------------------------------------------

    async def insert_players(self, players) -> List[SessionPlayer]:
        self._enter("insert_players")
        models = [SessionPlayer.model_validate(p.model_dump()) for p in players]
        for m in models:
            key = (m.live_session_id, m.player_name)
            if key in self.players:
                raise PersistenceError(f"duplicate key {key}")
        for m in models:
            self.players[(m.live_session_id, m.player_name)] = m.model_dump()
        return models

    async def upsert_players(self, players) -> List[SessionPlayer]:
        self._enter("upsert_players")
        models = [SessionPlayer.model_validate(p.model_dump()) for p in players]
        for m in models:
            key = (m.live_session_id, m.player_name)
            row = self.players.get(key, {"notes": m.notes})
            row.update(
                live_session_id=m.live_session_id,
                player_name=m.player_name,
                total_games_played=m.total_games_played,
                total_games_won=m.total_games_won,
            )
            self.players[key] = row
        return models

    async def get_players(self, session_id: str) -> List[SessionPlayer]:
        self._enter("get_players")
        return [
            SessionPlayer.model_validate(row)
            for (sid, _), row in self.players.items()
            if sid == session_id
        ]

    # Games -------------------------------------------------------------

    async def insert_game(self, data: GameRecord) -> GameRecord:
        self._enter("insert_game")
        self.games[(data.live_session_id, data.game_number)] = data.model_dump()
        return data

    async def delete_game(self, session_id: str, game_number: int) -> bool:
        self._enter("delete_game")
        return self.games.pop((session_id, game_number), None) is not None

    async def get_games(self, session_id: str) -> List[GameRecord]:
        self._enter("get_games")
        rows = [row for (sid, _), row in self.games.items() if sid == session_id]
        rows.sort(key=lambda r: r["game_number"])
        return [GameRecord.model_validate(copy.deepcopy(r)) for r in rows]

    # Finalized ---------------------------------------------------------

    async def insert_finalized_session(self, data: FinalizedSession) -> FinalizedSession:
        self._enter("insert_finalized_session")
        self.finalized[data.live_session_id] = data.model_dump(by_alias=True)
        return data


# ---------------------------------------------------------------------------
# Pytest fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def store():
    return MemoryRecordStore()


@pytest.fixture
def snapshots(tmp_path):
    return SnapshotStore(str(tmp_path / "snapshots"))


@pytest.fixture
def clock():
    return FixedClock()
