"""
SessionStore — Async MongoDB service for every durable live-session row.

Every write passes through Pydantic validation. Raw dicts are never written
directly. Every driver or validation failure is raised as PersistenceError
so the controller can abort the transition and let the operator retry.

Collections:
    live_sessions         — one row per live session (status lifecycle)
    live_session_players  — per-player totals, keyed by (live_session_id, player_name)
    games                 — one row per game, keyed by (live_session_id, game_number)
    sessions              — finalized aggregates consumed by the stats views

Requires:
  - MONGODB_URI in .env (default: mongodb://localhost:27017)
  - Database name: LIVE_SESSION_DB (default: pickup_stats)
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Type, TypeVar

from motor.motor_asyncio import AsyncIOMotorClient
from pydantic import BaseModel, ValidationError
from pymongo import ASCENDING, DESCENDING, UpdateOne
from pymongo.errors import PyMongoError

from live_session import config
from live_session.errors import PersistenceError
from models.session import LiveSession, FinalizedSession, SessionStatus
from models.players import SessionPlayer
from models.games import GameRecord

logger = logging.getLogger("SessionStore")

M = TypeVar("M", bound=BaseModel)


def _coerce(model_cls: Type[M], data: Any) -> M:
    """Accept a model instance or a plain dict; always return a validated model."""
    if isinstance(data, model_cls):
        return model_cls.model_validate(data.model_dump())
    return model_cls.model_validate(data)


def _document(model: BaseModel, **kwargs) -> Dict[str, Any]:
    """JSON-mode dump that keeps datetimes native, so Mongo stores and sorts them as dates."""
    doc = model.model_dump(mode="json", **kwargs)
    for name, value in model:
        if isinstance(value, datetime):
            doc[name] = value
    return doc


class SessionStore:
    """Async MongoDB-backed record store with Pydantic validation on every write."""

    def __init__(
        self,
        uri: Optional[str] = None,
        db_name: Optional[str] = None,
    ):
        self.uri = uri or config.MONGODB_URI
        self.db_name = db_name or config.DB_NAME
        self._client: Any = None
        self._db: Any = None

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def connect(self) -> bool:
        """Connect to MongoDB and make sure the key indexes exist. Returns True on success."""
        try:
            self._client = AsyncIOMotorClient(self.uri)
            # Verify connectivity
            await self._client.admin.command("ping")
            self._db = self._client[self.db_name]
            await self._ensure_indexes()
            logger.info(f"SessionStore connected to MongoDB: {self.db_name}")
            return True
        except PyMongoError as e:
            logger.error(f"MongoDB connection failed: {e}")
            self._client = None
            self._db = None
            return False

    async def _ensure_indexes(self) -> None:
        await self._db.live_sessions.create_index([("id", ASCENDING)], unique=True)
        await self._db.live_sessions.create_index([("status", ASCENDING), ("started_at", DESCENDING)])
        await self._db.live_session_players.create_index(
            [("live_session_id", ASCENDING), ("player_name", ASCENDING)], unique=True
        )
        await self._db.games.create_index(
            [("live_session_id", ASCENDING), ("game_number", ASCENDING)], unique=True
        )
        await self._db.sessions.create_index([("live_session_id", ASCENDING)], unique=True)

    async def close(self):
        """Close the MongoDB connection."""
        if self._client:
            self._client.close()
            self._client = None
            self._db = None

    @property
    def is_connected(self) -> bool:
        return self._db is not None

    def _require_connection(self):
        if not self.is_connected:
            raise PersistenceError("SessionStore is not connected to MongoDB.")

    def _fail(self, action: str, exc: Exception) -> PersistenceError:
        logger.error(f"{action} failed: {exc}")
        return PersistenceError(f"{action} failed: {exc}")

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def insert_session(self, data: Any) -> LiveSession:
        self._require_connection()
        try:
            model = _coerce(LiveSession, data)
            await self._db.live_sessions.insert_one(_document(model))
            return model
        except (ValidationError, PyMongoError) as e:
            raise self._fail("Insert live session", e) from e

    async def get_session(self, session_id: str) -> Optional[LiveSession]:
        self._require_connection()
        try:
            doc = await self._db.live_sessions.find_one({"id": session_id})
            if not doc:
                return None
            doc.pop("_id", None)
            return LiveSession.model_validate(doc)
        except (ValidationError, PyMongoError) as e:
            raise self._fail(f"Load live session {session_id}", e) from e

    async def get_active_session(self) -> Optional[LiveSession]:
        """Most recently started session still marked active."""
        self._require_connection()
        try:
            cursor = (
                self._db.live_sessions.find({"status": SessionStatus.ACTIVE.value})
                .sort("started_at", DESCENDING)
                .limit(1)
            )
            async for doc in cursor:
                doc.pop("_id", None)
                return LiveSession.model_validate(doc)
            return None
        except (ValidationError, PyMongoError) as e:
            raise self._fail("Find active session", e) from e

    async def update_session(self, session_id: str, updates: Dict[str, Any]) -> LiveSession:
        """Apply a partial update to a session (merge + validate)."""
        existing = await self.get_session(session_id)
        if existing is None:
            raise PersistenceError(f"Live session {session_id} not found")
        try:
            merged = LiveSession.model_validate({**existing.model_dump(), **updates})
            await self._db.live_sessions.update_one(
                {"id": session_id},
                {"$set": _document(merged)},
            )
            return merged
        except (ValidationError, PyMongoError) as e:
            raise self._fail(f"Update live session {session_id}", e) from e

    # ------------------------------------------------------------------
    # Players
    # ------------------------------------------------------------------

    async def insert_players(self, players: Iterable[Any]) -> List[SessionPlayer]:
        self._require_connection()
        try:
            models = [_coerce(SessionPlayer, p) for p in players]
            if models:
                await self._db.live_session_players.insert_many(
                    [_document(m) for m in models]
                )
            return models
        except (ValidationError, PyMongoError) as e:
            raise self._fail("Insert session players", e) from e

    async def upsert_players(self, players: Iterable[Any]) -> List[SessionPlayer]:
        """Bulk upsert on (live_session_id, player_name). Notes are left untouched."""
        self._require_connection()
        try:
            models = [_coerce(SessionPlayer, p) for p in players]
            ops = [
                UpdateOne(
                    {"live_session_id": m.live_session_id, "player_name": m.player_name},
                    {
                        "$set": {
                            "total_games_played": m.total_games_played,
                            "total_games_won": m.total_games_won,
                        },
                        "$setOnInsert": {"notes": m.notes},
                    },
                    upsert=True,
                )
                for m in models
            ]
            if ops:
                await self._db.live_session_players.bulk_write(ops, ordered=False)
            return models
        except (ValidationError, PyMongoError) as e:
            raise self._fail("Upsert session players", e) from e

    async def get_players(self, session_id: str) -> List[SessionPlayer]:
        self._require_connection()
        try:
            cursor = self._db.live_session_players.find({"live_session_id": session_id})
            results = []
            async for doc in cursor:
                doc.pop("_id", None)
                results.append(SessionPlayer.model_validate(doc))
            return results
        except (ValidationError, PyMongoError) as e:
            raise self._fail(f"Load players for {session_id}", e) from e

    # ------------------------------------------------------------------
    # Games
    # ------------------------------------------------------------------

    async def insert_game(self, data: Any) -> GameRecord:
        """Write a game row. Upserts on (live_session_id, game_number) so a retry never duplicates."""
        self._require_connection()
        try:
            model = _coerce(GameRecord, data)
            await self._db.games.update_one(
                {"live_session_id": model.live_session_id, "game_number": model.game_number},
                {"$set": _document(model)},
                upsert=True,
            )
            return model
        except (ValidationError, PyMongoError) as e:
            raise self._fail("Insert game", e) from e

    async def delete_game(self, session_id: str, game_number: int) -> bool:
        """Returns True if a row was removed. Deleting a missing row is not an error."""
        self._require_connection()
        try:
            result = await self._db.games.delete_one(
                {"live_session_id": session_id, "game_number": game_number}
            )
            return result.deleted_count > 0
        except PyMongoError as e:
            raise self._fail(f"Delete game {game_number}", e) from e

    async def get_games(self, session_id: str) -> List[GameRecord]:
        """Full game history, ordered by game_number ascending."""
        self._require_connection()
        try:
            cursor = self._db.games.find({"live_session_id": session_id}).sort("game_number", ASCENDING)
            results = []
            async for doc in cursor:
                doc.pop("_id", None)
                results.append(GameRecord.model_validate(doc))
            return results
        except (ValidationError, PyMongoError) as e:
            raise self._fail(f"Load games for {session_id}", e) from e

    # ------------------------------------------------------------------
    # Finalized sessions
    # ------------------------------------------------------------------

    async def insert_finalized_session(self, data: Any) -> FinalizedSession:
        """Store the aggregate once per live session (upsert on live_session_id)."""
        self._require_connection()
        try:
            model = _coerce(FinalizedSession, data)
            await self._db.sessions.update_one(
                {"live_session_id": model.live_session_id},
                {"$set": _document(model, by_alias=True)},
                upsert=True,
            )
            return model
        except (ValidationError, PyMongoError) as e:
            raise self._fail("Save finalized session", e) from e
