"""
Tests for live_session/store.py — SessionStore against mocked Motor collections.

No MongoDB needed: collections are MagicMocks with AsyncMock methods, and
find() returns a small async cursor.
"""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from pymongo import UpdateOne
from pymongo.errors import PyMongoError

from live_session.errors import PersistenceError
from live_session.store import SessionStore
from models.session import LiveSession, FinalizedSession, FinalizedPlayer
from models.players import SessionPlayer
from models.games import GameRecord, Team

NOW = datetime(2026, 10, 19, 18, 0, tzinfo=timezone.utc)


class FakeCursor:
    """Just enough of an AsyncIOMotorCursor for `async for`."""

    def __init__(self, docs):
        self.docs = list(docs)
        self.sorted_by = None

    def sort(self, key, direction=None):
        self.sorted_by = (key, direction)
        return self

    def limit(self, n):
        self.docs = self.docs[:n]
        return self

    def __aiter__(self):
        self._it = iter(self.docs)
        return self

    async def __anext__(self):
        try:
            return next(self._it)
        except StopIteration:
            raise StopAsyncIteration


def connected_store():
    store = SessionStore(uri="mongodb://test", db_name="pickup_test")
    store._db = MagicMock()
    return store


def game(number=1):
    return GameRecord(
        live_session_id="s1",
        game_number=number,
        team_a_players=["Ana", "Ben"],
        team_b_players=["Cal", "Dee"],
        sitting_out_players=["Eve"],
        winning_team=Team.A,
    )


class TestConnection:

    def test_not_connected(self):
        store = SessionStore(uri="mongodb://test")
        assert store.is_connected is False
        with pytest.raises(PersistenceError):
            asyncio.run(store.insert_game(game()))

    def test_connect_failure(self):
        client = MagicMock()
        client.admin.command = AsyncMock(side_effect=PyMongoError("no server"))
        with patch("live_session.store.AsyncIOMotorClient", return_value=client):
            store = SessionStore(uri="mongodb://test")
            assert asyncio.run(store.connect()) is False
        assert store.is_connected is False

    def test_connect_creates_indexes(self):
        db = MagicMock()
        for name in ("live_sessions", "live_session_players", "games", "sessions"):
            getattr(db, name).create_index = AsyncMock()
        client = MagicMock()
        client.admin.command = AsyncMock(return_value={"ok": 1})
        client.__getitem__.return_value = db
        with patch("live_session.store.AsyncIOMotorClient", return_value=client):
            store = SessionStore(uri="mongodb://test", db_name="pickup_test")
            assert asyncio.run(store.connect()) is True
        client.__getitem__.assert_called_with("pickup_test")
        _, kwargs = db.games.create_index.call_args
        assert kwargs["unique"] is True

        asyncio.run(store.close())
        client.close.assert_called_once()
        assert store.is_connected is False


class TestSessions:

    def test_insert_session_keeps_native_datetime(self):
        store = connected_store()
        store._db.live_sessions.insert_one = AsyncMock()
        session = LiveSession(date="2026-10-19", started_at=NOW)

        result = asyncio.run(store.insert_session(session))
        assert result.id == session.id
        doc = store._db.live_sessions.insert_one.call_args[0][0]
        assert doc["status"] == "active"
        assert doc["started_at"] == NOW
        assert isinstance(doc["started_at"], datetime)
        assert isinstance(doc["date"], str)

    def test_insert_session_driver_error(self):
        store = connected_store()
        store._db.live_sessions.insert_one = AsyncMock(side_effect=PyMongoError("down"))
        with pytest.raises(PersistenceError):
            asyncio.run(store.insert_session(LiveSession(date="2026-10-19")))

    def test_insert_session_invalid(self):
        store = connected_store()
        store._db.live_sessions.insert_one = AsyncMock()
        with pytest.raises(PersistenceError):
            asyncio.run(store.insert_session({"date": "whenever"}))
        store._db.live_sessions.insert_one.assert_not_awaited()

    def test_get_session_missing(self):
        store = connected_store()
        store._db.live_sessions.find_one = AsyncMock(return_value=None)
        assert asyncio.run(store.get_session("nope")) is None

    def test_get_active_session(self):
        store = connected_store()
        doc = {"_id": "x", "id": "s1", "date": "2026-10-19", "status": "active", "started_at": NOW}
        cursor = FakeCursor([doc])
        store._db.live_sessions.find = MagicMock(return_value=cursor)

        session = asyncio.run(store.get_active_session())
        assert session.id == "s1"
        assert store._db.live_sessions.find.call_args[0][0] == {"status": "active"}
        assert cursor.sorted_by[0] == "started_at"

    def test_get_active_session_none(self):
        store = connected_store()
        store._db.live_sessions.find = MagicMock(return_value=FakeCursor([]))
        assert asyncio.run(store.get_active_session()) is None

    def test_update_session_merges(self):
        store = connected_store()
        store._db.live_sessions.find_one = AsyncMock(
            return_value={"_id": "x", "id": "s1", "date": "2026-10-19", "location": "Gym", "status": "active"}
        )
        store._db.live_sessions.update_one = AsyncMock()

        updated = asyncio.run(store.update_session("s1", {"status": "completed", "ended_at": NOW}))
        assert updated.status == "completed"
        assert updated.location == "Gym"
        filter_, update = store._db.live_sessions.update_one.call_args[0]
        assert filter_ == {"id": "s1"}
        assert update["$set"]["status"] == "completed"
        assert update["$set"]["ended_at"] == NOW

    def test_update_missing_session(self):
        store = connected_store()
        store._db.live_sessions.find_one = AsyncMock(return_value=None)
        with pytest.raises(PersistenceError):
            asyncio.run(store.update_session("nope", {"status": "abandoned"}))


class TestPlayers:

    def test_upsert_players_bulk(self):
        store = connected_store()
        store._db.live_session_players.bulk_write = AsyncMock()
        rows = [
            SessionPlayer(live_session_id="s1", player_name="Ana", total_games_played=2, total_games_won=1),
            SessionPlayer(live_session_id="s1", player_name="Ben", total_games_played=2, total_games_won=2),
        ]
        asyncio.run(store.upsert_players(rows))
        ops = store._db.live_session_players.bulk_write.call_args[0][0]
        assert len(ops) == 2
        assert all(isinstance(op, UpdateOne) for op in ops)

    def test_upsert_nothing(self):
        store = connected_store()
        store._db.live_session_players.bulk_write = AsyncMock()
        assert asyncio.run(store.upsert_players([])) == []
        store._db.live_session_players.bulk_write.assert_not_awaited()

    def test_insert_players_duplicate(self):
        store = connected_store()
        store._db.live_session_players.insert_many = AsyncMock(side_effect=PyMongoError("E11000 duplicate key"))
        with pytest.raises(PersistenceError):
            asyncio.run(store.insert_players([SessionPlayer(live_session_id="s1", player_name="Ana")]))

    def test_get_players(self):
        store = connected_store()
        store._db.live_session_players.find = MagicMock(return_value=FakeCursor([
            {"_id": 1, "live_session_id": "s1", "player_name": "Ana", "total_games_played": 3, "total_games_won": 2},
        ]))
        (row,) = asyncio.run(store.get_players("s1"))
        assert row.player_name == "Ana"
        assert row.notes == ""


class TestGames:

    def test_insert_game_upserts_on_number(self):
        store = connected_store()
        store._db.games.update_one = AsyncMock()
        asyncio.run(store.insert_game(game(3)))
        args, kwargs = store._db.games.update_one.call_args
        assert args[0] == {"live_session_id": "s1", "game_number": 3}
        assert args[1]["$set"]["winning_team"] == "team_a"
        assert isinstance(args[1]["$set"]["recorded_at"], datetime)
        assert kwargs["upsert"] is True

    def test_delete_game(self):
        store = connected_store()
        store._db.games.delete_one = AsyncMock(return_value=MagicMock(deleted_count=1))
        assert asyncio.run(store.delete_game("s1", 1)) is True
        store._db.games.delete_one = AsyncMock(return_value=MagicMock(deleted_count=0))
        assert asyncio.run(store.delete_game("s1", 1)) is False

    def test_get_games_ordered(self):
        store = connected_store()
        docs = [dict(game(n).model_dump(mode="json"), _id=n) for n in (1, 2)]
        cursor = FakeCursor(docs)
        store._db.games.find = MagicMock(return_value=cursor)
        games = asyncio.run(store.get_games("s1"))
        assert [g.game_number for g in games] == [1, 2]
        assert games[0].winning_team is Team.A
        assert cursor.sorted_by[0] == "game_number"

    def test_get_games_bad_row(self):
        store = connected_store()
        store._db.games.find = MagicMock(return_value=FakeCursor([{"live_session_id": "s1", "game_number": 0}]))
        with pytest.raises(PersistenceError):
            asyncio.run(store.get_games("s1"))


class TestFinalized:

    def test_written_by_alias(self):
        store = connected_store()
        store._db.sessions.update_one = AsyncMock()
        aggregate = FinalizedSession(
            live_session_id="s1",
            date="2026-10-19",
            players=[FinalizedPlayer(name="Ana", games_played=3, games_won=2)],
        )
        asyncio.run(store.insert_finalized_session(aggregate))
        args, kwargs = store._db.sessions.update_one.call_args
        assert args[0] == {"live_session_id": "s1"}
        assert args[1]["$set"]["players"][0]["gamesPlayed"] == 3
        assert kwargs["upsert"] is True
