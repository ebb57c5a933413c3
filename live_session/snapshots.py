"""
SnapshotStore — best-effort local crash-recovery blobs.

One JSON file per key inside a local directory. The live session writes a
snapshot after every transition so a restart on the same machine can pick
up mid-rotation. The record store stays the source of truth: every failure
here is logged and swallowed, never raised into a session transition.
"""

import os
import json
import logging
import tempfile
from typing import Any, Dict, List, Optional
from datetime import datetime, timezone

from pydantic import BaseModel, Field, ValidationError

from live_session import config
from live_session.roster import RosterState
from live_session.errors import InvariantViolation
from models.session import LiveSession
from models.games import GameRecord

logger = logging.getLogger("SnapshotStore")


class LiveSnapshot(BaseModel):
    """Everything needed to redraw an in-progress session."""

    session: LiveSession
    roster: RosterState
    games: List[GameRecord] = []
    game_number: int = Field(default=1, ge=1)
    rotation_pending: bool = False
    saved_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class SnapshotStore:
    """Key/blob storage in a local directory."""

    def __init__(self, directory: Optional[str] = None):
        self.directory = os.path.abspath(directory or config.SNAPSHOT_DIR)

    def _resolve(self, key: str) -> str:
        safe = "".join(c if c.isalnum() or c in "-_" else "_" for c in key)
        return os.path.join(self.directory, f"{safe}.json")

    # ------------------------------------------------------------------
    # Raw blobs
    # ------------------------------------------------------------------

    def save(self, key: str, blob: Dict[str, Any]) -> bool:
        """Write a blob atomically (temp file + rename). Returns True on success."""
        path = self._resolve(key)
        tmp_path = None
        try:
            os.makedirs(self.directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(blob, f, indent=2)
            os.replace(tmp_path, path)
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Error writing snapshot {path}: {e}")
            if tmp_path and os.path.exists(tmp_path):
                os.remove(tmp_path)
            return False

    def load(self, key: str) -> Optional[Dict[str, Any]]:
        path = self._resolve(key)
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.error(f"Error reading snapshot {path}: {e}")
            return None

    def clear(self, key: str) -> bool:
        path = self._resolve(key)
        try:
            os.remove(path)
            return True
        except FileNotFoundError:
            return True
        except OSError as e:
            logger.error(f"Error clearing snapshot {path}: {e}")
            return False

    # ------------------------------------------------------------------
    # Live session snapshot (fixed key)
    # ------------------------------------------------------------------

    def save_live(self, snapshot: LiveSnapshot) -> bool:
        return self.save(config.SNAPSHOT_KEY, snapshot.model_dump(mode="json"))

    def load_live(self) -> Optional[LiveSnapshot]:
        blob = self.load(config.SNAPSHOT_KEY)
        if blob is None:
            return None
        try:
            return LiveSnapshot.model_validate(blob)
        except (ValidationError, InvariantViolation) as e:
            logger.warning(f"Ignoring unreadable live-session snapshot: {e}")
            return None

    def clear_live(self) -> bool:
        return self.clear(config.SNAPSHOT_KEY)
