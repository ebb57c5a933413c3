"""
Runtime configuration for the live-session core.

Values come from the environment (a local .env is loaded first), with
defaults suitable for a single-laptop setup.
"""

import os
import logging
from typing import Optional
from datetime import timedelta

from dotenv import load_dotenv

load_dotenv()

MONGODB_URI = os.getenv("MONGODB_URI", "mongodb://localhost:27017")
DB_NAME = os.getenv("LIVE_SESSION_DB", "pickup_stats")
SNAPSHOT_DIR = os.getenv("SNAPSHOT_DIR", ".live_session")
STALE_SESSION_HOURS = float(os.getenv("STALE_SESSION_HOURS", "24"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

MIN_PLAYERS = 4
SNAPSHOT_KEY = "live_session_backup"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def stale_window() -> timedelta:
    """How long an active session may sit before it is presumed abandoned."""
    return timedelta(hours=STALE_SESSION_HOURS)


def configure_logging(level: Optional[str] = None) -> None:
    """Set up root logging the same way for the CLI and scripts."""
    logging.basicConfig(
        level=getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO),
        format=LOG_FORMAT,
    )
