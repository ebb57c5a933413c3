"""
Live session core — roster rotation, game ledger, and crash-safe session control
for pickup-basketball runs.
"""

from live_session.errors import (
    LiveSessionError,
    InvariantViolation,
    RosterInputError,
    TooManyStayers,
    TooFewStayers,
    WrongJoinerCount,
    InsufficientBench,
    TeamSizeMismatch,
    UnknownPlayer,
    NotEnoughPlayers,
    DuplicatePlayer,
    EmptyLedger,
    StaleSession,
    SessionNotActive,
    RosterNotReady,
    PlannerStateError,
    PersistenceError,
)
from live_session.roster import RosterState
from live_session.ledger import GameLedger, PlayerTotals
from live_session.planner import PlannerStage, RotationPlanner
from live_session.snapshots import LiveSnapshot, SnapshotStore
from live_session.controller import GameOutcome, SessionController, SessionPhase

__all__ = [
    "LiveSessionError",
    "InvariantViolation",
    "RosterInputError",
    "TooManyStayers",
    "TooFewStayers",
    "WrongJoinerCount",
    "InsufficientBench",
    "TeamSizeMismatch",
    "UnknownPlayer",
    "NotEnoughPlayers",
    "DuplicatePlayer",
    "EmptyLedger",
    "StaleSession",
    "SessionNotActive",
    "RosterNotReady",
    "PlannerStateError",
    "PersistenceError",
    "RosterState",
    "GameLedger",
    "PlayerTotals",
    "PlannerStage",
    "RotationPlanner",
    "LiveSnapshot",
    "SnapshotStore",
    "GameOutcome",
    "SessionController",
    "SessionPhase",
]
