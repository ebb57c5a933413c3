"""
Live Session Error Types — Structured exception hierarchy.

Lets callers tell operator input problems (re-prompt with the exact deficit)
apart from store failures (retry the same command).
"""

from typing import Optional


class LiveSessionError(Exception):
    """Base class for all live-session errors."""
    pass


class InvariantViolation(LiveSessionError):
    """Roster partition or ledger numbering is broken. Programmer error, never operator-facing."""
    pass


class RosterInputError(LiveSessionError):
    """Operator selection was rejected. Recoverable: re-prompt.

    `needed` carries the count the operator still has to fix, when there is one.
    """

    def __init__(self, message: str, needed: Optional[int] = None):
        super().__init__(message)
        self.needed = needed


class TooManyStayers(RosterInputError):
    """More losing-team players kept than the winning team has."""
    pass


class TooFewStayers(RosterInputError):
    """No one kept from the losing team while the bench cannot field a full side."""
    pass


class WrongJoinerCount(RosterInputError):
    """Bench selection does not match the number of open spots."""
    pass


class InsufficientBench(RosterInputError):
    """The bench cannot fill the open spots."""
    pass


class TeamSizeMismatch(RosterInputError):
    """Teams picked for a game are empty or of different sizes."""
    pass


class UnknownPlayer(RosterInputError):
    """A selected name is not in the group it was picked from."""
    pass


class NotEnoughPlayers(RosterInputError):
    """Too few players to start a live session."""
    pass


class DuplicatePlayer(RosterInputError):
    """Player name already exists in this session."""
    pass


class EmptyLedger(LiveSessionError):
    """Undo requested with no games recorded. Treated as a disabled action upstream."""
    pass


class StaleSession(LiveSessionError):
    """Resume target was too old and has been marked abandoned."""

    def __init__(self, message: str, session_id: Optional[str] = None):
        super().__init__(message)
        self.session_id = session_id


class SessionNotActive(LiveSessionError):
    """Command needs an active session and there is none (or it has ended)."""
    pass


class RosterNotReady(LiveSessionError):
    """A winner was reported before both teams were set."""
    pass


class PlannerStateError(LiveSessionError):
    """A rotation step was called out of order."""
    pass


class PersistenceError(LiveSessionError):
    """Record store call failed. Retryable: nothing in memory was committed."""
    pass
