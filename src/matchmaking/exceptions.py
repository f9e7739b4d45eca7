"""
Exceptions raised by matchmaking stores and collaborators.

The engine catches all of these at its boundary; they exist so the degraded
paths can be told apart in logs and tests.
"""


class MatchmakingError(Exception):
    """Base class for matchmaking errors."""


class TransientLookupFailure(MatchmakingError):
    """A backing store could not be reached or returned unreadable data."""


class GenerationFailure(MatchmakingError):
    """The text generator failed or returned nothing usable."""


class ConflictOnInsert(MatchmakingError):
    """A unique-keyed insert lost to a concurrent writer."""


class InvalidTransition(MatchmakingError):
    """A weekly drop transition is not allowed from the row's current state."""
