"""Exceptions raised by the signal engine.

Market outcomes (rejected or filtered trades) are never exceptions; these
are reserved for defects the caller must see.
"""


class SignalEngineError(Exception):
    """Base class for engine defects."""


class LevelInvariantError(SignalEngineError):
    """Computed entry / stop-loss / take-profit levels are mis-ordered."""
