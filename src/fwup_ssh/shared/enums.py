"""Domain enumerations used across all modules."""

from __future__ import annotations

from enum import Enum, IntEnum, unique


@unique
class SessionPhase(str, Enum):
    """Lifecycle states for one fwup channel session."""

    AWAITING_OPEN = "awaiting_open"
    RUNNING = "running"
    TERMINATING = "terminating"
    CLOSED = "closed"


@unique
class StreamId(IntEnum):
    """SSH channel data streams."""

    STDOUT = 0
    STDERR = 1
