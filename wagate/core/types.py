"""
Core type definitions for wagate.

This module contains the enums shared by the lifecycle manager, the HTTP
routes and the tests.
"""

from enum import Enum
from typing import Literal


class SessionStatus(str, Enum):
    """
    Lifecycle state of one session.

    A session with persisted metadata but no live runtime is reported as
    STOPPED.
    """

    STARTING = "starting"
    OPEN = "open"
    RECONNECTING = "reconnecting"
    LOGGED_OUT = "logged_out"
    STOPPED = "stopped"


class Role(str, Enum):
    """Caller role resolved from the API key."""

    ADMIN = "admin"
    USER = "user"


class StopMode(str, Enum):
    """What a DELETE on a session tears down."""

    RUNTIME = "runtime"
    CREDS = "creds"
    META = "meta"
    ALL = "all"


# Type alias for user-friendly type hints
StopModeOptions = Literal["runtime", "creds", "meta", "all"]


def validate_stop_mode(mode: str) -> StopMode:
    """
    Validate and convert a stop mode string to StopMode enum.

    Raises:
        ValueError: If mode is not supported
    """
    try:
        return StopMode(mode.lower())
    except ValueError:
        valid_options = [m.value for m in StopMode]
        raise ValueError(
            f"Unsupported stop mode: {mode}. Supported modes: {valid_options}"
        ) from None
