"""
Request context management using contextvars for automatic propagation.

The context is set once per request (API key owner) or per session task
(session id) and is picked up by every ContextLogger call in the same
async context without manual parameter passing.
"""

from contextvars import ContextVar

_owner_context: ContextVar[str | None] = ContextVar(
    "owner_id", default=None
)  # From API key authentication
_session_context: ContextVar[str | None] = ContextVar(
    "session_id", default=None
)  # From route params or the session's own tasks


def set_request_context(
    owner_id: str | None = None,
    session_id: str | None = None,
) -> None:
    """
    Set the logging context for the current async context.

    Args:
        owner_id: Owner identifier derived from the caller's API key
        session_id: Gateway session the current work belongs to
    """
    if owner_id is not None:
        _owner_context.set(owner_id)
    if session_id is not None:
        _session_context.set(session_id)


def get_current_owner_context() -> str | None:
    """Get the current owner ID from context variables."""
    return _owner_context.get()


def get_current_session_context() -> str | None:
    """Get the current session ID from context variables."""
    return _session_context.get()


def clear_request_context() -> None:
    """
    Clear the request context.

    Context is isolated per request and per task already; this is mostly
    useful in tests.
    """
    _owner_context.set(None)
    _session_context.set(None)
