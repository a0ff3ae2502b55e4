"""
Rich-based logging for wagate.

Every message written through a ContextLogger carries a ``[S:<session>]``
and ``[O:<owner>]`` prefix taken from the current context variables, so log
lines of many concurrent sessions can be told apart.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

from wagate.core.config.settings import settings

from .context import get_current_owner_context, get_current_session_context

VALID_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

# Third-party loggers that are too chatty at INFO
QUIET_LOGGERS = ("socketio", "engineio", "aiohttp.access", "uvicorn.access")

_console = Console(
    theme=Theme({"info": "cyan", "warning": "yellow", "error": "bold red", "debug": "dim white"})
)


class CompactFormatter(logging.Formatter):
    """Shortens ``wagate.<pkg>.<module>`` logger names to ``<pkg>.<module>``."""

    def format(self, record):
        if record.name.startswith("wagate."):
            record.name = ".".join(record.name.split(".")[-2:])
        return super().format(record)


class ContextLogger:
    """
    Wrapper around a stdlib logger that prefixes session and owner ids.

    Explicit ids given at construction are fallbacks; the context variables
    of the running task win when set. Owner ids are shortened to 8 chars.
    """

    def __init__(
        self,
        logger: logging.Logger,
        session_id: str | None = None,
        owner_id: str | None = None,
    ):
        self.logger = logger
        self.session_id = session_id
        self.owner_id = owner_id

    def _prefix(self) -> str:
        session_id = get_current_session_context() or self.session_id
        owner_id = get_current_owner_context() or self.owner_id
        prefix = f"[S:{session_id}]" if session_id else ""
        if owner_id:
            prefix += f"[O:{owner_id[:8]}]"
        return prefix

    def _log(self, level: int, message: str, *args, **kwargs) -> None:
        if not self.logger.isEnabledFor(level):
            return
        prefix = self._prefix()
        self.logger.log(level, f"{prefix} {message}" if prefix else message, *args, **kwargs)

    def debug(self, message: str, *args, **kwargs) -> None:
        self._log(logging.DEBUG, message, *args, **kwargs)

    def info(self, message: str, *args, **kwargs) -> None:
        self._log(logging.INFO, message, *args, **kwargs)

    def warning(self, message: str, *args, **kwargs) -> None:
        self._log(logging.WARNING, message, *args, **kwargs)

    def error(self, message: str, *args, **kwargs) -> None:
        self._log(logging.ERROR, message, *args, **kwargs)


def setup_logging(level: str = "INFO", log_dir: str | None = None) -> None:
    """
    Configure the root logger.

    Args:
        level: DEBUG, INFO, WARNING or ERROR (anything else falls back to INFO)
        log_dir: When given, also append to ``<log_dir>/wagate_<YYYYMMDD>.log``
    """
    lvl = level.upper() if level.upper() in VALID_LEVELS else "INFO"

    console_handler = RichHandler(
        console=_console,
        rich_tracebacks=True,
        show_time=True,
        show_level=True,
        markup=False,
    )
    # RichHandler renders time and level itself
    console_handler.setFormatter(CompactFormatter("[%(name)s] %(message)s"))
    handlers: list[logging.Handler] = [console_handler]

    if log_dir:
        directory = Path(log_dir)
        directory.mkdir(parents=True, exist_ok=True)
        logfile = directory / f"wagate_{datetime.now():%Y%m%d}.log"
        file_handler = logging.FileHandler(logfile, encoding="utf-8")
        file_handler.setFormatter(
            CompactFormatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
        )
        handlers.append(file_handler)
        _console.print(f"[green]Logging to console and {logfile}[/]")

    logging.basicConfig(level=lvl, handlers=handlers, force=True)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger("wagate.logging").info(f"Logging initialized ({lvl})")


def setup_app_logging() -> None:
    """Configure logging from settings; file logging only in development."""
    setup_logging(
        level=settings.log_level,
        log_dir=settings.log_dir if settings.is_development else None,
    )


def get_logger(name: str) -> ContextLogger:
    """Logger for ``name`` (usually ``__name__``) that picks up the request context."""
    return ContextLogger(logging.getLogger(name))


def get_app_logger() -> ContextLogger:
    """Logger for application-wide events (startup, shutdown)."""
    return get_logger("wagate.app")


def get_session_logger(name: str, session_id: str) -> ContextLogger:
    """
    Logger bound to one gateway session.

    Used for work done on behalf of a session outside a request, such as
    adapter events and reconnect timers.
    """
    return ContextLogger(logging.getLogger(name), session_id=session_id)
