"""
Ephemeral QR payload cache with TTL.

Holds the latest QR challenge per session; entries expire with the
protocol's own rotation window and are replaced on every new challenge.
"""

import logging
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)


class QRCache:
    """
    In-memory session id → QR payload store.

    Expiration is checked lazily on read, so no background cleanup task is
    needed for what is at most one entry per session.
    """

    def __init__(self, ttl_seconds: float = 60, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[str, float]] = {}

    def set(self, session_id: str, qr: str, ttl: float | None = None) -> None:
        expires_at = self._clock() + (ttl if ttl is not None else self.ttl_seconds)
        self._entries[session_id] = (qr, expires_at)

    def get(self, session_id: str) -> str | None:
        entry = self._entries.get(session_id)
        if entry is None:
            return None
        qr, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[session_id]
            return None
        return qr

    def delete(self, session_id: str) -> None:
        self._entries.pop(session_id, None)
