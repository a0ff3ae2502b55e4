"""
Protocol adapter boundary.

The messaging protocol engine (handshake, encoding, QR generation) is an
external collaborator. The gateway only sees a factory that opens one
connection per session and a connection exposing a closed set of events, a
send primitive and a graceful end.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Protocol, runtime_checkable


class DisconnectReason(IntEnum):
    """Close codes reported by the protocol engine."""

    CONNECTION_CLOSED = 428
    CONNECTION_LOST = 408
    CONNECTION_REPLACED = 440
    TIMED_OUT = 408
    LOGGED_OUT = 401
    BAD_SESSION = 500
    RESTART_REQUIRED = 515
    MULTIDEVICE_MISMATCH = 411
    FORBIDDEN = 403
    UNAVAILABLE_SERVICE = 503


@dataclass
class CredentialState:
    """Credential material handed to the adapter when connecting."""

    session_id: str
    data: dict[str, Any] = field(default_factory=dict)
    is_new: bool = True


# ---------------------------------------------------------------------------
# Event variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class QRChallenge:
    """A new QR payload the tenant must scan to authenticate."""

    qr: str


@dataclass(frozen=True)
class ConnectionOpened:
    """Handshake succeeded; ``me`` is the authenticated identity."""

    me: dict[str, Any] | None = None


@dataclass(frozen=True)
class ConnectionClosed:
    """The connection ended; ``status_code`` classifies why."""

    status_code: int = 0
    reason: str | None = None

    @property
    def is_logged_out(self) -> bool:
        return self.status_code == DisconnectReason.LOGGED_OUT


@dataclass(frozen=True)
class CredentialsUpdated:
    """The adapter rotated credential material that must be persisted."""

    credentials: dict[str, Any]


@dataclass(frozen=True)
class MessagesReceived:
    """Inbound (or echoed) messages, in the protocol's raw shape."""

    messages: list[dict[str, Any]]


AdapterEvent = (
    QRChallenge | ConnectionOpened | ConnectionClosed | CredentialsUpdated | MessagesReceived
)


@runtime_checkable
class AdapterConnection(Protocol):
    """One live protocol connection owned by a session runtime."""

    @property
    def user(self) -> dict[str, Any] | None:
        """Authenticated identity, once the connection is open."""
        ...

    def events(self) -> AsyncIterator[AdapterEvent]:
        """
        Stream of connection events.

        The stream ends after a ConnectionClosed event, or when ``end()`` is
        called.
        """
        ...

    async def send(
        self,
        jid: str,
        content: dict[str, Any],
        options: dict[str, Any] | None = None,
    ) -> Any:
        """Send one message; failures raise."""
        ...

    async def end(self) -> None:
        """Close the connection without invalidating credentials."""
        ...


@runtime_checkable
class AdapterFactory(Protocol):
    """Opens protocol connections."""

    async def connect(
        self, session_id: str, credentials: CredentialState
    ) -> AdapterConnection:
        ...
