"""
Session data models.

SessionMeta is the persisted record, SessionView the read-only snapshot
handed out by the lifecycle manager, and SessionRuntime the in-memory state
that only the manager touches.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from wagate.core.types import SessionStatus

from .queue import OutboundQueue

if TYPE_CHECKING:
    from wagate.adapter.interface import AdapterConnection, CredentialState


def now_ms() -> int:
    """Current wall clock in epoch milliseconds."""
    return int(time.time() * 1000)


class _CamelModel(BaseModel):
    """Base model serialising with camelCase keys, accepting either form."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SessionMeta(_CamelModel):
    """Persisted metadata of one session (registry record)."""

    id: str
    label: str
    auto_start: bool = True
    webhook_url: str | list[str] = ""
    webhook_secret: str | list[str] = ""
    owner_id: str | None = None
    created_at: int = Field(default_factory=now_ms)


class WebhookTarget(_CamelModel):
    """Webhook configuration a runtime delivers its events to."""

    url: str | list[str] = ""
    secret: str | list[str] = ""
    enabled: bool = True

    @property
    def targets(self) -> list[str]:
        if not self.enabled:
            return []
        urls = self.url if isinstance(self.url, list) else [self.url]
        return [u for u in urls if u]


class SessionView(_CamelModel):
    """Snapshot of a session merged from registry metadata and runtime state."""

    id: str
    status: SessionStatus = SessionStatus.STOPPED
    label: str
    auto_start: bool = True
    webhook_url: str | list[str] = ""
    webhook_secret: str | list[str] = ""
    owner_id: str | None = None
    created_at: int | None = None
    me: dict[str, Any] | None = None
    push_name: str | None = None
    last_connected_at: int | None = None
    attempts: int = 0
    # seconds until the pending reconnect attempt, while reconnecting
    next_reconnect_delay: float | None = None

    model_config = ConfigDict(use_enum_values=True)


@dataclass
class SessionRuntime:
    """
    Live state of a started session.

    Exclusively owned by the lifecycle manager. The adapter connection is
    owned by the runtime: closing the runtime ends the connection.
    """

    id: str
    webhook: WebhookTarget
    credentials: CredentialState
    status: SessionStatus = SessionStatus.STARTING
    me: dict[str, Any] | None = None
    push_name: str | None = None
    last_connected_at: int | None = None
    attempts: int = 0
    queue: OutboundQueue = field(default_factory=OutboundQueue)
    connection: AdapterConnection | None = None
    reconnect_task: asyncio.Task | None = None
    next_reconnect_delay: float | None = None
    event_task: asyncio.Task | None = None
    stopped: bool = False

    def view(self, meta: SessionMeta | None) -> SessionView:
        """Build a snapshot, runtime fields overriding the registry defaults."""
        return SessionView(
            id=self.id,
            status=self.status,
            label=(meta.label if meta else None) or self.id,
            auto_start=meta.auto_start if meta else True,
            webhook_url=meta.webhook_url if meta else "",
            webhook_secret=meta.webhook_secret if meta else "",
            owner_id=meta.owner_id if meta else None,
            created_at=meta.created_at if meta else None,
            me=self.me,
            push_name=self.push_name,
            last_connected_at=self.last_connected_at,
            attempts=self.attempts,
            next_reconnect_delay=self.next_reconnect_delay,
        )
