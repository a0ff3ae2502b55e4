"""Session registry, runtime state and lifecycle management."""

from .auto_reply import AutoReplyResponder, AutoReplyRule
from .credentials import CredentialStore
from .manager import SessionLifecycleManager, new_session_id
from .models import SessionMeta, SessionRuntime, SessionView, WebhookTarget
from .qr_cache import QRCache
from .queue import OutboundQueue
from .reconnection import ReconnectionConfig, ReconnectionStrategy
from .registry import SessionRegistry

__all__ = [
    "AutoReplyResponder",
    "AutoReplyRule",
    "CredentialStore",
    "OutboundQueue",
    "QRCache",
    "ReconnectionConfig",
    "ReconnectionStrategy",
    "SessionLifecycleManager",
    "SessionMeta",
    "SessionRegistry",
    "SessionRuntime",
    "SessionView",
    "WebhookTarget",
    "new_session_id",
]
