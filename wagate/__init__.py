"""
wagate - multi-tenant messaging session gateway.

Runs many independent messaging-protocol sessions in one process and exposes
them over HTTP, webhooks and a Socket.IO subscriber bus.
"""

from .core.config.settings import settings
from .core.factory import GatewayBuilder, GatewayPlugin
from .core.gateway_app import Gateway

__version__ = settings.version

__all__ = [
    "Gateway",
    "GatewayBuilder",
    "GatewayPlugin",
]
