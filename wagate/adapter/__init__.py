"""
Protocol adapter boundary: the opaque messaging engine contract.
"""

from .interface import (
    AdapterConnection,
    AdapterEvent,
    AdapterFactory,
    ConnectionClosed,
    ConnectionOpened,
    CredentialState,
    CredentialsUpdated,
    DisconnectReason,
    MessagesReceived,
    QRChallenge,
)
from .loader import load_adapter_factory

__all__ = [
    "AdapterConnection",
    "AdapterEvent",
    "AdapterFactory",
    "ConnectionClosed",
    "ConnectionOpened",
    "CredentialState",
    "CredentialsUpdated",
    "DisconnectReason",
    "MessagesReceived",
    "QRChallenge",
    "load_adapter_factory",
]
