"""Webhook delivery: signing, templating, circuit breaking and dispatch."""

from .circuit import CircuitBreaker, CircuitState
from .dispatcher import (
    ActionContext,
    DeliveryResult,
    WebhookDeliveryError,
    WebhookDispatcher,
    WebhookOptions,
)
from .signing import sign_payload, verify_signature
from .templating import render_deep, render_template

__all__ = [
    "ActionContext",
    "CircuitBreaker",
    "CircuitState",
    "DeliveryResult",
    "WebhookDeliveryError",
    "WebhookDispatcher",
    "WebhookOptions",
    "render_deep",
    "render_template",
    "sign_payload",
    "verify_signature",
]
