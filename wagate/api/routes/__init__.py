"""API routes module for wagate."""

from .admin import router as admin_router
from .health import router as health_router
from .media_upload import router as media_upload_router
from .messages import router as messages_router
from .qr import router as qr_router
from .sessions import router as sessions_router
from .webhooks import router as webhooks_router

__all__ = [
    "admin_router",
    "health_router",
    "media_upload_router",
    "messages_router",
    "qr_router",
    "sessions_router",
    "webhooks_router",
]
