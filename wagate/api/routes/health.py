"""
Health check endpoints.

Unauthenticated; only aggregate session counts are exposed.
"""

import time
from collections import Counter
from typing import Any

from fastapi import APIRouter, Depends

from wagate.api.dependencies.auth_dependencies import get_session_manager
from wagate.core.config.settings import settings
from wagate.core.types import SessionStatus
from wagate.sessions.manager import SessionLifecycleManager
from wagate.sessions.models import SessionView

router = APIRouter(prefix="/health", tags=["Health"])

_started_at = time.time()

CLOSED_STATUSES = {SessionStatus.LOGGED_OUT.value, SessionStatus.RECONNECTING.value}


def derive_health(sessions: list[SessionView]) -> tuple[str, str]:
    """
    Overall status from session states.

    Returns:
        (status, reason): ``ok`` or ``degraded`` with a short reason code
    """
    if not sessions:
        return "ok", "no-sessions"
    statuses = {view.status for view in sessions}
    if statuses & CLOSED_STATUSES:
        return "degraded", "some-closed"
    if SessionStatus.STARTING.value in statuses:
        return "degraded", "starting"
    return "ok", "all-open-or-idle"


@router.get("")
async def health_check(
    manager: SessionLifecycleManager = Depends(get_session_manager),
) -> dict[str, Any]:
    sessions = manager.list_sessions()
    status, reason = derive_health(sessions)
    return {
        "status": status,
        "reason": reason,
        "timestamp": time.time(),
        "uptimeSec": round(time.time() - _started_at),
        "environment": settings.environment,
        "version": settings.version,
        "sessions": {
            "total": len(sessions),
            "live": manager.live_count,
            "byStatus": dict(Counter(view.status for view in sessions)),
        },
    }


@router.get("/live")
async def liveness() -> dict[str, Any]:
    return {"live": True}


@router.get("/ready")
async def readiness(
    manager: SessionLifecycleManager = Depends(get_session_manager),
) -> dict[str, Any]:
    status, _ = derive_health(manager.list_sessions())
    return {"ready": True, "status": status}


@router.get("/ping")
async def ping() -> dict[str, Any]:
    return {"pong": True, "ts": int(time.time() * 1000)}
