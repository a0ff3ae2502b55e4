"""
Runtime administration endpoints (admin key only).

GET  /api/admin/config           current rate limit and default webhook
POST /api/admin/ratelimit        change the rate limit window and/or max
POST /api/admin/webhook-default  change the fallback webhook url and/or secret

Changes live in process memory only; a restart goes back to the settings.
"""

from fastapi import APIRouter, Depends, HTTPException, Request

from wagate.api.dependencies.auth_dependencies import get_session_manager, require_admin
from wagate.api.limits import RequestLimits
from wagate.api.models import (
    AdminConfigResponse,
    RateLimitConfig,
    RateLimitUpdateRequest,
    RateLimitUpdateResponse,
    WebhookDefaultConfig,
    WebhookDefaultUpdateRequest,
    WebhookDefaultUpdateResponse,
)
from wagate.core.logging.logger import get_logger
from wagate.sessions.manager import SessionLifecycleManager

router = APIRouter(prefix="/admin", tags=["Admin"], dependencies=[Depends(require_admin)])


def _get_limits(request: Request) -> RequestLimits:
    limits = getattr(request.app.state, "request_limits", None)
    if limits is None:
        raise HTTPException(status_code=503, detail="Request limits not initialized")
    return limits


def _rate_limit_config(limits: RequestLimits) -> RateLimitConfig:
    return RateLimitConfig(
        window_ms=round(limits.rate.window_seconds * 1000), max=limits.rate.max_hits
    )


def _webhook_default_config(manager: SessionLifecycleManager) -> WebhookDefaultConfig:
    return WebhookDefaultConfig(
        url=manager.default_webhook.url, secret=manager.default_webhook.secret
    )


@router.get("/config", response_model=AdminConfigResponse)
async def get_config(
    http_request: Request,
    manager: SessionLifecycleManager = Depends(get_session_manager),
) -> AdminConfigResponse:
    return AdminConfigResponse(
        rate_limit=_rate_limit_config(_get_limits(http_request)),
        webhook_default=_webhook_default_config(manager),
    )


@router.post("/ratelimit", response_model=RateLimitUpdateResponse)
async def update_rate_limit(
    request: RateLimitUpdateRequest,
    http_request: Request,
) -> RateLimitUpdateResponse:
    """Omitted fields keep their current value; running windows keep their reset time."""
    limits = _get_limits(http_request)
    if request.window_ms is not None:
        limits.rate.window_seconds = request.window_ms / 1000
    if request.max is not None:
        limits.rate.max_hits = request.max

    config = _rate_limit_config(limits)
    get_logger(__name__).info(
        f"Rate limit updated: max={config.max} window={config.window_ms}ms"
    )
    return RateLimitUpdateResponse(rate_limit=config)


@router.post("/webhook-default", response_model=WebhookDefaultUpdateResponse)
async def update_webhook_default(
    request: WebhookDefaultUpdateRequest,
    manager: SessionLifecycleManager = Depends(get_session_manager),
) -> WebhookDefaultUpdateResponse:
    """Sessions without their own webhook follow the new default right away."""
    manager.set_default_webhook(url=request.url, secret=request.secret)
    return WebhookDefaultUpdateResponse(webhook_default=_webhook_default_config(manager))
