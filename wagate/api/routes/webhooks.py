"""
Webhook configuration endpoint.

POST /api/webhooks/configure replaces a session's webhook target at runtime
and persists it to the registry.
"""

from fastapi import APIRouter, Depends

from wagate.api.dependencies.auth_dependencies import get_session_manager, require_auth
from wagate.api.dependencies.limit_dependencies import rate_limit
from wagate.api.models import WebhookConfigureRequest, WebhookConfigureResponse
from wagate.api.utils.error_helpers import http_error_for
from wagate.core.auth import AuthContext
from wagate.core.exceptions import GatewayError
from wagate.core.logging.context import set_request_context
from wagate.sessions.manager import SessionLifecycleManager

router = APIRouter(prefix="/webhooks", tags=["Webhooks"], dependencies=[Depends(rate_limit)])


@router.post("/configure", response_model=WebhookConfigureResponse)
async def configure_webhook(
    request: WebhookConfigureRequest,
    auth: AuthContext = Depends(require_auth),
    manager: SessionLifecycleManager = Depends(get_session_manager),
) -> WebhookConfigureResponse:
    set_request_context(session_id=request.session_id)
    try:
        target = await manager.configure_webhook(
            request.session_id,
            url=request.url,
            secret=request.secret,
            enabled=request.enabled,
            auth=auth,
        )
    except GatewayError as e:
        raise http_error_for(e) from e

    return WebhookConfigureResponse(webhook=target.model_dump(by_alias=True))
