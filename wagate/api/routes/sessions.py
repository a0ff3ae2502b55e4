"""
Session control endpoints.

- GET    /api/sessions            list (admins: all, users: their own)
- POST   /api/sessions            create and start (idempotent per id)
- GET    /api/sessions/{id}       status, identity and pending QR
- DELETE /api/sessions/{id}       stop with mode runtime|creds|meta|all
"""

from fastapi import APIRouter, Depends, HTTPException, Query

from wagate.api.dependencies.auth_dependencies import get_session_manager, require_auth
from wagate.api.dependencies.limit_dependencies import rate_limit
from wagate.api.models import (
    CreateSessionRequest,
    CreateSessionResponse,
    SessionDetailResponse,
    SessionListResponse,
    StopSessionResponse,
)
from wagate.api.utils.error_helpers import http_error_for
from wagate.core.auth import AuthContext
from wagate.core.exceptions import GatewayError, SessionNotFoundError
from wagate.core.logging.context import set_request_context
from wagate.core.logging.logger import get_logger
from wagate.core.types import StopModeOptions
from wagate.sessions.manager import SessionLifecycleManager

router = APIRouter(
    prefix="/sessions",
    tags=["Sessions"],
    dependencies=[Depends(rate_limit)],
    responses={
        401: {"description": "Missing or invalid API key"},
        403: {"description": "Session owned by another key"},
        404: {"description": "Session not found"},
        429: {"description": "Rate limited"},
    },
)


@router.get("", response_model=SessionListResponse, response_model_by_alias=True)
async def list_sessions(
    auth: AuthContext = Depends(require_auth),
    manager: SessionLifecycleManager = Depends(get_session_manager),
) -> SessionListResponse:
    return SessionListResponse(items=manager.list_sessions(auth))


@router.post("", response_model=CreateSessionResponse)
async def create_session(
    request: CreateSessionRequest,
    auth: AuthContext = Depends(require_auth),
    manager: SessionLifecycleManager = Depends(get_session_manager),
) -> CreateSessionResponse:
    """
    Create a session and start connecting.

    Returns immediately with status ``starting``; the QR challenge arrives
    on the subscriber bus and through GET /api/sessions/{id}.
    """
    logger = get_logger(__name__)
    try:
        view = await manager.create_session(
            session_id=request.id,
            label=request.label,
            auto_start=request.auto_start,
            owner_id=request.owner_id if auth.is_admin else None,
            webhook_url=request.webhook_url,
            webhook_secret=request.webhook_secret,
            auth=auth,
        )
    except GatewayError as e:
        logger.error(f"Failed to create session {request.id}: {e}")
        raise http_error_for(e) from e

    logger.info(f"Session {view.id} created ({view.status})")
    return CreateSessionResponse(id=view.id, status=view.status)


@router.get("/{session_id}", response_model=SessionDetailResponse)
async def get_session(
    session_id: str,
    auth: AuthContext = Depends(require_auth),
    manager: SessionLifecycleManager = Depends(get_session_manager),
) -> SessionDetailResponse:
    set_request_context(session_id=session_id)
    try:
        manager.authorize(auth, session_id)
        view = manager.get_session(session_id)
        if view is None:
            raise SessionNotFoundError(session_id)
    except GatewayError as e:
        raise http_error_for(e) from e

    return SessionDetailResponse(
        id=view.id, status=view.status, me=view.me, qr=manager.get_qr(session_id)
    )


@router.delete("/{session_id}", response_model=StopSessionResponse)
async def stop_session(
    session_id: str,
    mode: StopModeOptions = Query(default="runtime"),
    auth: AuthContext = Depends(require_auth),
    manager: SessionLifecycleManager = Depends(get_session_manager),
) -> StopSessionResponse:
    set_request_context(session_id=session_id)
    try:
        steps = await manager.stop(session_id, mode, auth=auth)
    except GatewayError as e:
        raise http_error_for(e) from e
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    get_logger(__name__).info(f"Session stopped (mode={mode}): {steps}")
    return StopSessionResponse(id=session_id, mode=mode, steps=steps)
