"""
Authentication and service dependencies.

The API key is resolved once per request into an AuthContext that routes
pass on to every lifecycle manager call.
"""

from fastapi import Depends, HTTPException, Request

from wagate.core.auth import AuthContext, resolve_api_key
from wagate.core.config.settings import settings
from wagate.core.logging.context import set_request_context
from wagate.sessions.manager import SessionLifecycleManager


def extract_api_key(request: Request) -> str | None:
    """API key from ``X-API-Key``, the ``api_key`` query param or a Bearer token."""
    header = (request.headers.get("x-api-key") or "").strip()
    if header:
        return header
    query = (request.query_params.get("api_key") or "").strip()
    if query:
        return query
    authorization = request.headers.get("authorization") or ""
    if authorization.startswith("Bearer "):
        return authorization[7:].strip() or None
    return None


async def require_auth(request: Request) -> AuthContext:
    """
    Resolve the caller.

    Raises:
        HTTPException 401: Missing or unknown API key
    """
    api_key = extract_api_key(request)
    if not api_key:
        raise HTTPException(status_code=401, detail="Missing X-API-Key")

    auth = resolve_api_key(api_key, settings.admin_api_key, settings.user_api_keys)
    if auth is None:
        raise HTTPException(status_code=401, detail="Invalid X-API-Key")

    request.state.auth = auth
    set_request_context(owner_id=auth.owner_id or "admin")
    return auth


async def get_session_manager(request: Request) -> SessionLifecycleManager:
    """Lifecycle manager created by GatewayCorePlugin at startup."""
    manager = getattr(request.app.state, "session_manager", None)
    if manager is None:
        raise HTTPException(status_code=503, detail="Session manager not initialized")
    return manager


async def require_admin(auth: AuthContext = Depends(require_auth)) -> AuthContext:
    """
    Resolve the caller and insist on the admin key.

    Raises:
        HTTPException 403: Caller holds a user key
    """
    if not auth.is_admin:
        raise HTTPException(status_code=403, detail="Admin only")
    return auth
