"""
Rate limiting and anti-spam dependencies.

Limits are keyed by API key. Counters live on ``app.state.request_limits``;
when no limits are configured the dependencies are no-ops.
"""

from fastapi import Depends, HTTPException, Request, Response

from wagate.api.limits import RequestLimits
from wagate.core.auth import AuthContext
from wagate.core.logging.logger import get_logger

from .auth_dependencies import require_auth


def _get_limits(request: Request) -> RequestLimits | None:
    return getattr(request.app.state, "request_limits", None)


async def rate_limit(
    request: Request,
    response: Response,
    auth: AuthContext = Depends(require_auth),
) -> None:
    """Fixed-window request limit per API key (``X-RateLimit-*`` headers)."""
    limits = _get_limits(request)
    if limits is None:
        return

    result = limits.rate.hit(auth.key or "anonymous")
    headers = result.headers("X-RateLimit")
    if not result.allowed:
        get_logger(__name__).warning(f"Rate limit exceeded on {request.url.path}")
        raise HTTPException(status_code=429, detail="Too many requests", headers=headers)
    response.headers.update(headers)


async def anti_spam(
    request: Request,
    response: Response,
    auth: AuthContext = Depends(require_auth),
) -> None:
    """
    Per-recipient cooldown and per-key send quota for message routes.

    The recipient is read from the ``to`` field of the JSON or form body.
    """
    limits = _get_limits(request)
    if limits is None:
        return
    key = auth.key or "anonymous"

    recipient = ""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith(("multipart/form-data", "application/x-www-form-urlencoded")):
        # Starlette caches the parsed form on the request
        body = dict((await request.form()).items())
    else:
        try:
            body = await request.json()
        except ValueError:
            body = None
    if isinstance(body, dict) and body.get("to"):
        recipient = str(body["to"])

    if recipient:
        retry_after = limits.cooldown.check(key, recipient)
        if retry_after:
            raise HTTPException(
                status_code=429,
                detail={"error": "Recipient cooldown", "retryAfter": retry_after},
                headers={"Retry-After": str(retry_after)},
            )

    result = limits.quota.hit(key)
    headers = result.headers("X-Quota")
    if not result.allowed:
        raise HTTPException(status_code=429, detail="Quota exceeded", headers=headers)
    response.headers.update(headers)
