"""
Outbound message endpoints.

Every route turns its payload into an action and hands it to the session's
outbound queue; the response is returned once the adapter has accepted (or
rejected) the send.

Router configuration:
- Prefix: /messages (mounted under /api)
- Guards: API key, rate limit, recipient cooldown and send quota
"""

from typing import Any

import aiohttp
from fastapi import APIRouter, Depends, HTTPException

from wagate.api.dependencies.auth_dependencies import get_session_manager, require_auth
from wagate.api.dependencies.limit_dependencies import anti_spam, rate_limit
from wagate.api.models import (
    ButtonsMessageRequest,
    ForwardMessageRequest,
    GifMessageRequest,
    ListMessageRequest,
    LocationMessageRequest,
    MediaMessageRequest,
    MessageRequest,
    MessageResult,
    PollMessageRequest,
    RawMessageRequest,
    StickerMessageRequest,
    TextMessageRequest,
    VCardMessageRequest,
)
from wagate.api.utils.error_helpers import http_error_for
from wagate.core.auth import AuthContext
from wagate.core.exceptions import GatewayError
from wagate.core.logging.context import set_request_context
from wagate.core.logging.logger import get_logger
from wagate.sessions.manager import SessionLifecycleManager

router = APIRouter(
    prefix="/messages",
    tags=["Messages"],
    dependencies=[Depends(rate_limit), Depends(anti_spam)],
    responses={
        400: {"description": "Invalid message"},
        404: {"description": "Session not found"},
        409: {"description": "Session not connected"},
        429: {"description": "Rate limited, cooldown or quota exceeded"},
        502: {"description": "Send or media fetch failed"},
    },
)


async def _send(
    manager: SessionLifecycleManager,
    auth: AuthContext,
    request: MessageRequest,
    action: dict[str, Any],
) -> MessageResult:
    set_request_context(session_id=request.session_id)
    logger = get_logger(__name__)
    action = {"to": request.to, **action}

    try:
        await manager.execute_action(request.session_id, action, auth=auth)
    except GatewayError as e:
        raise http_error_for(e) from e
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except aiohttp.ClientError as e:
        logger.error(f"Media fetch failed for {action['type']}: {e}")
        raise HTTPException(status_code=502, detail=f"Media fetch failed: {e}") from e
    except Exception as e:
        logger.error(f"Send failed for {action['type']} to {request.to}: {e}")
        raise HTTPException(status_code=502, detail=f"Send failed: {e}") from e

    logger.info(f"Sent {action['type']} to {request.to}")
    return MessageResult()


@router.post("/text", response_model=MessageResult)
async def send_text(
    request: TextMessageRequest,
    auth: AuthContext = Depends(require_auth),
    manager: SessionLifecycleManager = Depends(get_session_manager),
) -> MessageResult:
    return await _send(
        manager, auth, request, {"type": "text", "text": request.text, "mentions": request.mentions}
    )


@router.post("/media", response_model=MessageResult)
async def send_media(
    request: MediaMessageRequest,
    auth: AuthContext = Depends(require_auth),
    manager: SessionLifecycleManager = Depends(get_session_manager),
) -> MessageResult:
    """Image, video, audio (voice note) or document by URL."""
    if request.media_type == "document":
        action = {
            "type": "document",
            "url": request.media_url,
            "filename": request.filename,
            "caption": request.caption,
        }
    else:
        action = {
            "type": "media",
            "mediaType": request.media_type,
            "url": request.media_url,
            "caption": request.caption,
        }
    return await _send(manager, auth, request, action)


@router.post("/location", response_model=MessageResult)
async def send_location(
    request: LocationMessageRequest,
    auth: AuthContext = Depends(require_auth),
    manager: SessionLifecycleManager = Depends(get_session_manager),
) -> MessageResult:
    return await _send(
        manager,
        auth,
        request,
        {
            "type": "location",
            "lat": request.lat,
            "lng": request.lng,
            "name": request.name,
            "address": request.address,
        },
    )


@router.post("/vcard", response_model=MessageResult)
async def send_vcard(
    request: VCardMessageRequest,
    auth: AuthContext = Depends(require_auth),
    manager: SessionLifecycleManager = Depends(get_session_manager),
) -> MessageResult:
    contact = request.contact.model_dump(by_alias=True, exclude_none=True)
    return await _send(manager, auth, request, {"type": "vcard", "contact": contact})


@router.post("/gif", response_model=MessageResult)
async def send_gif(
    request: GifMessageRequest,
    auth: AuthContext = Depends(require_auth),
    manager: SessionLifecycleManager = Depends(get_session_manager),
) -> MessageResult:
    return await _send(
        manager,
        auth,
        request,
        {"type": "gif", "videoUrl": request.video_url, "caption": request.caption},
    )


@router.post("/sticker", response_model=MessageResult)
async def send_sticker(
    request: StickerMessageRequest,
    auth: AuthContext = Depends(require_auth),
    manager: SessionLifecycleManager = Depends(get_session_manager),
) -> MessageResult:
    if not request.image_url and not request.webp_url:
        raise HTTPException(status_code=400, detail="Provide imageUrl or webpUrl")
    return await _send(
        manager,
        auth,
        request,
        {"type": "sticker", "imageUrl": request.image_url, "webpUrl": request.webp_url},
    )


@router.post("/buttons", response_model=MessageResult)
async def send_buttons(
    request: ButtonsMessageRequest,
    auth: AuthContext = Depends(require_auth),
    manager: SessionLifecycleManager = Depends(get_session_manager),
) -> MessageResult:
    """Quick-reply template buttons; only the first three are sent."""
    return await _send(
        manager,
        auth,
        request,
        {
            "type": "buttons",
            "text": request.text,
            "footer": request.footer,
            "buttons": [button.model_dump(exclude_none=True) for button in request.buttons],
        },
    )


@router.post("/list", response_model=MessageResult)
async def send_list(
    request: ListMessageRequest,
    auth: AuthContext = Depends(require_auth),
    manager: SessionLifecycleManager = Depends(get_session_manager),
) -> MessageResult:
    return await _send(
        manager,
        auth,
        request,
        {
            "type": "list",
            "text": request.text,
            "title": request.title,
            "footer": request.footer,
            "buttonText": request.button_text,
            "sections": request.sections,
        },
    )


@router.post("/poll", response_model=MessageResult)
async def send_poll(
    request: PollMessageRequest,
    auth: AuthContext = Depends(require_auth),
    manager: SessionLifecycleManager = Depends(get_session_manager),
) -> MessageResult:
    return await _send(
        manager,
        auth,
        request,
        {
            "type": "poll",
            "name": request.name,
            "options": request.options,
            "selectableCount": request.selectable_count,
        },
    )


@router.post("/forward", response_model=MessageResult)
async def forward_message(
    request: ForwardMessageRequest,
    auth: AuthContext = Depends(require_auth),
    manager: SessionLifecycleManager = Depends(get_session_manager),
) -> MessageResult:
    return await _send(
        manager, auth, request, {"type": "forward", "message": request.message, "key": request.key}
    )


@router.post("/raw", response_model=MessageResult)
async def send_raw(
    request: RawMessageRequest,
    auth: AuthContext = Depends(require_auth),
    manager: SessionLifecycleManager = Depends(get_session_manager),
) -> MessageResult:
    """Protocol content passed through untouched."""
    return await _send(
        manager,
        auth,
        request,
        {"type": "raw", "message": request.message, "options": request.options},
    )
