"""
Batch media upload endpoint.

POST /api/messages/media/file takes one or more multipart files and sends
them to one recipient, in order, through the session's outbound queue,
pausing ``delayMs`` between files. Without files the ``text`` (or
``caption``) field is sent as a plain text message instead.

The response is 200 when every file went out and 207 when at least one
failed; per-file outcomes are listed in ``results``.
"""

import asyncio
import math

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import JSONResponse

from wagate.api.dependencies.auth_dependencies import get_session_manager, require_auth
from wagate.api.dependencies.limit_dependencies import anti_spam, rate_limit
from wagate.api.models import BatchSendData, BatchSendResponse, FileSendResult
from wagate.api.utils.error_helpers import http_error_for
from wagate.core.auth import AuthContext
from wagate.core.exceptions import GatewayError, SessionNotFoundError, SessionNotReadyError
from wagate.core.logging.context import set_request_context
from wagate.core.logging.logger import get_logger
from wagate.core.types import SessionStatus
from wagate.messaging.content import infer_media_type, jidify, media_content, resolve_mimetype
from wagate.sessions.manager import SessionLifecycleManager

DEFAULT_DELAY_MS = 1200
MIN_DELAY_MS = 300
MAX_DELAY_MS = 10000

router = APIRouter(
    prefix="/messages",
    tags=["Messages"],
    dependencies=[Depends(rate_limit), Depends(anti_spam)],
    responses={
        207: {"description": "Some files failed"},
        400: {"description": "No file and no text"},
        404: {"description": "Session not found"},
        409: {"description": "Session not connected"},
    },
)


def clamp_delay_ms(value: str | None) -> int:
    """Inter-file delay in ms: default 1200, bounded to 300..10000, junk -> 300."""
    if value is None or not value.strip():
        return DEFAULT_DELAY_MS
    try:
        number = float(value)
    except ValueError:
        return MIN_DELAY_MS
    if math.isnan(number):
        return MIN_DELAY_MS
    return int(min(max(number, MIN_DELAY_MS), MAX_DELAY_MS))


def _require_live(manager: SessionLifecycleManager, auth: AuthContext, session_id: str) -> None:
    try:
        manager.authorize(auth, session_id)
        if not manager.is_live(session_id):
            if manager.get_session(session_id) is None:
                raise SessionNotFoundError(session_id)
            raise SessionNotReadyError(session_id, SessionStatus.STOPPED.value)
    except GatewayError as e:
        raise http_error_for(e) from e


@router.post("/media/file", response_model=BatchSendResponse, response_model_exclude_none=True)
async def send_media_files(
    session_id: str = Form(..., alias="sessionId", min_length=1),
    to: str = Form(..., min_length=1),
    caption: str | None = Form(None),
    captions: list[str] | None = Form(None, description="Per-file captions, by index"),
    delay_ms: str | None = Form(None, alias="delayMs"),
    media_type: str | None = Form(
        None, alias="mediaType", description="image, video, audio, document or gif"
    ),
    text: str | None = Form(None, description="Sent as text when no file is attached"),
    file: UploadFile | None = File(None),
    files: list[UploadFile] | None = File(None),
    auth: AuthContext = Depends(require_auth),
    manager: SessionLifecycleManager = Depends(get_session_manager),
):
    set_request_context(session_id=session_id)
    logger = get_logger(__name__)

    _require_live(manager, auth, session_id)
    try:
        jid = jidify(to)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    uploads = ([file] if file is not None else []) + list(files or [])
    if not uploads:
        fallback = text or caption
        if not fallback:
            raise HTTPException(status_code=400, detail="No file provided and no text")
        try:
            await manager.send(session_id, jid, {"text": fallback}, auth=auth)
        except GatewayError as e:
            raise http_error_for(e) from e
        except Exception as e:
            logger.error(f"Text fallback send to {jid} failed: {e}")
            raise HTTPException(status_code=502, detail=f"Send failed: {e}") from e
        return BatchSendResponse(
            ok=True, data=BatchSendData(session_id=session_id, to=jid, sent="text-only")
        )

    delay = clamp_delay_ms(delay_ms)
    per_file_captions = captions or []
    results: list[FileSendResult] = []

    for index, upload in enumerate(uploads):
        data = await upload.read()
        if not data:
            results.append(FileSendResult(index=index, ok=False, error="empty file"))
        else:
            filename = upload.filename or "file.bin"
            mimetype = resolve_mimetype(upload.content_type, filename)
            kind = infer_media_type(media_type, mimetype, filename)
            file_caption = per_file_captions[index] if index < len(per_file_captions) else caption
            try:
                content = media_content(kind, data, mimetype, file_caption, filename)
                await manager.send(session_id, jid, content, auth=auth)
                logger.info(f"Sent file #{index} {filename} as {kind} ({mimetype}) to {jid}")
                results.append(
                    FileSendResult(
                        index=index, ok=True, file_name=filename, mime=mimetype, size=len(data)
                    )
                )
            except Exception as e:
                logger.warning(f"File #{index} {filename} to {jid} failed: {e}")
                results.append(
                    FileSendResult(index=index, ok=False, error=str(e) or "send failed")
                )

        if index < len(uploads) - 1:
            await asyncio.sleep(delay / 1000)

    any_error = any(not result.ok for result in results)
    body = BatchSendResponse(
        ok=not any_error,
        data=BatchSendData(
            session_id=session_id,
            to=jid,
            sent=sum(1 for result in results if result.ok),
            total=len(uploads),
            delay_ms=delay,
        ),
        results=results,
    )
    return JSONResponse(
        status_code=207 if any_error else 200,
        content=body.model_dump(by_alias=True, exclude_none=True),
    )
