"""
QR rendering utility.

GET /utils/qr.png?data=... renders any payload (typically a session's QR
challenge) as a PNG for browser display.
"""

import asyncio
import io

import qrcode
from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import Response
from qrcode.constants import ERROR_CORRECT_M
from qrcode.exceptions import DataOverflowError

from wagate.core.logging.logger import get_logger

router = APIRouter(prefix="/utils", tags=["Utils"])


def render_qr_png(data: str, box_size: int = 10, border: int = 1) -> bytes:
    qr = qrcode.QRCode(error_correction=ERROR_CORRECT_M, box_size=box_size, border=border)
    qr.add_data(data)
    qr.make(fit=True)
    image = qr.make_image(fill_color="black", back_color="white")
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


@router.get("/qr.png", responses={200: {"content": {"image/png": {}}}})
async def qr_png(data: str = Query(default="")) -> Response:
    if not data:
        raise HTTPException(status_code=400, detail="Missing data")
    try:
        png = await asyncio.to_thread(render_qr_png, data)
    except (ValueError, DataOverflowError) as e:
        get_logger(__name__).warning(f"QR encode error: {e}")
        raise HTTPException(status_code=500, detail="QR encode error") from e
    return Response(content=png, media_type="image/png", headers={"Cache-Control": "no-store"})
