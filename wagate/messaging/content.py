"""
Outbound content builder.

Turns an action description (from a REST route or a webhook action callback)
into the protocol-level ``(jid, content, options)`` triple that the adapter's
send primitive accepts. Media referenced by URL is fetched here with aiohttp,
before the send is queued, so a slow download never holds the session's
outbound queue.

Supported action types:
    text, media (image/video/gif/audio), gif, document, location, sticker,
    vcard, buttons, list, poll, forward, raw, noop
"""

import asyncio
import io
import mimetypes
import re
from dataclasses import dataclass, field
from typing import Any

import aiohttp
from PIL import Image

from wagate.core.exceptions import UnsupportedActionError
from wagate.core.logging.logger import get_logger

USER_JID_SUFFIX = "@s.whatsapp.net"
GROUP_JID_SUFFIX = "@g.us"
STICKER_SIZE = 512
MEDIA_TYPES = ("image", "video", "gif", "audio", "document")
DEFAULT_MIMETYPE = "application/octet-stream"

_NON_DIGITS = re.compile(r"\D")


def jidify(to: str | int) -> str:
    """
    Normalize a phone number (or pass through a JID).

    Examples:
        jidify("+62 812-3456") -> "628123456@s.whatsapp.net"
        jidify("12036304@g.us") -> "12036304@g.us"
    """
    value = str(to).strip()
    if value.endswith(USER_JID_SUFFIX) or value.endswith(GROUP_JID_SUFFIX):
        return value
    digits = _NON_DIGITS.sub("", value)
    if not digits:
        raise ValueError(f"Invalid recipient: {to!r}")
    return f"{digits}{USER_JID_SUFFIX}"


def build_vcard(contact: dict[str, Any]) -> str:
    """Build a vCard 3.0 document from fullName, org, phone and email."""
    number = _NON_DIGITS.sub("", str(contact.get("phone") or ""))
    lines = [
        "BEGIN:VCARD",
        "VERSION:3.0",
        f"FN:{contact.get('fullName') or ''}",
        f"ORG:{contact['org']}" if contact.get("org") else "",
        f"TEL;type=CELL;type=VOICE;waid={number}:{number}" if number else "",
        f"EMAIL:{contact['email']}" if contact.get("email") else "",
        "END:VCARD",
    ]
    return "\n".join(line for line in lines if line)


def to_sticker(data: bytes) -> bytes:
    """Convert an image to a WebP sticker that fits in 512x512."""
    with Image.open(io.BytesIO(data)) as image:
        image = image.convert("RGBA")
        # thumbnail never enlarges
        image.thumbnail((STICKER_SIZE, STICKER_SIZE))
        output = io.BytesIO()
        image.save(output, format="WEBP", quality=95)
        return output.getvalue()


def resolve_mimetype(content_type: str | None, filename: str | None = None) -> str:
    """Declared Content-Type, else a guess from the file extension."""
    declared = (content_type or "").split(";")[0].strip().lower()
    if declared and not declared.startswith("multipart/"):
        return declared
    guessed, _ = mimetypes.guess_type(filename or "")
    return guessed or DEFAULT_MIMETYPE


def infer_media_type(hint: str | None, mimetype: str | None, filename: str | None = None) -> str:
    """
    Send type for an uploaded file.

    A valid hint wins; otherwise the MIME family decides, and anything
    unrecognised goes out as a document.
    """
    if hint in MEDIA_TYPES:
        return hint
    mime = (mimetype or "").lower()
    if mime.startswith("image/"):
        return "image"
    if mime.startswith("video/"):
        return "video"
    if mime.startswith("audio/"):
        return "audio"
    if mime.startswith("application/"):
        return "document"
    if (filename or "").lower().endswith(".gif"):
        return "gif"
    return "document"


def media_content(
    media_type: str,
    data: bytes,
    mimetype: str,
    caption: str | None = None,
    filename: str | None = None,
) -> dict[str, Any]:
    """
    Protocol content for a media body already in memory.

    Raises:
        UnsupportedActionError: For a media type outside MEDIA_TYPES
    """
    if media_type == "image":
        return {"image": data, "mimetype": mimetype, "caption": caption}
    if media_type == "audio":
        return {"audio": data, "mimetype": mimetype, "ptt": True}
    if media_type in ("video", "gif"):
        return {
            "video": data,
            "mimetype": mimetype,
            "gifPlayback": media_type == "gif",
            "caption": caption,
        }
    if media_type == "document":
        return {
            "document": data,
            "mimetype": mimetype,
            "fileName": filename or "file.bin",
            "caption": caption,
        }
    raise UnsupportedActionError(f"unsupported mediaType: {media_type}")


@dataclass
class FetchedMedia:
    """Downloaded media body with the server-reported MIME type."""

    data: bytes
    mimetype: str

    @property
    def extension(self) -> str:
        subtype = self.mimetype.split(";")[0].split("/")[-1]
        return subtype or "bin"


@dataclass
class OutboundMessage:
    """Protocol-level send request."""

    jid: str
    content: dict[str, Any]
    options: dict[str, Any] = field(default_factory=dict)


class ContentBuilder:
    """
    Builds adapter send requests from action descriptions.

    Usage:
        builder = ContentBuilder(http_session)
        message = await builder.build({"type": "text", "to": "62812", "text": "hi"})
        if message:
            await connection.send(message.jid, message.content, message.options)
    """

    def __init__(self, http_session: aiohttp.ClientSession, media_timeout: float = 20.0):
        self.http_session = http_session
        self.media_timeout = media_timeout
        self.logger = get_logger(__name__)

    async def fetch_media(self, url: str | None) -> FetchedMedia:
        """
        Download media by URL.

        Raises:
            ValueError: If no URL was supplied
            aiohttp.ClientError: If the download fails
        """
        if not url:
            raise ValueError("media url required")

        async with self.http_session.get(
            url, timeout=aiohttp.ClientTimeout(total=self.media_timeout)
        ) as response:
            response.raise_for_status()
            data = await response.read()
            mimetype = response.headers.get("Content-Type") or "application/octet-stream"

        self.logger.debug(f"Fetched media {url} ({len(data)} bytes, {mimetype})")
        return FetchedMedia(data=data, mimetype=mimetype)

    async def build(self, action: dict[str, Any]) -> OutboundMessage | None:
        """
        Build the send request for one action.

        Returns:
            The message to send, or None for ``noop``

        Raises:
            UnsupportedActionError: For unknown action or media types
            ValueError: For a missing or invalid recipient
        """
        action_type = action.get("type")
        if action_type == "noop":
            return None

        builder = getattr(self, f"_build_{action_type}", None) if action_type else None
        if builder is None:
            raise UnsupportedActionError(f"unknown action type: {action_type}")

        if not action.get("to"):
            raise ValueError("action.to required")
        jid = jidify(action["to"])

        content, options = await builder(action)
        return OutboundMessage(jid=jid, content=content, options=options or {})

    # ------------------------------------------------------------------
    # Per-type builders, each returning (content, options)
    # ------------------------------------------------------------------

    async def _build_text(self, action: dict[str, Any]):
        content: dict[str, Any] = {"text": action.get("text") or ""}
        mentions = action.get("mentions") or []
        if mentions:
            content["mentions"] = [jidify(m) for m in mentions]
        return content, None

    async def _build_media(self, action: dict[str, Any]):
        media_type = action.get("mediaType")
        if media_type not in ("image", "video", "gif", "audio"):
            raise UnsupportedActionError(f"unsupported mediaType: {media_type}")

        media = await self.fetch_media(action.get("url") or action.get("mediaUrl"))
        return media_content(media_type, media.data, media.mimetype, action.get("caption")), None

    async def _build_gif(self, action: dict[str, Any]):
        return await self._build_media(
            {**action, "mediaType": "gif", "url": action.get("videoUrl") or action.get("url")}
        )

    async def _build_document(self, action: dict[str, Any]):
        media = await self.fetch_media(action.get("url") or action.get("mediaUrl"))
        filename = action.get("filename") or f"file.{media.extension}"
        return media_content(
            "document", media.data, media.mimetype, action.get("caption"), filename
        ), None

    async def _build_location(self, action: dict[str, Any]):
        return {
            "location": {
                "degreesLatitude": action.get("lat"),
                "degreesLongitude": action.get("lng"),
                "name": action.get("name"),
                "address": action.get("address"),
            }
        }, None

    async def _build_sticker(self, action: dict[str, Any]):
        if action.get("webpUrl"):
            media = await self.fetch_media(action["webpUrl"])
            return {"sticker": media.data}, None
        if not action.get("imageUrl"):
            raise ValueError("Provide imageUrl or webpUrl")
        media = await self.fetch_media(action["imageUrl"])
        sticker = await asyncio.to_thread(to_sticker, media.data)
        return {"sticker": sticker}, None

    async def _build_vcard(self, action: dict[str, Any]):
        contact = action.get("contact") or {}
        return {
            "contacts": {
                "displayName": contact.get("fullName") or "Contact",
                "contacts": [{"vcard": build_vcard(contact)}],
            }
        }, None

    async def _build_buttons(self, action: dict[str, Any]):
        if action.get("message"):
            return action["message"], None
        buttons = [
            {
                "index": index + 1,
                "quickReplyButton": {
                    "id": button.get("id") or f"btn_{index + 1}",
                    "displayText": button.get("text") or f"Button {index + 1}",
                },
            }
            for index, button in enumerate((action.get("buttons") or [])[:3])
        ]
        return {
            "text": action.get("text"),
            "footer": action.get("footer"),
            "templateButtons": buttons,
        }, None

    async def _build_list(self, action: dict[str, Any]):
        if action.get("message"):
            return action["message"], None
        return {
            "text": action.get("text"),
            "footer": action.get("footer"),
            "title": action.get("title"),
            "buttonText": action.get("buttonText") or "Open",
            "sections": action.get("sections") or [],
        }, None

    async def _build_poll(self, action: dict[str, Any]):
        if action.get("message"):
            return action["message"], None
        return {
            "poll": {
                "name": action.get("name"),
                "values": action.get("options") or [],
                "selectableCount": action.get("selectableCount") or 1,
            }
        }, None

    async def _build_forward(self, action: dict[str, Any]):
        if not isinstance(action.get("message"), dict):
            raise ValueError("action.message required")
        options = {"quoted": {"key": action["key"]}} if action.get("key") else None
        return action["message"], options

    async def _build_raw(self, action: dict[str, Any]):
        if not isinstance(action.get("message"), dict):
            raise ValueError("action.message required")
        return action["message"], action.get("options")
