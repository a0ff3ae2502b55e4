"""
Request and response models of the HTTP API.

Field names are camelCase on the wire; snake_case is accepted too.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from wagate.sessions.models import SessionView


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


class CreateSessionRequest(ApiModel):
    id: str | None = Field(default=None, max_length=128, pattern=r"^[A-Za-z0-9_.-]+$")
    label: str | None = None
    auto_start: bool | None = None
    webhook_url: str | list[str] | None = None
    webhook_secret: str | list[str] | None = None
    owner_id: str | None = Field(default=None, description="Admin only")


class CreateSessionResponse(ApiModel):
    id: str
    status: str


class SessionListResponse(ApiModel):
    items: list[SessionView]


class SessionDetailResponse(ApiModel):
    id: str
    status: str
    me: dict[str, Any] | None = None
    qr: str | None = None


class StopSessionResponse(ApiModel):
    ok: bool = True
    id: str
    mode: str
    steps: dict[str, bool]


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


class MessageRequest(ApiModel):
    session_id: str = Field(min_length=1)
    to: str = Field(min_length=1)


class TextMessageRequest(MessageRequest):
    text: str
    mentions: list[str] = Field(default_factory=list)


class MediaMessageRequest(MessageRequest):
    media_url: str
    media_type: Literal["image", "video", "audio", "document"] = "image"
    caption: str | None = None
    filename: str | None = None


class LocationMessageRequest(MessageRequest):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    name: str | None = None
    address: str | None = None


class ContactCard(ApiModel):
    full_name: str | None = None
    org: str | None = None
    phone: str | None = None
    email: str | None = None


class VCardMessageRequest(MessageRequest):
    contact: ContactCard


class GifMessageRequest(MessageRequest):
    video_url: str
    caption: str | None = None


class StickerMessageRequest(MessageRequest):
    image_url: str | None = None
    webp_url: str | None = None


class ForwardMessageRequest(MessageRequest):
    message: dict[str, Any]
    key: dict[str, Any] | None = None


class RawMessageRequest(MessageRequest):
    message: dict[str, Any]
    options: dict[str, Any] | None = None


class ButtonSpec(ApiModel):
    id: str | None = None
    text: str | None = None


class ButtonsMessageRequest(MessageRequest):
    text: str
    footer: str | None = None
    buttons: list[ButtonSpec] = Field(min_length=1, description="At most 3 are sent")


class ListMessageRequest(MessageRequest):
    text: str
    title: str | None = None
    footer: str | None = None
    button_text: str | None = None
    sections: list[dict[str, Any]] = Field(default_factory=list)


class PollMessageRequest(MessageRequest):
    name: str = Field(min_length=1)
    options: list[str] = Field(min_length=2)
    selectable_count: int | None = Field(default=None, ge=0)


class MessageResult(ApiModel):
    ok: bool = True


class FileSendResult(ApiModel):
    """Outcome of one file of a batch upload."""

    index: int
    ok: bool
    file_name: str | None = None
    mime: str | None = None
    size: int | None = None
    error: str | None = None


class BatchSendData(ApiModel):
    session_id: str
    to: str
    sent: int | Literal["text-only"]
    total: int | None = None
    delay_ms: int | None = None


class BatchSendResponse(ApiModel):
    ok: bool
    data: BatchSendData
    results: list[FileSendResult] | None = None


# ---------------------------------------------------------------------------
# Webhooks
# ---------------------------------------------------------------------------


class WebhookConfigureRequest(ApiModel):
    session_id: str = Field(min_length=1)
    url: str | list[str] | None = None
    secret: str | list[str] | None = None
    enabled: bool = True


class WebhookConfigureResponse(ApiModel):
    ok: bool = True
    webhook: dict[str, Any]


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


class RateLimitConfig(ApiModel):
    window_ms: int
    max: int


class WebhookDefaultConfig(ApiModel):
    url: str | list[str] = ""
    secret: str | list[str] = ""


class AdminConfigResponse(ApiModel):
    rate_limit: RateLimitConfig
    webhook_default: WebhookDefaultConfig


class RateLimitUpdateRequest(ApiModel):
    window_ms: int | None = Field(default=None, gt=0)
    max: int | None = Field(default=None, gt=0)


class RateLimitUpdateResponse(ApiModel):
    ok: bool = True
    rate_limit: RateLimitConfig


class WebhookDefaultUpdateRequest(ApiModel):
    url: str | list[str] | None = None
    secret: str | list[str] | None = None


class WebhookDefaultUpdateResponse(ApiModel):
    ok: bool = True
    webhook_default: WebhookDefaultConfig
