"""Outbound message construction."""

from .content import (
    ContentBuilder,
    FetchedMedia,
    OutboundMessage,
    build_vcard,
    jidify,
    to_sticker,
)

__all__ = [
    "ContentBuilder",
    "FetchedMedia",
    "OutboundMessage",
    "build_vcard",
    "jidify",
    "to_sticker",
]
