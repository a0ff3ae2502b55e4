"""
Tests for outbound content building.
"""

import io

import aiohttp
import pytest
from PIL import Image

from conftest import FakeHTTPSession, FakeResponse
from wagate.core.exceptions import UnsupportedActionError
from wagate.messaging.content import (
    ContentBuilder,
    build_vcard,
    infer_media_type,
    jidify,
    media_content,
    resolve_mimetype,
    to_sticker,
)


def png_bytes(size=(800, 400)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color="red").save(buffer, format="PNG")
    return buffer.getvalue()


class TestJidify:
    @pytest.mark.parametrize(
        "to, expected",
        [
            ("+62 812-3456", "628123456@s.whatsapp.net"),
            (628123456, "628123456@s.whatsapp.net"),
            ("628123456@s.whatsapp.net", "628123456@s.whatsapp.net"),
            ("1203630@g.us", "1203630@g.us"),
        ],
    )
    def test_normalizes(self, to, expected):
        assert jidify(to) == expected

    def test_rejects_no_digits(self):
        with pytest.raises(ValueError):
            jidify("not-a-number")


class TestVCard:
    def test_full_card(self):
        card = build_vcard(
            {"fullName": "Ana", "org": "Shop", "phone": "+62 812", "email": "ana@shop.id"}
        )

        assert card.splitlines() == [
            "BEGIN:VCARD",
            "VERSION:3.0",
            "FN:Ana",
            "ORG:Shop",
            "TEL;type=CELL;type=VOICE;waid=62812:62812",
            "EMAIL:ana@shop.id",
            "END:VCARD",
        ]

    def test_optional_fields_omitted(self):
        assert build_vcard({"fullName": "Ana"}) == "BEGIN:VCARD\nVERSION:3.0\nFN:Ana\nEND:VCARD"


class TestUploadedMedia:
    @pytest.mark.parametrize(
        "hint, mimetype, filename, expected",
        [
            ("gif", "video/mp4", "clip.mp4", "gif"),
            (None, "image/jpeg", "a.jpg", "image"),
            (None, "video/mp4", "a.mp4", "video"),
            (None, "audio/ogg", "a.ogg", "audio"),
            (None, "application/pdf", "a.pdf", "document"),
            ("sticker", "text/plain", "notes.txt", "document"),
            (None, "", "anim.gif", "gif"),
        ],
    )
    def test_media_type_inference(self, hint, mimetype, filename, expected):
        assert infer_media_type(hint, mimetype, filename) == expected

    def test_mimetype_from_header_then_extension(self):
        assert resolve_mimetype("image/PNG; charset=binary", "x.bin") == "image/png"
        assert resolve_mimetype(None, "report.pdf") == "application/pdf"
        assert resolve_mimetype("multipart/form-data", "unknown") == "application/octet-stream"

    def test_document_content_keeps_filename(self):
        content = media_content("document", b"%PDF", "application/pdf", "see attached", "q3.pdf")

        assert content == {
            "document": b"%PDF",
            "mimetype": "application/pdf",
            "fileName": "q3.pdf",
            "caption": "see attached",
        }

    def test_unknown_media_type(self):
        with pytest.raises(UnsupportedActionError):
            media_content("hologram", b"x", "application/octet-stream")


class TestContentBuilder:
    async def test_text_with_mentions(self):
        builder = ContentBuilder(FakeHTTPSession())

        message = await builder.build(
            {"type": "text", "to": "62812", "text": "hi @ana", "mentions": ["+62 899"]}
        )

        assert message.jid == "62812@s.whatsapp.net"
        assert message.content == {"text": "hi @ana", "mentions": ["62899@s.whatsapp.net"]}
        assert message.options == {}

    async def test_noop_builds_nothing(self):
        builder = ContentBuilder(FakeHTTPSession())
        assert await builder.build({"type": "noop"}) is None

    async def test_unknown_type(self):
        builder = ContentBuilder(FakeHTTPSession())
        with pytest.raises(UnsupportedActionError):
            await builder.build({"type": "hologram", "to": "62812"})

    async def test_missing_recipient(self):
        builder = ContentBuilder(FakeHTTPSession())
        with pytest.raises(ValueError):
            await builder.build({"type": "text", "text": "hi"})

    async def test_image_is_fetched(self):
        session = FakeHTTPSession(
            [FakeResponse(200, data=b"\x89PNG", headers={"Content-Type": "image/png"})]
        )
        builder = ContentBuilder(session)

        message = await builder.build(
            {"type": "media", "to": "62812", "mediaType": "image", "url": "http://cdn/a.png", "caption": "look"}
        )

        assert session.requests[0][:2] == ("GET", "http://cdn/a.png")
        assert message.content == {"image": b"\x89PNG", "mimetype": "image/png", "caption": "look"}

    async def test_audio_is_voice_note(self):
        session = FakeHTTPSession([FakeResponse(200, data=b"ogg", headers={"Content-Type": "audio/ogg"})])
        message = await ContentBuilder(session).build(
            {"type": "media", "to": "62812", "mediaType": "audio", "url": "http://cdn/a.ogg"}
        )
        assert message.content["ptt"] is True

    async def test_gif_plays_as_gif(self):
        session = FakeHTTPSession([FakeResponse(200, data=b"mp4", headers={"Content-Type": "video/mp4"})])
        message = await ContentBuilder(session).build(
            {"type": "gif", "to": "62812", "videoUrl": "http://cdn/a.mp4"}
        )
        assert message.content["video"] == b"mp4"
        assert message.content["gifPlayback"] is True

    async def test_document_default_filename(self):
        session = FakeHTTPSession(
            [FakeResponse(200, data=b"%PDF", headers={"Content-Type": "application/pdf"})]
        )
        message = await ContentBuilder(session).build(
            {"type": "document", "to": "62812", "url": "http://cdn/report"}
        )
        assert message.content["fileName"] == "file.pdf"
        assert message.content["mimetype"] == "application/pdf"

    async def test_fetch_failure_raises_client_error(self):
        session = FakeHTTPSession([FakeResponse(404)])
        with pytest.raises(aiohttp.ClientResponseError):
            await ContentBuilder(session).build(
                {"type": "media", "to": "62812", "mediaType": "video", "url": "http://cdn/gone"}
            )

    async def test_unsupported_media_type(self):
        with pytest.raises(UnsupportedActionError):
            await ContentBuilder(FakeHTTPSession()).build(
                {"type": "media", "to": "62812", "mediaType": "hologram", "url": "http://x"}
            )

    async def test_location(self):
        message = await ContentBuilder(FakeHTTPSession()).build(
            {"type": "location", "to": "62812", "lat": -6.2, "lng": 106.8, "name": "Office"}
        )
        assert message.content["location"]["degreesLatitude"] == -6.2
        assert message.content["location"]["degreesLongitude"] == 106.8

    async def test_vcard(self):
        message = await ContentBuilder(FakeHTTPSession()).build(
            {"type": "vcard", "to": "62812", "contact": {"fullName": "Ana", "phone": "62899"}}
        )
        contacts = message.content["contacts"]
        assert contacts["displayName"] == "Ana"
        assert "waid=62899" in contacts["contacts"][0]["vcard"]

    async def test_sticker_converted_from_image(self):
        session = FakeHTTPSession(
            [FakeResponse(200, data=png_bytes(), headers={"Content-Type": "image/png"})]
        )
        message = await ContentBuilder(session).build(
            {"type": "sticker", "to": "62812", "imageUrl": "http://cdn/a.png"}
        )

        with Image.open(io.BytesIO(message.content["sticker"])) as sticker:
            assert sticker.format == "WEBP"
            assert max(sticker.size) == 512

    async def test_buttons_limited_to_three(self):
        message = await ContentBuilder(FakeHTTPSession()).build(
            {
                "type": "buttons",
                "to": "62812",
                "text": "Pick one",
                "buttons": [{"text": "A"}, {"id": "b", "text": "B"}, {}, {"text": "D"}],
            }
        )
        buttons = message.content["templateButtons"]
        assert len(buttons) == 3
        assert buttons[1]["quickReplyButton"] == {"id": "b", "displayText": "B"}
        assert buttons[2]["quickReplyButton"] == {"id": "btn_3", "displayText": "Button 3"}

    async def test_list_and_poll_defaults(self):
        builder = ContentBuilder(FakeHTTPSession())

        listing = await builder.build({"type": "list", "to": "62812", "text": "Menu"})
        poll = await builder.build({"type": "poll", "to": "62812", "name": "Lunch?", "options": ["a", "b"]})

        assert listing.content["buttonText"] == "Open"
        assert poll.content == {"poll": {"name": "Lunch?", "values": ["a", "b"], "selectableCount": 1}}

    async def test_forward_quotes_key(self):
        message = await ContentBuilder(FakeHTTPSession()).build(
            {"type": "forward", "to": "62812", "message": {"conversation": "fwd"}, "key": {"id": "K1"}}
        )
        assert message.content == {"conversation": "fwd"}
        assert message.options == {"quoted": {"key": {"id": "K1"}}}

    async def test_raw_passthrough(self):
        message = await ContentBuilder(FakeHTTPSession()).build(
            {"type": "raw", "to": "1203@g.us", "message": {"react": {"text": "👍"}}, "options": {"ephemeral": 1}}
        )
        assert message.jid == "1203@g.us"
        assert message.content == {"react": {"text": "👍"}}
        assert message.options == {"ephemeral": 1}


class TestSticker:
    def test_small_images_are_not_enlarged(self):
        with Image.open(io.BytesIO(to_sticker(png_bytes((100, 50))))) as sticker:
            assert sticker.size == (100, 50)
