"""
HTTP tests for the multipart batch media endpoint.
"""

import time

import pytest
from fastapi.testclient import TestClient

from conftest import FakeAdapterFactory
from wagate.adapter.interface import ConnectionOpened
from wagate.api.routes.media_upload import clamp_delay_ms
from wagate.core.factory import GatewayBuilder
from wagate.core.plugins import GatewayCorePlugin

ADMIN = {"X-API-Key": "test-admin-key"}
ME = {"id": "628111@s.whatsapp.net", "name": "Shop"}
PNG = b"\x89PNG\r\n\x1a\n-image-body"
PDF = b"%PDF-1.4 invoice"
URL = "/api/messages/media/file"


@pytest.fixture
def open_factory():
    return FakeAdapterFactory(script=[ConnectionOpened(me=ME)])


@pytest.fixture
def client(gateway_settings, open_factory):
    app = (
        GatewayBuilder()
        .add_plugin(GatewayCorePlugin(adapter_factory=open_factory, bus_enabled=False))
        .build()
    )
    with TestClient(app) as client:
        client.post("/api/sessions", json={"id": "s1"}, headers=ADMIN)
        for _ in range(100):
            if client.get("/api/sessions/s1", headers=ADMIN).json()["status"] == "open":
                break
            time.sleep(0.01)
        yield client


class TestClampDelay:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (None, 1200),
            ("", 1200),
            ("50", 300),
            ("2500", 2500),
            ("99999", 10000),
            ("soon", 300),
            ("nan", 300),
        ],
    )
    def test_bounds(self, value, expected):
        assert clamp_delay_ms(value) == expected


class TestBatchUpload:
    def test_files_sent_in_order_with_delay(self, client, open_factory):
        started = time.monotonic()
        response = client.post(
            URL,
            data={
                "sessionId": "s1",
                "to": "+62 812",
                "caption": "for you",
                "captions": ["the picture"],
                "delayMs": "300",
            },
            files=[
                ("files", ("photo.png", PNG, "image/png")),
                ("files", ("invoice.pdf", PDF, "application/pdf")),
            ],
            headers=ADMIN,
        )
        elapsed = time.monotonic() - started

        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["data"] == {
            "sessionId": "s1",
            "to": "62812@s.whatsapp.net",
            "sent": 2,
            "total": 2,
            "delayMs": 300,
        }
        assert body["results"][0] == {
            "index": 0,
            "ok": True,
            "fileName": "photo.png",
            "mime": "image/png",
            "size": len(PNG),
        }
        assert elapsed >= 0.3

        sent = open_factory.latest().sent
        assert sent[0] == (
            "62812@s.whatsapp.net",
            {"image": PNG, "mimetype": "image/png", "caption": "the picture"},
            None,
        )
        assert sent[1][1]["document"] == PDF
        assert sent[1][1]["fileName"] == "invoice.pdf"
        assert sent[1][1]["caption"] == "for you"

    def test_media_type_hint_overrides_mime(self, client, open_factory):
        response = client.post(
            URL,
            data={"sessionId": "s1", "to": "62812", "mediaType": "document"},
            files={"file": ("photo.png", PNG, "image/png")},
            headers=ADMIN,
        )

        assert response.status_code == 200
        content = open_factory.latest().sent[0][1]
        assert content["document"] == PNG
        assert content["mimetype"] == "image/png"

    def test_audio_goes_out_as_voice_note(self, client, open_factory):
        client.post(
            URL,
            data={"sessionId": "s1", "to": "62812"},
            files={"file": ("note.ogg", b"OggS-voice", "audio/ogg")},
            headers=ADMIN,
        )

        assert open_factory.latest().sent[0][1] == {
            "audio": b"OggS-voice",
            "mimetype": "audio/ogg",
            "ptt": True,
        }

    def test_partial_failure_is_207(self, client, open_factory):
        response = client.post(
            URL,
            data={"sessionId": "s1", "to": "62812", "delayMs": "0"},
            files=[
                ("files", ("empty.png", b"", "image/png")),
                ("files", ("photo.png", PNG, "image/png")),
            ],
            headers=ADMIN,
        )

        assert response.status_code == 207
        body = response.json()
        assert body["ok"] is False
        assert body["data"]["sent"] == 1
        assert body["data"]["total"] == 2
        assert body["data"]["delayMs"] == 300
        assert body["results"][0] == {"index": 0, "ok": False, "error": "empty file"}
        assert body["results"][1]["ok"] is True
        assert len(open_factory.latest().sent) == 1

    def test_adapter_failure_is_reported_per_file(self, client, open_factory):
        open_factory.latest().fail_sends = True

        response = client.post(
            URL,
            data={"sessionId": "s1", "to": "62812"},
            files={"file": ("photo.png", PNG, "image/png")},
            headers=ADMIN,
        )

        assert response.status_code == 207
        assert response.json()["results"] == [
            {"index": 0, "ok": False, "error": "socket write failed"}
        ]


class TestTextFallback:
    def test_text_only_without_files(self, client, open_factory):
        response = client.post(
            URL, data={"sessionId": "s1", "to": "62812", "text": "no attachment"}, headers=ADMIN
        )

        assert response.status_code == 200
        assert response.json() == {
            "ok": True,
            "data": {"sessionId": "s1", "to": "62812@s.whatsapp.net", "sent": "text-only"},
        }
        assert open_factory.latest().sent == [
            ("62812@s.whatsapp.net", {"text": "no attachment"}, None)
        ]

    def test_nothing_to_send(self, client):
        response = client.post(URL, data={"sessionId": "s1", "to": "62812"}, headers=ADMIN)

        assert response.status_code == 400
        assert response.json()["detail"] == "No file provided and no text"


class TestSessionChecks:
    def test_unknown_session(self, client):
        response = client.post(
            URL,
            data={"sessionId": "ghost", "to": "62812"},
            files={"file": ("photo.png", PNG, "image/png")},
            headers=ADMIN,
        )
        assert response.status_code == 404

    def test_stopped_session(self, client):
        client.delete("/api/sessions/s1", params={"mode": "runtime"}, headers=ADMIN)

        response = client.post(
            URL,
            data={"sessionId": "s1", "to": "62812", "text": "x"},
            headers=ADMIN,
        )
        assert response.status_code == 409

    def test_missing_fields(self, client):
        response = client.post(URL, data={"to": "62812", "text": "x"}, headers=ADMIN)
        assert response.status_code == 422

    def test_invalid_recipient(self, client):
        response = client.post(
            URL, data={"sessionId": "s1", "to": "nobody", "text": "x"}, headers=ADMIN
        )
        assert response.status_code == 400
