"""
End-to-end HTTP tests: the real builder, core plugin, middleware and routes
with the fake protocol adapter behind them.
"""

import time

import pytest
from fastapi.testclient import TestClient

from conftest import FakeAdapterFactory, FakeHTTPSession, FakeResponse
from wagate.adapter.interface import ConnectionOpened, QRChallenge
from wagate.core.factory import GatewayBuilder
from wagate.core.plugins import GatewayCorePlugin

ADMIN = {"X-API-Key": "test-admin-key"}
USER_A = {"X-API-Key": "user-key-a"}
USER_B = {"X-API-Key": "user-key-b"}
ME = {"id": "628111@s.whatsapp.net", "name": "Shop"}


def build_client(factory: FakeAdapterFactory) -> TestClient:
    app = (
        GatewayBuilder()
        .add_plugin(GatewayCorePlugin(adapter_factory=factory, bus_enabled=False))
        .build()
    )
    return TestClient(app)


def wait_for_status(client, session_id, status, headers=ADMIN):
    for _ in range(100):
        body = client.get(f"/api/sessions/{session_id}", headers=headers).json()
        if body.get("status") == status:
            return body
        time.sleep(0.01)
    raise AssertionError(f"{session_id} never reached {status}")


@pytest.fixture
def open_factory():
    return FakeAdapterFactory(script=[ConnectionOpened(me=ME)])


@pytest.fixture
def client(gateway_settings, open_factory):
    with build_client(open_factory) as client:
        yield client


class TestHealth:
    def test_no_sessions_is_ok(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["reason"] == "no-sessions"
        assert body["sessions"]["total"] == 0

    def test_open_sessions_are_ok(self, client):
        client.post("/api/sessions", json={"id": "s1"}, headers=ADMIN)
        wait_for_status(client, "s1", "open")

        body = client.get("/health").json()
        assert body["status"] == "ok"
        assert body["reason"] == "all-open-or-idle"
        assert body["sessions"]["byStatus"] == {"open": 1}

    def test_ping(self, client):
        body = client.get("/health/ping").json()
        assert body["pong"] is True


class TestAuth:
    def test_missing_key(self, client):
        response = client.get("/api/sessions")
        assert response.status_code == 401
        assert response.json()["detail"] == "Missing X-API-Key"

    def test_invalid_key(self, client):
        response = client.get("/api/sessions", headers={"X-API-Key": "nope"})
        assert response.status_code == 401

    def test_bearer_and_query_keys(self, client):
        assert client.get("/api/sessions", headers={"Authorization": "Bearer test-admin-key"}).status_code == 200
        assert client.get("/api/sessions?api_key=test-admin-key").status_code == 200


class TestSessionRoutes:
    def test_create_list_get_delete(self, client):
        created = client.post("/api/sessions", json={"id": "s1", "label": "Sales"}, headers=ADMIN)
        assert created.status_code == 200
        assert created.json() == {"id": "s1", "status": "starting"}

        detail = wait_for_status(client, "s1", "open")
        assert detail["me"] == ME

        items = client.get("/api/sessions", headers=ADMIN).json()["items"]
        assert [item["id"] for item in items] == ["s1"]
        assert items[0]["label"] == "Sales"
        assert items[0]["autoStart"] is True

        deleted = client.delete("/api/sessions/s1?mode=all", headers=ADMIN)
        assert deleted.status_code == 200
        assert deleted.json() == {
            "ok": True,
            "id": "s1",
            "mode": "all",
            "steps": {"runtime": True, "creds": True, "meta": True},
        }
        assert client.get("/api/sessions/s1", headers=ADMIN).status_code == 404

    def test_create_generates_id(self, client):
        body = client.post("/api/sessions", json={}, headers=ADMIN).json()
        assert len(body["id"]) == 28

    def test_invalid_id_rejected(self, client):
        response = client.post("/api/sessions", json={"id": "bad id/../"}, headers=ADMIN)
        assert response.status_code == 422

    def test_invalid_stop_mode(self, client):
        client.post("/api/sessions", json={"id": "s1"}, headers=ADMIN)
        response = client.delete("/api/sessions/s1?mode=everything", headers=ADMIN)
        assert response.status_code == 422

    def test_users_are_isolated(self, client):
        assert client.post("/api/sessions", json={"id": "a1"}, headers=USER_A).status_code == 200

        assert client.get("/api/sessions/a1", headers=USER_B).status_code == 403
        assert client.get("/api/sessions", headers=USER_B).json()["items"] == []
        assert client.delete("/api/sessions/a1", headers=USER_B).status_code == 403
        assert client.post("/api/sessions", json={"id": "a1"}, headers=USER_B).status_code == 403
        assert [i["id"] for i in client.get("/api/sessions", headers=ADMIN).json()["items"]] == ["a1"]

    def test_unknown_session_for_user(self, client):
        assert client.get("/api/sessions/ghost", headers=USER_A).status_code == 404


class TestQRFlow:
    def test_pending_qr_is_exposed(self, gateway_settings):
        factory = FakeAdapterFactory(script=[QRChallenge(qr="qr-payload")])
        with build_client(factory) as client:
            client.post("/api/sessions", json={"id": "s1"}, headers=ADMIN)

            for _ in range(100):
                detail = client.get("/api/sessions/s1", headers=ADMIN).json()
                if detail["qr"]:
                    break
                time.sleep(0.01)

            assert detail["qr"] == "qr-payload"
            assert detail["status"] == "starting"
            assert client.get("/health").json()["reason"] == "starting"

    def test_qr_png(self, client):
        response = client.get("/utils/qr.png", params={"data": "qr-payload"})

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/png"
        assert response.content.startswith(b"\x89PNG")

    def test_qr_png_requires_data(self, client):
        response = client.get("/utils/qr.png")
        assert response.status_code == 400
        assert response.json()["detail"] == "Missing data"


class TestMessageRoutes:
    def test_send_text(self, client, open_factory):
        client.post("/api/sessions", json={"id": "s1"}, headers=ADMIN)
        wait_for_status(client, "s1", "open")

        response = client.post(
            "/api/messages/text",
            json={"sessionId": "s1", "to": "+62 812", "text": "hello"},
            headers=ADMIN,
        )

        assert response.status_code == 200
        assert response.json() == {"ok": True}
        assert "X-Quota-Remaining" in response.headers
        assert open_factory.latest().sent == [("62812@s.whatsapp.net", {"text": "hello"}, None)]

    def test_send_location_and_raw(self, client, open_factory):
        client.post("/api/sessions", json={"id": "s1"}, headers=ADMIN)
        wait_for_status(client, "s1", "open")

        location = client.post(
            "/api/messages/location",
            json={"sessionId": "s1", "to": "62812", "lat": -6.2, "lng": 106.8},
            headers=ADMIN,
        )
        raw = client.post(
            "/api/messages/raw",
            json={"sessionId": "s1", "to": "1203@g.us", "message": {"conversation": "raw"}},
            headers=ADMIN,
        )

        assert location.status_code == 200
        assert raw.status_code == 200
        sent = open_factory.latest().sent
        assert sent[0][1]["location"]["degreesLatitude"] == -6.2
        assert sent[1] == ("1203@g.us", {"conversation": "raw"}, None)

    def test_send_buttons_list_and_poll(self, client, open_factory):
        client.post("/api/sessions", json={"id": "s1"}, headers=ADMIN)
        wait_for_status(client, "s1", "open")

        buttons = client.post(
            "/api/messages/buttons",
            json={
                "sessionId": "s1",
                "to": "62812",
                "text": "Pick one",
                "footer": "shop",
                "buttons": [{"id": "yes", "text": "Yes"}, {"text": "No"}, {}, {"text": "Extra"}],
            },
            headers=ADMIN,
        )
        menu = client.post(
            "/api/messages/list",
            json={
                "sessionId": "s1",
                "to": "62812",
                "text": "Menu",
                "sections": [{"title": "Drinks", "rows": [{"rowId": "tea", "title": "Tea"}]}],
            },
            headers=ADMIN,
        )
        poll = client.post(
            "/api/messages/poll",
            json={"sessionId": "s1", "to": "62812", "name": "Lunch?", "options": ["Rice", "Noodles"]},
            headers=ADMIN,
        )

        assert [r.status_code for r in (buttons, menu, poll)] == [200, 200, 200]
        sent = [content for _, content, _ in open_factory.latest().sent]
        assert [b["quickReplyButton"] for b in sent[0]["templateButtons"]] == [
            {"id": "yes", "displayText": "Yes"},
            {"id": "btn_2", "displayText": "No"},
            {"id": "btn_3", "displayText": "Button 3"},
        ]
        assert sent[1]["buttonText"] == "Open"
        assert sent[1]["sections"][0]["title"] == "Drinks"
        assert sent[2] == {
            "poll": {"name": "Lunch?", "values": ["Rice", "Noodles"], "selectableCount": 1}
        }

    def test_poll_needs_two_options(self, client):
        response = client.post(
            "/api/messages/poll",
            json={"sessionId": "s1", "to": "62812", "name": "Lunch?", "options": ["Rice"]},
            headers=ADMIN,
        )
        assert response.status_code == 422

    def test_unknown_session(self, client):
        response = client.post(
            "/api/messages/text", json={"sessionId": "ghost", "to": "62812", "text": "x"}, headers=ADMIN
        )
        assert response.status_code == 404

    def test_session_not_open(self, gateway_settings):
        with build_client(FakeAdapterFactory()) as client:
            client.post("/api/sessions", json={"id": "s1"}, headers=ADMIN)
            response = client.post(
                "/api/messages/text", json={"sessionId": "s1", "to": "62812", "text": "x"}, headers=ADMIN
            )
            assert response.status_code == 409

    def test_invalid_recipient(self, client):
        client.post("/api/sessions", json={"id": "s1"}, headers=ADMIN)
        wait_for_status(client, "s1", "open")

        response = client.post(
            "/api/messages/text", json={"sessionId": "s1", "to": "nobody", "text": "x"}, headers=ADMIN
        )
        assert response.status_code == 400

    def test_media_fetch_failure(self, client):
        client.post("/api/sessions", json={"id": "s1"}, headers=ADMIN)
        wait_for_status(client, "s1", "open")
        manager = client.app.state.session_manager
        manager.content_builder.http_session = FakeHTTPSession([FakeResponse(404)])

        response = client.post(
            "/api/messages/media",
            json={"sessionId": "s1", "to": "62812", "mediaUrl": "http://cdn/gone.png"},
            headers=ADMIN,
        )
        assert response.status_code == 502

    def test_user_cannot_send_on_foreign_session(self, client):
        client.post("/api/sessions", json={"id": "a1"}, headers=USER_A)
        wait_for_status(client, "a1", "open", headers=USER_A)

        response = client.post(
            "/api/messages/text", json={"sessionId": "a1", "to": "62812", "text": "x"}, headers=USER_B
        )
        assert response.status_code == 403


class TestLimits:
    def test_rate_limit(self, gateway_settings, open_factory, monkeypatch):
        monkeypatch.setattr(gateway_settings, "rate_limit_max", 2)
        with build_client(open_factory) as client:
            first = client.get("/api/sessions", headers=ADMIN)
            client.get("/api/sessions", headers=ADMIN)
            third = client.get("/api/sessions", headers=ADMIN)

        assert first.headers["X-RateLimit-Limit"] == "2"
        assert first.headers["X-RateLimit-Remaining"] == "1"
        assert third.status_code == 429
        assert third.headers["X-RateLimit-Remaining"] == "0"

    def test_recipient_cooldown(self, gateway_settings, open_factory, monkeypatch):
        monkeypatch.setattr(gateway_settings, "spam_cooldown_ms", 60000)
        with build_client(open_factory) as client:
            client.post("/api/sessions", json={"id": "s1"}, headers=ADMIN)
            wait_for_status(client, "s1", "open")
            payload = {"sessionId": "s1", "to": "62812", "text": "x"}

            first = client.post("/api/messages/text", json=payload, headers=ADMIN)
            second = client.post("/api/messages/text", json=payload, headers=ADMIN)
            other = client.post(
                "/api/messages/text", json={**payload, "to": "62813"}, headers=ADMIN
            )

        assert first.status_code == 200
        assert second.status_code == 429
        assert int(second.headers["Retry-After"]) > 0
        assert second.json()["detail"]["error"] == "Recipient cooldown"
        assert other.status_code == 200

    def test_quota(self, gateway_settings, open_factory, monkeypatch):
        monkeypatch.setattr(gateway_settings, "quota_max", 1)
        with build_client(open_factory) as client:
            client.post("/api/sessions", json={"id": "s1"}, headers=ADMIN)
            wait_for_status(client, "s1", "open")

            first = client.post(
                "/api/messages/text", json={"sessionId": "s1", "to": "1", "text": "x"}, headers=ADMIN
            )
            second = client.post(
                "/api/messages/text", json={"sessionId": "s1", "to": "2", "text": "x"}, headers=ADMIN
            )

        assert first.status_code == 200
        assert second.status_code == 429
        assert second.json()["detail"] == "Quota exceeded"


class TestWebhookRoute:
    def test_configure(self, client):
        client.post("/api/sessions", json={"id": "s1"}, headers=ADMIN)

        response = client.post(
            "/api/webhooks/configure",
            json={"sessionId": "s1", "url": ["http://a", "http://b"], "secret": "s3cret"},
            headers=ADMIN,
        )

        assert response.status_code == 200
        assert response.json() == {
            "ok": True,
            "webhook": {"url": ["http://a", "http://b"], "secret": "s3cret", "enabled": True},
        }
        registry = client.app.state.registry
        assert registry.get("s1").webhook_url == ["http://a", "http://b"]

    def test_configure_unknown_session(self, client):
        response = client.post(
            "/api/webhooks/configure", json={"sessionId": "ghost", "url": "http://a"}, headers=ADMIN
        )
        assert response.status_code == 404


class TestBootstrap:
    def test_persisted_sessions_restart(self, gateway_settings, open_factory):
        with build_client(open_factory) as client:
            client.post("/api/sessions", json={"id": "keep"}, headers=ADMIN)
            client.post("/api/sessions", json={"id": "manual", "autoStart": False}, headers=ADMIN)

        restarted = FakeAdapterFactory(script=[ConnectionOpened(me=ME)])
        with build_client(restarted) as client:
            wait_for_status(client, "keep", "open")
            statuses = {i["id"]: i["status"] for i in client.get("/api/sessions", headers=ADMIN).json()["items"]}

        assert statuses == {"keep": "open", "manual": "stopped"}
        assert [c.session_id for c in restarted.connections] == ["keep"]


class TestAdminRoutes:
    def test_config_reflects_settings(self, gateway_settings, open_factory, monkeypatch):
        monkeypatch.setattr(gateway_settings, "rate_limit_max", 50)
        monkeypatch.setattr(gateway_settings, "rate_limit_window_ms", 30000)
        monkeypatch.setattr(gateway_settings, "webhook_default_url", "http://fallback")
        with build_client(open_factory) as client:
            body = client.get("/api/admin/config", headers=ADMIN).json()

        assert body["rateLimit"] == {"windowMs": 30000, "max": 50}
        assert body["webhookDefault"]["url"] == "http://fallback"

    def test_user_key_is_forbidden(self, client):
        assert client.get("/api/admin/config", headers=USER_A).status_code == 403
        assert client.post("/api/admin/ratelimit", json={"max": 1}, headers=USER_A).status_code == 403

    def test_rate_limit_update_applies_immediately(self, client):
        response = client.post("/api/admin/ratelimit", json={"max": 2}, headers=ADMIN)

        assert response.status_code == 200
        assert response.json()["rateLimit"]["max"] == 2
        statuses = [client.get("/api/sessions", headers=ADMIN).status_code for _ in range(3)]
        assert statuses == [200, 200, 429]

    def test_rate_limit_rejects_non_positive(self, client):
        response = client.post("/api/admin/ratelimit", json={"windowMs": 0}, headers=ADMIN)
        assert response.status_code == 422

    def test_webhook_default_update(self, client):
        client.post("/api/sessions", json={"id": "s1"}, headers=ADMIN)

        response = client.post(
            "/api/admin/webhook-default",
            json={"url": "http://fallback", "secret": "k1"},
            headers=ADMIN,
        )

        assert response.status_code == 200
        assert response.json()["webhookDefault"] == {"url": "http://fallback", "secret": "k1"}
        manager = client.app.state.session_manager
        assert manager.default_webhook.targets == ["http://fallback"]
        assert client.get("/api/admin/config", headers=ADMIN).json()["webhookDefault"]["secret"] == "k1"
