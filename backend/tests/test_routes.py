"""Tests for HTTP routes using FastAPI TestClient."""

from contextlib import asynccontextmanager
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from notifyhub.notifications.engine import DispatchEngine
from notifyhub.notifications.senders import SendResult
from notifyhub.notifications.store import InMemoryDeliveryLogStore
from notifyhub.preferences.store import InMemoryPreferenceStore
from notifyhub.rate_limit import limiter

PREFERENCE_BODY = {
    "userId": "u1",
    "email": "u1@example.com",
    "preferences": {
        "marketing": True,
        "newsletter": True,
        "updates": True,
        "frequency": "daily",
        "channels": {"email": True, "sms": False, "push": True},
    },
    "timezone": "Europe/Rome",
}


@pytest.fixture
def app_client(stub_sender):
    """TestClient whose lifespan wires in-memory stores and a stub sender instead of the database."""
    from notifyhub.main import create_app

    @asynccontextmanager
    async def _test_lifespan(app):
        preferences = InMemoryPreferenceStore()
        engine = DispatchEngine(preferences, InMemoryDeliveryLogStore(), stub_sender, send_timeout=1.0)
        app.state.preference_store = preferences
        app.state.dispatch_engine = engine
        yield
        engine.shutdown()

    limiter.reset()
    with patch("notifyhub.main.lifespan", _test_lifespan):
        app = create_app()
        with TestClient(app, raise_server_exceptions=False) as client:
            yield client


@pytest.fixture
def with_preference(app_client):
    resp = app_client.post("/api/preferences", json=PREFERENCE_BODY)
    assert resp.status_code == 201
    return resp.json()


class TestHealthEndpoint:
    def test_health_returns_ok(self, app_client):
        response = app_client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["store"] == "ok"
        assert "version" in data
        assert "uptime_seconds" in data

    def test_security_headers(self, app_client):
        response = app_client.get("/health")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"


class TestPreferenceRoutes:
    def test_create(self, app_client):
        resp = app_client.post("/api/preferences", json=PREFERENCE_BODY)
        assert resp.status_code == 201
        data = resp.json()
        assert data["userId"] == "u1"
        assert data["preferences"]["channels"]["sms"] is False
        assert data["timezone"] == "Europe/Rome"
        assert data["createdAt"] == data["lastUpdated"]

    def test_duplicate_create_is_conflict(self, app_client, with_preference):
        resp = app_client.post("/api/preferences", json=PREFERENCE_BODY)
        assert resp.status_code == 409
        assert "error" in resp.json()

    @pytest.mark.parametrize(
        "body",
        [
            {"email": "u1@example.com"},
            {**PREFERENCE_BODY, "email": "nope"},
            {**PREFERENCE_BODY, "email": "a..b@c.d"},
            {**PREFERENCE_BODY, "email": "a@b.c."},
            {**PREFERENCE_BODY, "preferences": {"frequency": "hourly"}},
            {**PREFERENCE_BODY, "unexpected": 1},
        ],
    )
    def test_create_invalid_is_bad_request(self, app_client, body):
        resp = app_client.post("/api/preferences", json=body)
        assert resp.status_code == 400
        assert resp.json()["error"] == "Invalid request"

    def test_get(self, app_client, with_preference):
        resp = app_client.get("/api/preferences/u1")
        assert resp.status_code == 200
        assert resp.json() == with_preference

    def test_get_missing(self, app_client):
        assert app_client.get("/api/preferences/ghost").status_code == 404

    def test_patch_merges(self, app_client, with_preference):
        resp = app_client.patch("/api/preferences/u1", json={"preferences": {"marketing": False}})
        assert resp.status_code == 200
        data = resp.json()
        assert data["preferences"]["marketing"] is False
        assert data["preferences"]["newsletter"] is True
        assert data["email"] == "u1@example.com"
        assert data["lastUpdated"] >= data["createdAt"]

    def test_patch_missing(self, app_client):
        resp = app_client.patch("/api/preferences/ghost", json={"timezone": "UTC"})
        assert resp.status_code == 404

    def test_patch_empty_body(self, app_client, with_preference):
        assert app_client.patch("/api/preferences/u1", json={}).status_code == 400

    def test_patch_cannot_change_user_id(self, app_client, with_preference):
        assert app_client.patch("/api/preferences/u1", json={"userId": "u2"}).status_code == 400

    def test_delete_existing(self, app_client, with_preference):
        resp = app_client.delete("/api/preferences/u1")
        assert resp.status_code == 200
        assert resp.json()["deleted"] is True
        assert app_client.get("/api/preferences/u1").status_code == 404

    def test_delete_absent_is_ok(self, app_client):
        resp = app_client.delete("/api/preferences/ghost")
        assert resp.status_code == 200
        assert resp.json() == {"ok": True, "deleted": False, "message": "No preferences on file"}


class TestSendRoutes:
    def _send(self, client, **overrides):
        body = {"userId": "u1", "type": "marketing", "channel": "email", "content": {"title": "Sale"}}
        body.update(overrides)
        return client.post("/api/notifications/send", json=body)

    def test_sent(self, app_client, with_preference):
        resp = self._send(app_client)
        assert resp.status_code == 201
        data = resp.json()
        assert data["status"] == "sent"
        assert data["sentAt"] is not None
        assert data["failureReason"] is None
        assert data["notificationType"] == "marketing"
        assert data["metadata"] == {"title": "Sale"}

    def test_delivery_failure_is_still_created(self, app_client, with_preference, stub_sender):
        stub_sender.result = SendResult.failed("bounced")
        resp = self._send(app_client)
        assert resp.status_code == 201
        data = resp.json()
        assert data["status"] == "failed"
        assert data["failureReason"] == "bounced"
        assert data["sentAt"] is None

    def test_sender_crash_is_not_a_server_error(self, app_client, with_preference, stub_sender):
        stub_sender.exc = RuntimeError("provider exploded")
        resp = self._send(app_client)
        assert resp.status_code == 201
        assert resp.json()["failureReason"] == "sender_error"

    def test_channel_opted_out_is_forbidden(self, app_client, with_preference):
        resp = self._send(app_client, channel="sms")
        assert resp.status_code == 403
        data = resp.json()
        assert data["reason"] == "channel_opted_out"
        assert data["userId"] == "u1"
        assert data["channel"] == "sms"

    def test_no_preference_is_forbidden(self, app_client):
        resp = self._send(app_client, userId="stranger")
        assert resp.status_code == 403
        assert resp.json()["reason"] == "no_preference_on_file"

    def test_denied_send_writes_no_log(self, app_client, with_preference):
        self._send(app_client, channel="sms")
        assert app_client.get("/api/notifications/u1/logs").json() == []

    @pytest.mark.parametrize(
        "overrides",
        [{"type": "promo"}, {"channel": "fax"}, {"userId": ""}],
    )
    def test_invalid_input_is_bad_request(self, app_client, with_preference, overrides):
        assert self._send(app_client, **overrides).status_code == 400

    def test_missing_user_id_is_bad_request(self, app_client):
        resp = app_client.post("/api/notifications/send", json={"type": "updates", "channel": "email"})
        assert resp.status_code == 400


class TestLogRoutes:
    def test_logs_in_order(self, app_client, with_preference, stub_sender):
        first = app_client.post(
            "/api/notifications/send", json={"userId": "u1", "type": "updates", "channel": "email"}
        ).json()
        stub_sender.result = SendResult.failed("http_503")
        second = app_client.post(
            "/api/notifications/send", json={"userId": "u1", "type": "newsletter", "channel": "push"}
        ).json()

        resp = app_client.get("/api/notifications/u1/logs")
        assert resp.status_code == 200
        assert [e["id"] for e in resp.json()] == [first["id"], second["id"]]
        assert [e["status"] for e in resp.json()] == ["sent", "failed"]

    def test_logs_empty_for_unknown_user(self, app_client):
        resp = app_client.get("/api/notifications/nobody/logs")
        assert resp.status_code == 200
        assert resp.json() == []

    def test_get_single_log(self, app_client, with_preference):
        sent = app_client.post(
            "/api/notifications/send", json={"userId": "u1", "type": "updates", "channel": "push"}
        ).json()
        resp = app_client.get(f"/api/notifications/logs/{sent['id']}")
        assert resp.status_code == 200
        assert resp.json() == sent

    def test_get_single_log_not_found(self, app_client):
        assert app_client.get("/api/notifications/logs/not-a-uuid").status_code == 404
        assert app_client.get("/api/notifications/logs/00000000-0000-0000-0000-000000000000").status_code == 404

    def test_logs_survive_preference_deletion(self, app_client, with_preference):
        app_client.post("/api/notifications/send", json={"userId": "u1", "type": "updates", "channel": "email"})
        app_client.delete("/api/preferences/u1")
        assert len(app_client.get("/api/notifications/u1/logs").json()) == 1

    def test_user_named_logs_gets_their_list(self, app_client):
        app_client.post("/api/preferences", json={**PREFERENCE_BODY, "userId": "logs"})
        sent = app_client.post(
            "/api/notifications/send", json={"userId": "logs", "type": "updates", "channel": "email"}
        ).json()

        resp = app_client.get("/api/notifications/logs/logs")
        assert resp.status_code == 200
        assert [e["id"] for e in resp.json()] == [sent["id"]]
        assert app_client.get(f"/api/notifications/logs/{sent['id']}").json() == sent


class TestLifespan:
    def test_startup_composes_engine_and_shutdown_releases_sender(self, isolated_logging, monkeypatch):
        from notifyhub.config import settings
        from notifyhub.main import create_app

        monkeypatch.setattr(settings, "store_backend", "memory")
        sender = MagicMock()
        sender.send.return_value = SendResult.ok()
        limiter.reset()

        with patch("notifyhub.main.create_channel_sender", return_value=sender):
            app = create_app()
            with TestClient(app) as client:
                assert isinstance(app.state.dispatch_engine, DispatchEngine)
                assert client.get("/health").json()["status"] == "ok"
                sender.close.assert_not_called()

        sender.close.assert_called_once()
