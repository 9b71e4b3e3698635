"""Tests for the HTTP API surface."""

from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from notifyhub.app import app
from notifyhub.errors import AuthorizationError, PersistenceError
from notifyhub.models.channel import ChannelSetting
from notifyhub.routes.auth import create_token
from notifyhub.services.autopilot_service import AutopilotResult
from notifyhub.services.read_receipt_service import ReconcileResult


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def auth_headers(user_id, org_id):
    return {"Authorization": f"Bearer {create_token(user_id, org_id)}"}


def _make_engine():
    engine = MagicMock()
    engine.audit_gate.require_logged = AsyncMock(return_value=None)
    engine.audit_gate.log_best_effort = AsyncMock(return_value=True)
    engine.messenger_settings_storage.get_by_channel = AsyncMock(return_value=None)
    engine.messenger_settings_storage.upsert = AsyncMock(side_effect=lambda s: s)
    return engine


def _patch_engine(engine, *modules):
    patches = [patch(f"notifyhub.routes.{m}.get_engine_service", return_value=engine) for m in modules]
    for p in patches:
        p.start()
    return patches


class TestAuth:
    def test_missing_token(self, client):
        assert client.get("/api/v1/auth/me").status_code == 401

    def test_me(self, client, auth_headers, user_id, org_id):
        response = client.get("/api/v1/auth/me", headers=auth_headers)
        assert response.status_code == 200
        assert response.json() == {"user_id": str(user_id), "org_id": str(org_id)}


class TestJobRoutes:
    def test_autopilot_job(self, client):
        with patch("notifyhub.jobs.run_autopilot_pass", AsyncMock(return_value=AutopilotResult(dispatched=3))):
            response = client.post("/api/v1/jobs/autopilot")
        assert response.status_code == 200
        assert response.json() == {"dispatched": 3}

    def test_read_receipt_job(self, client):
        with patch(
            "notifyhub.jobs.run_read_receipt_reconciliation",
            AsyncMock(return_value=ReconcileResult(updated=2)),
        ):
            response = client.post("/api/v1/jobs/read-receipts")
        assert response.json() == {"updated": 2}

    def test_store_failure_is_503(self, client):
        """A failed run must not look like a run that found nothing."""
        with patch("notifyhub.jobs.run_autopilot_pass", AsyncMock(side_effect=PersistenceError("connection refused"))):
            response = client.post("/api/v1/jobs/autopilot")
        assert response.status_code == 503
        assert "connection refused" in response.json()["detail"]

    def test_job_token(self, client):
        with patch("notifyhub.routes.jobs.Config.JOBS_TOKEN", "s3cret"), \
                patch("notifyhub.jobs.run_autopilot_pass", AsyncMock(return_value=AutopilotResult())):
            assert client.post("/api/v1/jobs/autopilot").status_code == 401
            ok = client.post("/api/v1/jobs/autopilot", headers={"X-Job-Token": "s3cret"})
            assert ok.status_code == 200


class TestChannelRoutes:
    def test_credentials_change_is_blocked_without_audit(self, client, auth_headers):
        engine = _make_engine()
        engine.audit_gate.require_logged = AsyncMock(side_effect=AuthorizationError("Action blocked: audit entry could not be written"))
        patches = _patch_engine(engine, "channels", "audit")
        try:
            response = client.put(
                "/api/v1/channels/telegram",
                json={"is_active": True, "config": {"bot_token": "123:abc"}},
                headers=auth_headers,
            )
        finally:
            for p in patches:
                p.stop()

        assert response.status_code == 403
        engine.messenger_settings_storage.upsert.assert_not_called()

    def test_save_channel_masks_secrets(self, client, auth_headers, org_id):
        engine = _make_engine()
        engine.channel_validator.validate_setting = MagicMock(
            return_value=MagicMock(to_dict=MagicMock(return_value={"is_configured": True}))
        )
        patches = _patch_engine(engine, "channels", "audit")
        try:
            response = client.put(
                "/api/v1/channels/telegram",
                json={"is_active": True, "config": {"bot_token": "123:abc"}},
                headers=auth_headers,
            )
        finally:
            for p in patches:
                p.stop()

        assert response.status_code == 200
        body = response.json()
        assert body["config"]["bot_token"] == "***"
        assert body["org_id"] == str(org_id)
        saved = engine.messenger_settings_storage.upsert.await_args.args[0]
        assert isinstance(saved, ChannelSetting)
        assert saved.config.bot_token == "123:abc"

    def test_unknown_channel(self, client, auth_headers):
        patches = _patch_engine(_make_engine(), "channels", "audit")
        try:
            response = client.get("/api/v1/channels/pigeon/validate", headers=auth_headers)
        finally:
            for p in patches:
                p.stop()
        assert response.status_code == 400


class TestAuditRoutes:
    def test_strict_event_blocked(self, client, auth_headers):
        engine = _make_engine()
        engine.audit_gate.require_logged = AsyncMock(side_effect=AuthorizationError("blocked"))
        patches = _patch_engine(engine, "audit")
        try:
            response = client.post(
                "/api/v1/audit/events/strict",
                json={"action": "delete", "category": "clients"},
                headers=auth_headers,
            )
        finally:
            for p in patches:
                p.stop()
        assert response.status_code == 403

    def test_best_effort_event(self, client, auth_headers, user_id):
        engine = _make_engine()
        patches = _patch_engine(engine, "audit")
        try:
            response = client.post(
                "/api/v1/audit/events",
                json={"action": "view_contact_phone", "client_id": str(uuid4())},
                headers=auth_headers,
            )
        finally:
            for p in patches:
                p.stop()

        assert response.json() == {"logged": True}
        entry = engine.audit_gate.log_best_effort.await_args.args[0]
        assert entry.user_id == user_id
        assert entry.action == "view_contact_phone"

    def test_rules_require_admin(self, client, auth_headers):
        engine = _make_engine()
        engine.audit_storage.get_user_role = AsyncMock(return_value="agent")
        patches = _patch_engine(engine, "audit")
        try:
            response = client.get("/api/v1/audit/rules", headers=auth_headers)
        finally:
            for p in patches:
                p.stop()
        assert response.status_code == 403


class TestNotificationRoutes:
    def test_send_to_unknown_client(self, client, auth_headers):
        engine = _make_engine()
        engine.notification_service.send_manual = AsyncMock(side_effect=LookupError("Client not found"))
        patches = _patch_engine(engine, "notifications", "audit")
        try:
            response = client.post(
                "/api/v1/notifications/send",
                json={"client_id": str(uuid4()), "channel": "telegram", "message": "Добрый день"},
                headers=auth_headers,
            )
        finally:
            for p in patches:
                p.stop()
        assert response.status_code == 404
