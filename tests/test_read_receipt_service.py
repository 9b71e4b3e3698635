"""Tests for Telegram read receipt reconciliation."""

import asyncio
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from notifyhub.errors import PersistenceError, TransientProviderError
from notifyhub.models.notification import NotificationLog
from notifyhub.services.ledger_service import LedgerService
from notifyhub.services.read_receipt_service import ReadReceiptReconciler

from .conftest import make_setting

USER_SESSION = {"connection_type": "user_api", "session_string": "s", "api_id": "1", "api_hash": "h"}


class FakeSession:
    """Async context manager standing in for TelegramSession"""

    def __init__(self, watermarks, failing_peers=(), fail_connect=False, slow_peers=()):
        self.watermarks = watermarks
        self.failing_peers = set(failing_peers)
        self.slow_peers = set(slow_peers)
        self.fail_connect = fail_connect
        self.closed = False

    async def __aenter__(self):
        if self.fail_connect:
            raise TransientProviderError("Telegram connect failed")
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.closed = True

    async def resolve_entity(self, peer_id):
        if peer_id in self.failing_peers:
            raise TransientProviderError(f"peer {peer_id} unreachable")
        return peer_id

    async def get_read_watermark(self, entity):
        if entity in self.slow_peers:
            await asyncio.sleep(5)
        return self.watermarks.get(entity, 0)


async def _sent_row(log_storage, org_id, message_id, peer_id="555"):
    row = NotificationLog(
        org_id=org_id,
        channel="telegram",
        status="sent",
        external_message_id=message_id,
        external_peer_id=peer_id,
    )
    return await log_storage.create(row)


def _make_reconciler(log_storage, settings, sessions, peer_timeout=30.0):
    settings_storage = MagicMock()
    settings_storage.list_active_by_channel = AsyncMock(return_value=settings)
    by_org = {s.org_id: session for s, session in zip(settings, sessions)}
    factory = MagicMock(side_effect=lambda setting: by_org[setting.org_id])
    return ReadReceiptReconciler(
        settings_storage, LedgerService(log_storage), session_factory=factory, peer_timeout=peer_timeout
    )


class TestReconciler:
    @pytest.mark.asyncio
    async def test_marks_rows_up_to_watermark(self, org_id, log_storage):
        """Watermark 105 covers messages 100 and 104 but not 110."""
        rows = [await _sent_row(log_storage, org_id, mid) for mid in ("100", "104", "110")]
        session = FakeSession({"555": 105})
        reconciler = _make_reconciler(
            log_storage, [make_setting("telegram", USER_SESSION, org_id=org_id)], [session]
        )

        result = await reconciler.run()

        assert result.updated == 2
        assert result.configs_checked == 1
        statuses = [log_storage.rows[r.id].status for r in rows]
        assert statuses == ["read", "read", "sent"]
        assert log_storage.rows[rows[0].id].read_at is not None
        assert log_storage.rows[rows[2].id].read_at is None
        assert session.closed is True

    @pytest.mark.asyncio
    async def test_second_run_is_idempotent(self, org_id, log_storage):
        await _sent_row(log_storage, org_id, "100")
        setting = make_setting("telegram", USER_SESSION, org_id=org_id)

        first = await _make_reconciler(log_storage, [setting], [FakeSession({"555": 200})]).run()
        second = await _make_reconciler(log_storage, [setting], [FakeSession({"555": 200})]).run()

        assert first.updated == 1
        assert second.updated == 0

    @pytest.mark.asyncio
    async def test_failing_peer_is_skipped(self, org_id, log_storage):
        await _sent_row(log_storage, org_id, "10", peer_id="bad")
        good = await _sent_row(log_storage, org_id, "11", peer_id="good")
        session = FakeSession({"good": 50}, failing_peers=["bad"])
        reconciler = _make_reconciler(
            log_storage, [make_setting("telegram", USER_SESSION, org_id=org_id)], [session]
        )

        result = await reconciler.run()

        assert result.updated == 1
        assert log_storage.rows[good.id].status == "read"
        assert len(result.errors) == 1

    @pytest.mark.asyncio
    async def test_failing_config_does_not_stop_others(self, log_storage):
        broken_org, healthy_org = uuid4(), uuid4()
        await _sent_row(log_storage, broken_org, "1")
        healthy_row = await _sent_row(log_storage, healthy_org, "1")
        settings = [
            make_setting("telegram", USER_SESSION, org_id=broken_org),
            make_setting("telegram", USER_SESSION, org_id=healthy_org),
        ]
        reconciler = _make_reconciler(
            log_storage, settings, [FakeSession({}, fail_connect=True), FakeSession({"555": 1})]
        )

        result = await reconciler.run()

        assert result.updated == 1
        assert log_storage.rows[healthy_row.id].status == "read"
        assert len(result.errors) == 1
        assert str(broken_org) in result.errors[0]

    @pytest.mark.asyncio
    async def test_bot_settings_are_ignored(self, org_id, log_storage):
        await _sent_row(log_storage, org_id, "1")
        factory = MagicMock()
        settings_storage = MagicMock()
        settings_storage.list_active_by_channel = AsyncMock(
            return_value=[make_setting("telegram", {"bot_token": "t"}, org_id=org_id)]
        )
        reconciler = ReadReceiptReconciler(settings_storage, LedgerService(log_storage), session_factory=factory)

        result = await reconciler.run()

        assert result.configs_checked == 0
        factory.assert_not_called()

    @pytest.mark.asyncio
    async def test_non_numeric_message_id_is_skipped(self, org_id, log_storage):
        odd = await _sent_row(log_storage, org_id, "msg-abc")
        reconciler = _make_reconciler(
            log_storage,
            [make_setting("telegram", USER_SESSION, org_id=org_id)],
            [FakeSession({"555": 1000})],
        )

        result = await reconciler.run()

        assert result.updated == 0
        assert log_storage.rows[odd.id].status == "sent"

    @pytest.mark.asyncio
    async def test_slow_peer_times_out_alone(self, org_id, log_storage):
        first = await _sent_row(log_storage, org_id, "1", peer_id="a")
        slow = await _sent_row(log_storage, org_id, "1", peer_id="slow")
        last = await _sent_row(log_storage, org_id, "1", peer_id="c")
        session = FakeSession({"a": 10, "slow": 10, "c": 10}, slow_peers=["slow"])
        reconciler = _make_reconciler(
            log_storage, [make_setting("telegram", USER_SESSION, org_id=org_id)], [session], peer_timeout=0.05
        )

        result = await reconciler.run()

        assert result.updated == 2
        assert log_storage.rows[first.id].status == "read"
        assert log_storage.rows[slow.id].status == "sent"
        assert log_storage.rows[last.id].status == "read"
        assert result.errors == ["Peer slow: timed out"]

    @pytest.mark.asyncio
    async def test_failed_write_keeps_other_peers_going(self, org_id, log_storage):
        """One row that cannot be written does not lose the count or skip later peers."""
        rows = {peer: await _sent_row(log_storage, org_id, "1", peer_id=peer) for peer in ("a", "b", "c")}
        mark_read = log_storage.mark_read

        async def flaky_mark_read(log_id, from_statuses, read_at):
            if log_id == rows["b"].id:
                raise PersistenceError("write failed")
            return await mark_read(log_id, from_statuses, read_at)

        log_storage.mark_read = flaky_mark_read
        session = FakeSession({"a": 10, "b": 10, "c": 10})
        reconciler = _make_reconciler(
            log_storage, [make_setting("telegram", USER_SESSION, org_id=org_id)], [session]
        )

        result = await reconciler.run()

        assert result.updated == 2
        assert result.failed_writes == 1
        assert log_storage.rows[rows["a"].id].status == "read"
        assert log_storage.rows[rows["b"].id].status == "sent"
        assert log_storage.rows[rows["c"].id].status == "read"

    @pytest.mark.asyncio
    async def test_all_writes_failing_is_raised(self, org_id, log_storage):
        await _sent_row(log_storage, org_id, "1")
        log_storage.mark_read = AsyncMock(side_effect=PersistenceError("connection refused"))
        reconciler = _make_reconciler(
            log_storage, [make_setting("telegram", USER_SESSION, org_id=org_id)], [FakeSession({"555": 10})]
        )

        with pytest.raises(PersistenceError):
            await reconciler.run()
