"""Tests for the autopilot pass."""

from datetime import date, datetime
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from notifyhub.errors import PersistenceError
from notifyhub.models.notification import NotificationLog
from notifyhub.models.recipient import Recipient
from notifyhub.models.trigger import AutopilotSettings, NotificationTemplate, NotificationTrigger
from notifyhub.services.autopilot_service import AutopilotService
from notifyhub.services.trigger_service import TriggerService

from .conftest import FakeAgentSettingsStorage, FakeLogStorage

# Monday, inside the default 09:00 window.
NOW = datetime(2026, 10, 19, 9, 5)


def _make_autopilot(org_id, settings=None, recipients=None, has_channel=True, log_storage=None,
                    event_type="policy_expiry", days_before=14):
    log_storage = log_storage or FakeLogStorage()
    template = NotificationTemplate(
        org_id=org_id,
        title="Policy expiry",
        message_template="{{customer_name}}, your policy {{policy}} ends {{end_date}}",
        channel="telegram,whatsapp",
    )
    trigger = NotificationTrigger(
        org_id=org_id, event_type=event_type, template_id=template.id, days_before=days_before
    )

    trigger_storage = MagicMock()
    trigger_storage.list_orgs_with_active_triggers = AsyncMock(return_value=[org_id])
    trigger_storage.list_by_org = AsyncMock(return_value=[trigger])
    trigger_storage.get_templates = AsyncMock(return_value={template.id: template})

    recipient_storage = MagicMock()
    recipient_storage.expiring_policies = AsyncMock(return_value=recipients or [])
    recipient_storage.debts_due = AsyncMock(return_value=recipients or [])

    agent_settings = FakeAgentSettingsStorage(
        [settings or AutopilotSettings(org_id=org_id, test_mode=False)]
    )

    channel_validator = MagicMock()
    channel_validator.has_any_active_channel = AsyncMock(return_value=has_channel)

    async def dispatch(entry, address, test_mode=False):
        return await log_storage.create(entry)

    notification_service = MagicMock()
    notification_service.dispatch = AsyncMock(side_effect=dispatch)
    notification_service.release_sessions = AsyncMock()

    service = AutopilotService(
        TriggerService(trigger_storage, agent_settings, window_minutes=30),
        trigger_storage,
        recipient_storage,
        log_storage,
        channel_validator,
        notification_service,
    )
    return service, trigger, agent_settings, notification_service


def _recipient(**overrides):
    fields = dict(
        client_id=uuid4(),
        full_name="Иван Петров",
        phone="+79001234567",
        telegram_id="555",
        policy_id=uuid4(),
        policy_number="XXX-0001",
        end_date=date(2026, 11, 2),
    )
    fields.update(overrides)
    return Recipient(**fields)


class TestAutopilotPass:
    @pytest.mark.asyncio
    async def test_due_tenant_is_dispatched_and_recorded(self, org_id):
        recipient = _recipient()
        service, trigger, agent_settings, notifications = _make_autopilot(org_id, recipients=[recipient])

        result = await service.run_autopilot_pass(NOW)

        assert result.dispatched == 1
        assert result.tenants_processed == 1
        entry, address = notifications.dispatch.await_args.args
        assert entry.channel == "telegram"
        assert entry.trigger_id == trigger.id
        assert entry.policy_id == recipient.policy_id
        assert entry.source == "scheduled"
        assert entry.message == "Иван Петров, your policy XXX-0001 ends 02.11.2026"
        assert address["chat_id"] == "555"
        assert notifications.dispatch.await_args.kwargs == {"test_mode": False}
        assert agent_settings.settings[org_id].last_auto_run_date == NOW.date()

    @pytest.mark.asyncio
    async def test_already_ran_today_is_skipped(self, org_id):
        """A second pass the same day dispatches nothing and leaves the record alone."""
        settings = AutopilotSettings(org_id=org_id, last_auto_run_date=NOW.date())
        service, _, agent_settings, notifications = _make_autopilot(
            org_id, settings=settings, recipients=[_recipient()]
        )
        agent_settings.set_last_auto_run_date = AsyncMock()

        result = await service.run_autopilot_pass(NOW)

        assert result.dispatched == 0
        assert result.skipped == {str(org_id): "already_ran"}
        notifications.dispatch.assert_not_called()
        agent_settings.set_last_auto_run_date.assert_not_called()

    @pytest.mark.asyncio
    async def test_two_passes_same_day(self, org_id):
        service, _, _, notifications = _make_autopilot(org_id, recipients=[_recipient()])

        await service.run_autopilot_pass(NOW)
        second = await service.run_autopilot_pass(datetime(2026, 10, 19, 9, 15))

        assert notifications.dispatch.await_count == 1
        assert second.skipped == {str(org_id): "already_ran"}

    @pytest.mark.asyncio
    async def test_no_active_channel_does_not_record(self, org_id):
        """Without a usable channel the run is retried in the next window."""
        service, _, agent_settings, notifications = _make_autopilot(
            org_id, recipients=[_recipient()], has_channel=False
        )

        result = await service.run_autopilot_pass(NOW)

        assert result.skipped == {str(org_id): "no_active_channel"}
        notifications.dispatch.assert_not_called()
        assert agent_settings.settings[org_id].last_auto_run_date is None

    @pytest.mark.asyncio
    async def test_outside_window_is_skipped(self, org_id):
        service, _, _, notifications = _make_autopilot(org_id, recipients=[_recipient()])

        result = await service.run_autopilot_pass(datetime(2026, 10, 19, 14, 0))

        assert result.skipped == {str(org_id): "outside_window"}
        notifications.dispatch.assert_not_called()

    @pytest.mark.asyncio
    async def test_policy_already_notified_is_not_resent(self, org_id):
        recipient = _recipient()
        log_storage = FakeLogStorage()
        service, trigger, agent_settings, notifications = _make_autopilot(
            org_id, recipients=[recipient], log_storage=log_storage
        )
        await log_storage.create(NotificationLog(
            org_id=org_id,
            client_id=recipient.client_id,
            trigger_id=trigger.id,
            policy_id=recipient.policy_id,
            sent_at=datetime(2026, 10, 12, 9, 0),
        ))

        result = await service.run_autopilot_pass(NOW)

        assert result.dispatched == 0
        notifications.dispatch.assert_not_called()
        assert agent_settings.settings[org_id].last_auto_run_date == NOW.date()

    @pytest.mark.asyncio
    async def test_manual_run_ignores_schedule(self, org_id):
        settings = AutopilotSettings(org_id=org_id, last_auto_run_date=NOW.date(), test_mode=True)
        service, _, _, notifications = _make_autopilot(
            org_id, settings=settings, recipients=[_recipient()]
        )

        result = await service.run_autopilot_pass(NOW, source="manual", org_ids=[org_id])

        assert result.dispatched == 1
        assert notifications.dispatch.await_args.kwargs == {"test_mode": True}

    @pytest.mark.asyncio
    async def test_manual_run_without_output_does_not_record(self, org_id):
        service, _, agent_settings, _ = _make_autopilot(org_id, recipients=[])

        await service.run_autopilot_pass(datetime(2026, 10, 19, 15, 0), source="manual", org_ids=[org_id])

        assert agent_settings.settings[org_id].last_auto_run_date is None

    @pytest.mark.asyncio
    async def test_tenant_failure_is_collected(self, org_id):
        service, _, _, _ = _make_autopilot(org_id)
        service.channel_validator.has_any_active_channel = AsyncMock(side_effect=RuntimeError("db down"))

        result = await service.run_autopilot_pass(NOW)

        assert result.dispatched == 0
        assert len(result.errors) == 1
        assert "db down" in result.errors[0]

    @pytest.mark.asyncio
    async def test_store_failure_aborts_the_pass(self, org_id):
        """A store outage is raised, not reported as a pass with nothing to do."""
        service, _, _, notifications = _make_autopilot(org_id, recipients=[_recipient()])
        service.channel_validator.has_any_active_channel = AsyncMock(
            side_effect=PersistenceError("connection refused")
        )

        with pytest.raises(PersistenceError):
            await service.run_autopilot_pass(NOW)
        notifications.dispatch.assert_not_called()

    @pytest.mark.asyncio
    async def test_sessions_are_released_after_each_tenant(self, org_id):
        service, _, _, notifications = _make_autopilot(org_id, recipients=[_recipient()])

        await service.run_autopilot_pass(NOW)

        notifications.release_sessions.assert_awaited_once()


class TestRecipientFiltering:
    @pytest.mark.asyncio
    async def test_client_without_contact_is_skipped(self, org_id):
        unreachable = _recipient(phone=None, telegram_id=None)
        service, _, _, notifications = _make_autopilot(org_id, recipients=[unreachable])

        result = await service.run_autopilot_pass(NOW)

        assert result.dispatched == 0
        notifications.dispatch.assert_not_called()

    @pytest.mark.asyncio
    async def test_debt_reminder_is_sent_once_per_installment(self, org_id):
        """An installment due on the 22nd matches every day from the 19th but is reminded once."""
        sale_id = uuid4()
        debtor = _recipient(policy_id=None, sale_id=sale_id, debt="15000", due_date=date(2026, 10, 22))
        log_storage = FakeLogStorage()
        service, _, _, notifications = _make_autopilot(
            org_id, recipients=[debtor], log_storage=log_storage,
            event_type="debt_reminder", days_before=3,
        )

        for day in (19, 20, 21, 22):
            await service.run_autopilot_pass(datetime(2026, 10, day, 9, 5))

        assert notifications.dispatch.await_count == 1
        rows = list(log_storage.rows.values())
        assert len(rows) == 1
        assert rows[0].sale_id == sale_id

    @pytest.mark.asyncio
    async def test_new_installment_of_same_client_is_reminded(self, org_id):
        client_id = uuid4()
        first = _recipient(client_id=client_id, policy_id=None, sale_id=uuid4())
        log_storage = FakeLogStorage()
        service, _, _, notifications = _make_autopilot(
            org_id, recipients=[first], log_storage=log_storage, event_type="debt_reminder", days_before=3,
        )
        await service.run_autopilot_pass(NOW)

        second = _recipient(client_id=client_id, policy_id=None, sale_id=uuid4())
        service.recipient_storage.debts_due = AsyncMock(return_value=[second])
        await service.run_autopilot_pass(datetime(2026, 10, 20, 9, 5))

        assert notifications.dispatch.await_count == 2
