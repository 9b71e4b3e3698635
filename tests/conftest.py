"""Shared test fixtures and in-memory storage fakes."""

from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID, uuid4

import pytest

from notifyhub.models.channel import ChannelSetting, ChannelType, parse_channel_config
from notifyhub.models.notification import NotificationLog
from notifyhub.models.trigger import AutopilotSettings


class FakeLogStorage:
    """In-memory NotificationLogStorage with the same conditional-update semantics."""

    def __init__(self):
        self.rows: Dict[UUID, NotificationLog] = {}

    async def create(self, entry: NotificationLog) -> NotificationLog:
        self.rows[entry.id] = replace(entry)
        return replace(entry)

    async def get_by_id(self, log_id: UUID) -> Optional[NotificationLog]:
        row = self.rows.get(log_id)
        return replace(row) if row else None

    async def transition(self, log_id, from_statuses, to_status, error_message=None,
                         external_message_id=None, external_peer_id=None):
        row = self.rows.get(log_id)
        if row is None or row.status not in from_statuses:
            return None
        row.status = to_status
        row.updated_at = datetime.now()
        if error_message is not None:
            row.error_message = error_message
        if external_message_id is not None:
            row.external_message_id = external_message_id
        if external_peer_id is not None:
            row.external_peer_id = external_peer_id
        return replace(row)

    async def mark_read(self, log_id, from_statuses, read_at):
        row = self.rows.get(log_id)
        if row is None or row.status not in from_statuses or row.read_at is not None:
            return None
        row.status = "read"
        row.read_at = read_at
        row.updated_at = read_at
        return replace(row)

    async def list_by_status(self, org_id, statuses, limit=200):
        rows = [r for r in self.rows.values() if r.org_id == org_id and r.status in statuses]
        return sorted(rows, key=lambda r: r.sent_at)[:limit]

    async def list_recent(self, org_id, limit=30, status=None):
        rows = [r for r in self.rows.values()
                if r.org_id == org_id and (status is None or r.status == status)]
        return sorted(rows, key=lambda r: r.sent_at, reverse=True)[:limit]

    async def list_statuses(self, org_id, since, until=None):
        return [r.status for r in self.rows.values()
                if r.org_id == org_id and r.sent_at >= since and (until is None or r.sent_at <= until)]

    async def list_unread_sent(self, org_id, channel):
        return [replace(r) for r in self.rows.values()
                if r.org_id == org_id and r.channel == channel and r.status == "sent"
                and r.external_message_id and r.external_peer_id and r.read_at is None]

    async def exists_for_trigger(self, trigger_id, client_id, policy_id=None, sale_id=None, since=None):
        for r in self.rows.values():
            if r.trigger_id != trigger_id or r.client_id != client_id:
                continue
            if policy_id:
                if r.policy_id == policy_id:
                    return True
            elif sale_id:
                if r.sale_id == sale_id:
                    return True
            elif since is None or r.sent_at >= since:
                return True
        return False


class FakeAgentSettingsStorage:
    """In-memory AgentSettingsStorage."""

    def __init__(self, settings: Optional[List[AutopilotSettings]] = None):
        self.settings = {s.org_id: s for s in (settings or [])}

    async def get(self, org_id):
        return self.settings.get(org_id)

    async def save_schedule(self, org_id, auto_process_time, auto_process_days, test_mode):
        current = self.settings.get(org_id) or AutopilotSettings(org_id=org_id)
        current.auto_process_time = auto_process_time
        current.auto_process_days = list(auto_process_days)
        current.test_mode = test_mode
        self.settings[org_id] = current
        return current

    async def set_last_auto_run_date(self, org_id, run_date):
        current = self.settings.setdefault(org_id, AutopilotSettings(org_id=org_id))
        if current.last_auto_run_date == run_date:
            return False
        current.last_auto_run_date = run_date
        return True


def make_setting(channel: str, config: dict, is_active: bool = True, org_id=None) -> ChannelSetting:
    """ChannelSetting built the way storage builds it from a row."""
    channel_type = ChannelType(channel)
    return ChannelSetting(
        org_id=org_id or uuid4(),
        channel=channel_type,
        is_active=is_active,
        config=parse_channel_config(channel_type, config),
    )


@pytest.fixture
def org_id():
    return uuid4()


@pytest.fixture
def user_id():
    return uuid4()


@pytest.fixture
def log_storage():
    return FakeLogStorage()
