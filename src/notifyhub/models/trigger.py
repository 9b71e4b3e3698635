"""
Trigger Models

NotificationTrigger: rule that fires a templated notification N days
before a business event.
NotificationTemplate: message template a trigger sends.
AutopilotSettings: per-tenant schedule of the automatic pass.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import List, Optional
from uuid import UUID, uuid4


class TriggerEventType(str, Enum):
    """Business events a trigger can watch"""
    BIRTHDAY = "birthday"                  # client's birthday (today)
    POLICY_EXPIRY = "policy_expiry"        # policy end_date within days_before
    DEBT_REMINDER = "debt_reminder"        # unpaid installment due within days_before


DEFAULT_AUTO_PROCESS_TIME = "09:00"
DEFAULT_AUTO_PROCESS_DAYS = [1, 2, 3, 4, 5]    # ISO weekdays, Mon-Fri


@dataclass
class NotificationTrigger:
    """
    Automatic notification rule.

    Toggled between enabled/disabled via is_active; every edit bumps updated_at.
    """
    id: UUID = field(default_factory=uuid4)
    org_id: UUID = field(default_factory=uuid4)
    event_type: str = TriggerEventType.POLICY_EXPIRY.value
    template_id: Optional[UUID] = None
    days_before: int = 0
    is_active: bool = True

    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> dict:
        """Convert to dictionary for API response"""
        return {
            "id": str(self.id),
            "org_id": str(self.org_id),
            "event_type": self.event_type,
            "template_id": str(self.template_id) if self.template_id else None,
            "days_before": self.days_before,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class NotificationTemplate:
    """Message template (authored elsewhere, read-only here)"""
    id: UUID = field(default_factory=uuid4)
    org_id: UUID = field(default_factory=uuid4)
    title: str = ""
    message_template: str = ""
    channel: str = "whatsapp"              # may be a comma-separated list

    @property
    def primary_channel(self) -> str:
        """First channel of the template's channel list"""
        first = (self.channel or "").split(",")[0].strip()
        return first or "whatsapp"


@dataclass
class AutopilotSettings:
    """
    Autopilot schedule of a tenant (singleton per org).

    last_auto_run_date is the durable guard against a second
    automatic pass on the same calendar day.
    """
    org_id: UUID = field(default_factory=uuid4)
    auto_process_time: str = DEFAULT_AUTO_PROCESS_TIME          # "HH:MM"
    auto_process_days: List[int] = field(default_factory=lambda: list(DEFAULT_AUTO_PROCESS_DAYS))
    last_auto_run_date: Optional[date] = None
    test_mode: bool = True

    def to_dict(self) -> dict:
        """Convert to dictionary for API response"""
        return {
            "org_id": str(self.org_id),
            "auto_process_time": self.auto_process_time,
            "auto_process_days": list(self.auto_process_days),
            "last_auto_run_date": self.last_auto_run_date.isoformat() if self.last_auto_run_date else None,
            "test_mode": self.test_mode,
        }
