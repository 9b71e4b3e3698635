"""
Trigger Service

Business logic for notification triggers and the autopilot schedule.
Handles trigger CRUD, schedule validation, the daily run guard and
cron-based computation of the next automatic run.
"""
import logging
import re
from datetime import date, datetime, timedelta
from enum import Enum
from typing import List, Optional
from uuid import UUID

from croniter import croniter

from ..config import Config
from ..models.trigger import AutopilotSettings, NotificationTrigger, TriggerEventType
from ..storage.agent_settings_storage import AgentSettingsStorage
from ..storage.trigger_storage import TriggerStorage

logger = logging.getLogger("notifyhub.services.trigger")

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


class AutopilotDecision(str, Enum):
    """Why the autopilot does or does not run now"""
    DUE = "due"
    ALREADY_RAN = "already_ran"
    NOT_SCHEDULED_DAY = "not_scheduled_day"
    OUTSIDE_WINDOW = "outside_window"


def parse_time(value: str) -> tuple:
    """'HH:MM' -> (hour, minute); raises ValueError"""
    match = _TIME_RE.match(value or "")
    if not match:
        raise ValueError(f"Invalid time '{value}', expected HH:MM")
    return int(match.group(1)), int(match.group(2))


def cron_expression(settings: AutopilotSettings) -> str:
    """Cron expression for the schedule (ISO Sunday 7 is cron 0)"""
    hour, minute = parse_time(settings.auto_process_time)
    days = ",".join(str(d % 7) for d in sorted(set(settings.auto_process_days)))
    return f"{minute} {hour} * * {days or '*'}"


class TriggerService:
    """Service for trigger and autopilot schedule operations"""

    def __init__(
        self,
        trigger_storage: TriggerStorage,
        agent_settings_storage: AgentSettingsStorage,
        window_minutes: int = Config.AUTOPILOT_WINDOW_MINUTES,
    ):
        self.trigger_storage = trigger_storage
        self.agent_settings_storage = agent_settings_storage
        self.window = timedelta(minutes=window_minutes)

    # ==================== Triggers ====================

    async def list_triggers(self, org_id: UUID) -> List[NotificationTrigger]:
        return await self.trigger_storage.list_by_org(org_id)

    async def list_active_triggers(self, org_id: UUID) -> List[NotificationTrigger]:
        return await self.trigger_storage.list_by_org(org_id, active_only=True)

    async def get_trigger(self, trigger_id: UUID) -> Optional[NotificationTrigger]:
        return await self.trigger_storage.get_by_id(trigger_id)

    async def upsert_trigger(self, trigger: NotificationTrigger) -> NotificationTrigger:
        """
        Create or update a trigger.

        Raises ValueError for a negative days_before or unknown event type.
        """
        if trigger.days_before < 0:
            raise ValueError("days_before must be >= 0")
        trigger.event_type = TriggerEventType(trigger.event_type).value

        existing = await self.trigger_storage.get_by_id(trigger.id)
        if existing is None:
            created = await self.trigger_storage.create(trigger)
            logger.info(
                f"Created trigger {created.id} ({created.event_type}, "
                f"{created.days_before} days before) for org {created.org_id}"
            )
            return created

        updated = await self.trigger_storage.update(trigger)
        logger.info(f"Updated trigger {trigger.id}")
        return updated

    async def toggle(self, trigger_id: UUID, is_active: bool) -> Optional[NotificationTrigger]:
        trigger = await self.trigger_storage.set_active(trigger_id, is_active)
        if trigger:
            logger.info(f"Trigger {trigger_id} {'enabled' if is_active else 'disabled'}")
        return trigger

    async def delete_trigger(self, trigger_id: UUID) -> bool:
        deleted = await self.trigger_storage.delete(trigger_id)
        if deleted:
            logger.info(f"Deleted trigger {trigger_id}")
        return deleted

    # ==================== Autopilot settings ====================

    async def get_autopilot_settings(self, org_id: UUID) -> AutopilotSettings:
        """Stored settings, or defaults when the tenant never saved any"""
        settings = await self.agent_settings_storage.get(org_id)
        return settings or AutopilotSettings(org_id=org_id)

    async def save_autopilot_settings(
        self,
        org_id: UUID,
        auto_process_time: str,
        auto_process_days: List[int],
        test_mode: Optional[bool] = None,
    ) -> AutopilotSettings:
        """Validate and store the schedule"""
        parse_time(auto_process_time)
        days = sorted(set(int(d) for d in auto_process_days))
        if any(d < 1 or d > 7 for d in days):
            raise ValueError("auto_process_days must be ISO weekdays 1..7")

        if test_mode is None:
            test_mode = (await self.get_autopilot_settings(org_id)).test_mode

        settings = await self.agent_settings_storage.save_schedule(
            org_id, auto_process_time, days, test_mode
        )
        logger.info(f"Autopilot schedule for org {org_id}: {auto_process_time} on {days} (test_mode={test_mode})")
        return settings

    async def record_auto_run(self, org_id: UUID, run_date: date) -> bool:
        """
        Durably mark the day's automatic run.

        Returns False when run_date was already recorded.
        """
        changed = await self.agent_settings_storage.set_last_auto_run_date(org_id, run_date)
        if changed:
            logger.info(f"Recorded autopilot run for org {org_id} on {run_date}")
        return changed

    # ==================== Schedule ====================

    def is_due(self, settings: AutopilotSettings, now: datetime) -> AutopilotDecision:
        """Evaluate the schedule at now (local wall-clock time)"""
        today = now.date()
        if settings.last_auto_run_date == today:
            return AutopilotDecision.ALREADY_RAN

        if now.isoweekday() not in settings.auto_process_days:
            return AutopilotDecision.NOT_SCHEDULED_DAY

        hour, minute = parse_time(settings.auto_process_time)
        elapsed = now - now.replace(hour=hour, minute=minute, second=0, microsecond=0)
        if not timedelta(0) <= elapsed < self.window:
            return AutopilotDecision.OUTSIDE_WINDOW

        return AutopilotDecision.DUE

    def next_run_at(self, settings: AutopilotSettings, now: Optional[datetime] = None) -> Optional[datetime]:
        """Next scheduled slot after now, None when no days are selected"""
        if not settings.auto_process_days:
            return None
        return croniter(cron_expression(settings), now or datetime.now()).get_next(datetime)
