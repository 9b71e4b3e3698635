"""
Autopilot Service

Scheduled pass over all tenants with active triggers:
1. Checks the tenant's schedule (scheduled runs only)
2. Requires at least one configured channel, otherwise skips without
   recording the run so the next window retries
3. Matches recipients per trigger, drops unreachable and already
   notified ones, renders the template and dispatches through the ledger
4. Records the day's run once

Store failures abort the pass; other per-tenant and per-trigger errors
are collected into the result.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Dict, List, Optional
from uuid import UUID

from ..errors import PersistenceError
from ..models.notification import NotificationLog, NotificationSource
from ..models.recipient import Recipient
from ..models.trigger import NotificationTemplate, NotificationTrigger, TriggerEventType
from ..storage.notification_log_storage import NotificationLogStorage
from ..storage.recipient_storage import RecipientStorage
from ..storage.trigger_storage import TriggerStorage
from .channel_validator import ChannelValidator
from .notification_service import NotificationService
from .template_renderer import render_template
from .trigger_service import AutopilotDecision, TriggerService

logger = logging.getLogger("notifyhub.services.autopilot")


@dataclass
class AutopilotResult:
    """Outcome of one autopilot pass"""
    dispatched: int = 0
    tenants_processed: int = 0
    skipped: Dict[str, str] = field(default_factory=dict)     # org_id -> reason
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "dispatched": self.dispatched,
            "tenants_processed": self.tenants_processed,
            "skipped": dict(self.skipped),
            "errors": list(self.errors),
        }


class AutopilotService:
    """Runs notification triggers for every tenant on schedule"""

    def __init__(
        self,
        trigger_service: TriggerService,
        trigger_storage: TriggerStorage,
        recipient_storage: RecipientStorage,
        log_storage: NotificationLogStorage,
        channel_validator: ChannelValidator,
        notification_service: NotificationService,
    ):
        self.trigger_service = trigger_service
        self.trigger_storage = trigger_storage
        self.recipient_storage = recipient_storage
        self.log_storage = log_storage
        self.channel_validator = channel_validator
        self.notification_service = notification_service

    async def run_autopilot_pass(
        self,
        now: Optional[datetime] = None,
        source: str = NotificationSource.SCHEDULED.value,
        org_ids: Optional[List[UUID]] = None,
    ) -> AutopilotResult:
        """
        Process every tenant with active triggers (or only org_ids).

        Manual runs skip the schedule check.
        """
        now = now or datetime.now()
        result = AutopilotResult()

        if org_ids is None:
            org_ids = await self.trigger_storage.list_orgs_with_active_triggers()

        for org_id in org_ids:
            try:
                await self._run_tenant(org_id, now, source, result)
            except PersistenceError:
                raise
            except Exception as e:
                logger.error(f"Autopilot failed for org {org_id}: {e}")
                result.errors.append(f"Org {org_id}: {e}")

        logger.info(
            f"Autopilot pass ({source}) done: {result.dispatched} dispatched, "
            f"{result.tenants_processed} tenants, {len(result.skipped)} skipped, "
            f"{len(result.errors)} errors"
        )
        return result

    async def _run_tenant(self, org_id: UUID, now: datetime, source: str, result: AutopilotResult):
        settings = await self.trigger_service.get_autopilot_settings(org_id)

        if source == NotificationSource.SCHEDULED.value:
            decision = self.trigger_service.is_due(settings, now)
            if decision != AutopilotDecision.DUE:
                logger.debug(f"Autopilot skip org {org_id}: {decision.value}")
                result.skipped[str(org_id)] = decision.value
                return

        if not await self.channel_validator.has_any_active_channel(org_id):
            logger.warning(f"Autopilot skip org {org_id}: no configured messenger channel")
            result.skipped[str(org_id)] = "no_active_channel"
            return

        triggers = await self.trigger_service.list_active_triggers(org_id)
        templates = await self.trigger_storage.get_templates(
            [t.template_id for t in triggers if t.template_id]
        )

        produced = 0
        try:
            for trigger in triggers:
                template = templates.get(trigger.template_id)
                if template is None:
                    logger.warning(f"Trigger {trigger.id} has no template, skipping")
                    continue
                try:
                    produced += await self._process_trigger(
                        trigger, template, now, source, settings.test_mode
                    )
                except PersistenceError:
                    raise
                except Exception as e:
                    logger.error(f"Trigger {trigger.id} failed: {e}")
                    result.errors.append(f"Trigger {trigger.id}: {e}")
        finally:
            # User sessions are held only for the tenant's batch
            await self.notification_service.release_sessions()

        result.tenants_processed += 1
        result.dispatched += produced

        if source == NotificationSource.SCHEDULED.value or produced > 0:
            await self.trigger_service.record_auto_run(org_id, now.date())

    async def _match_recipients(self, trigger: NotificationTrigger, now: datetime) -> List[Recipient]:
        today = now.date()
        event_type = TriggerEventType(trigger.event_type)
        if event_type == TriggerEventType.BIRTHDAY:
            return await self.recipient_storage.birthdays(trigger.org_id, today)
        if event_type == TriggerEventType.POLICY_EXPIRY:
            return await self.recipient_storage.expiring_policies(trigger.org_id, today, trigger.days_before)
        return await self.recipient_storage.debts_due(trigger.org_id, today, trigger.days_before)

    async def _process_trigger(
        self,
        trigger: NotificationTrigger,
        template: NotificationTemplate,
        now: datetime,
        source: str,
        test_mode: bool,
    ) -> int:
        """Dispatch one trigger; returns the number of ledger rows produced"""
        recipients = await self._match_recipients(trigger, now)
        if not recipients:
            return 0

        # Birthdays repeat yearly; everything else is bound to a policy or sale
        year_start = datetime.combine(date(now.year, 1, 1), time.min)
        produced = 0
        for recipient in recipients:
            if not recipient.has_contact(template.primary_channel):
                logger.debug(f"Client {recipient.client_id} has no {template.primary_channel} contact, skipping")
                continue
            if await self.log_storage.exists_for_trigger(
                trigger.id,
                recipient.client_id,
                policy_id=recipient.policy_id,
                sale_id=recipient.sale_id,
                since=year_start,
            ):
                continue

            entry = NotificationLog(
                org_id=trigger.org_id,
                client_id=recipient.client_id,
                channel=template.primary_channel,
                message=render_template(template.message_template, recipient),
                source=source,
                template_id=template.id,
                template_title=template.title,
                trigger_id=trigger.id,
                policy_id=recipient.policy_id,
                sale_id=recipient.sale_id,
            )
            await self.notification_service.dispatch(entry, recipient.address(), test_mode=test_mode)
            produced += 1

        logger.info(f"Trigger {trigger.id} ({trigger.event_type}): {produced} of {len(recipients)} recipients notified")
        return produced
