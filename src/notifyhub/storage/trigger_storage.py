"""
Trigger Storage

PostgreSQL storage for notification triggers and the templates they send.
"""
import logging
from datetime import datetime
from typing import Optional, List, Dict
from uuid import UUID

from .base import BaseStorage
from ..models.trigger import NotificationTrigger, NotificationTemplate

logger = logging.getLogger("notifyhub.storage.trigger")


class TriggerStorage(BaseStorage):
    """Storage for NotificationTrigger and NotificationTemplate entities"""

    async def create(self, trigger: NotificationTrigger) -> NotificationTrigger:
        """Create a new trigger"""
        query = """
            INSERT INTO notification_triggers (
                id, org_id, event_type, template_id, days_before,
                is_active, created_at, updated_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
            RETURNING *
        """
        row = await self.fetchrow(
            query,
            trigger.id, trigger.org_id, trigger.event_type, trigger.template_id,
            trigger.days_before, trigger.is_active,
            trigger.created_at, trigger.updated_at
        )
        return self._row_to_trigger(row)

    async def get_by_id(self, trigger_id: UUID) -> Optional[NotificationTrigger]:
        """Get trigger by ID"""
        row = await self.fetchrow("SELECT * FROM notification_triggers WHERE id = $1", trigger_id)
        return self._row_to_trigger(row) if row else None

    async def list_by_org(self, org_id: UUID, active_only: bool = False) -> List[NotificationTrigger]:
        """List a tenant's triggers in creation order"""
        if active_only:
            query = """
                SELECT * FROM notification_triggers
                WHERE org_id = $1 AND is_active = true
                ORDER BY created_at
            """
        else:
            query = "SELECT * FROM notification_triggers WHERE org_id = $1 ORDER BY created_at"
        rows = await self.fetch(query, org_id)
        return [self._row_to_trigger(row) for row in rows]

    async def list_orgs_with_active_triggers(self) -> List[UUID]:
        """Tenants that have at least one active trigger"""
        rows = await self.fetch(
            "SELECT DISTINCT org_id FROM notification_triggers WHERE is_active = true"
        )
        return [row["org_id"] for row in rows]

    async def update(self, trigger: NotificationTrigger) -> Optional[NotificationTrigger]:
        """Update trigger fields"""
        trigger.updated_at = datetime.utcnow()
        query = """
            UPDATE notification_triggers
            SET event_type = $2, template_id = $3, days_before = $4,
                is_active = $5, updated_at = $6
            WHERE id = $1
            RETURNING *
        """
        row = await self.fetchrow(
            query,
            trigger.id, trigger.event_type, trigger.template_id,
            trigger.days_before, trigger.is_active, trigger.updated_at
        )
        return self._row_to_trigger(row) if row else None

    async def set_active(self, trigger_id: UUID, is_active: bool) -> Optional[NotificationTrigger]:
        """Toggle a trigger"""
        query = """
            UPDATE notification_triggers
            SET is_active = $2, updated_at = $3
            WHERE id = $1
            RETURNING *
        """
        row = await self.fetchrow(query, trigger_id, is_active, datetime.utcnow())
        return self._row_to_trigger(row) if row else None

    async def delete(self, trigger_id: UUID) -> bool:
        """Delete a trigger"""
        result = await self.execute("DELETE FROM notification_triggers WHERE id = $1", trigger_id)
        return "DELETE 1" in result

    async def get_templates(self, template_ids: List[UUID]) -> Dict[UUID, NotificationTemplate]:
        """Load templates by ID"""
        if not template_ids:
            return {}
        query = """
            SELECT id, org_id, title, message_template, channel
            FROM notification_templates
            WHERE id = ANY($1::uuid[])
        """
        rows = await self.fetch(query, list(template_ids))
        return {
            row["id"]: NotificationTemplate(
                id=row["id"],
                org_id=row["org_id"],
                title=row["title"] or "",
                message_template=row["message_template"] or "",
                channel=row["channel"] or "whatsapp",
            )
            for row in rows
        }

    def _row_to_trigger(self, row) -> NotificationTrigger:
        """Convert database row to NotificationTrigger"""
        return NotificationTrigger(
            id=row["id"],
            org_id=row["org_id"],
            event_type=row["event_type"],
            template_id=row["template_id"],
            days_before=row["days_before"],
            is_active=row["is_active"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
