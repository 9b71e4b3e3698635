"""
Notification Log Storage

PostgreSQL storage for the notification ledger.
Status changes are single conditional UPDATEs guarded by the expected
current status, so a row is either fully transitioned or left unchanged.
"""
import logging
from datetime import datetime
from typing import Optional, List
from uuid import UUID

from .base import BaseStorage
from ..models.notification import NotificationLog, NotificationStatus

logger = logging.getLogger("notifyhub.storage.notification_log")


class NotificationLogStorage(BaseStorage):
    """Storage for NotificationLog entities"""

    async def create(self, log_entry: NotificationLog) -> NotificationLog:
        """Insert a new ledger row"""
        query = """
            INSERT INTO notification_logs (
                id, org_id, client_id, channel, status, message, source,
                template_id, template_title, trigger_id, policy_id, sale_id,
                error_message, external_message_id, external_peer_id,
                sent_at, read_at, updated_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, $16, $17, $18)
            RETURNING *
        """
        row = await self.fetchrow(
            query,
            log_entry.id, log_entry.org_id, log_entry.client_id,
            log_entry.channel, log_entry.status, log_entry.message, log_entry.source,
            log_entry.template_id, log_entry.template_title,
            log_entry.trigger_id, log_entry.policy_id, log_entry.sale_id,
            log_entry.error_message, log_entry.external_message_id,
            log_entry.external_peer_id,
            log_entry.sent_at, log_entry.read_at, log_entry.updated_at
        )
        return self._row_to_log(row)

    async def get_by_id(self, log_id: UUID) -> Optional[NotificationLog]:
        """Get ledger row by ID"""
        row = await self.fetchrow("SELECT * FROM notification_logs WHERE id = $1", log_id)
        return self._row_to_log(row) if row else None

    async def transition(
        self,
        log_id: UUID,
        from_statuses: List[str],
        to_status: str,
        error_message: Optional[str] = None,
        external_message_id: Optional[str] = None,
        external_peer_id: Optional[str] = None,
    ) -> Optional[NotificationLog]:
        """
        Move a row to to_status if its current status is one of from_statuses.

        Returns None when the row is missing or not in an expected status.
        """
        query = """
            UPDATE notification_logs
            SET status = $2,
                updated_at = $3,
                error_message = COALESCE($4, error_message),
                external_message_id = COALESCE($5, external_message_id),
                external_peer_id = COALESCE($6, external_peer_id)
            WHERE id = $1 AND status = ANY($7::text[])
            RETURNING *
        """
        row = await self.fetchrow(
            query, log_id, to_status, datetime.now(),
            error_message, external_message_id, external_peer_id,
            list(from_statuses)
        )
        return self._row_to_log(row) if row else None

    async def mark_read(
        self, log_id: UUID, from_statuses: List[str], read_at: datetime
    ) -> Optional[NotificationLog]:
        """Set status 'read' and read_at together, only while read_at is still NULL"""
        query = """
            UPDATE notification_logs
            SET status = $2, read_at = $3, updated_at = $3
            WHERE id = $1 AND status = ANY($4::text[]) AND read_at IS NULL
            RETURNING *
        """
        row = await self.fetchrow(
            query, log_id, NotificationStatus.READ.value, read_at, list(from_statuses)
        )
        return self._row_to_log(row) if row else None

    async def list_by_status(
        self, org_id: UUID, statuses: List[str], limit: int = 200
    ) -> List[NotificationLog]:
        """List a tenant's rows in the given statuses, oldest first"""
        query = """
            SELECT * FROM notification_logs
            WHERE org_id = $1 AND status = ANY($2::text[])
            ORDER BY sent_at
            LIMIT $3
        """
        rows = await self.fetch(query, org_id, list(statuses), limit)
        return [self._row_to_log(row) for row in rows]

    async def list_recent(
        self, org_id: UUID, limit: int = 30, status: Optional[str] = None
    ) -> List[NotificationLog]:
        """List a tenant's rows, newest first"""
        if status:
            query = """
                SELECT * FROM notification_logs
                WHERE org_id = $1 AND status = $2
                ORDER BY sent_at DESC
                LIMIT $3
            """
            rows = await self.fetch(query, org_id, status, limit)
        else:
            query = """
                SELECT * FROM notification_logs
                WHERE org_id = $1
                ORDER BY sent_at DESC
                LIMIT $2
            """
            rows = await self.fetch(query, org_id, limit)
        return [self._row_to_log(row) for row in rows]

    async def list_unread_sent(self, org_id: UUID, channel: str) -> List[NotificationLog]:
        """Sent rows with external ids whose read state is still unknown"""
        query = """
            SELECT * FROM notification_logs
            WHERE org_id = $1
              AND channel = $2
              AND status = $3
              AND external_message_id IS NOT NULL
              AND external_peer_id IS NOT NULL
              AND read_at IS NULL
        """
        rows = await self.fetch(query, org_id, channel, NotificationStatus.SENT.value)
        return [self._row_to_log(row) for row in rows]

    async def list_statuses(
        self, org_id: UUID, since: datetime, until: Optional[datetime] = None
    ) -> List[str]:
        """Statuses of a tenant's rows sent within [since, until]"""
        if until:
            query = """
                SELECT status FROM notification_logs
                WHERE org_id = $1 AND sent_at >= $2 AND sent_at <= $3
            """
            rows = await self.fetch(query, org_id, since, until)
        else:
            query = """
                SELECT status FROM notification_logs
                WHERE org_id = $1 AND sent_at >= $2
            """
            rows = await self.fetch(query, org_id, since)
        return [row["status"] for row in rows]

    async def exists_for_trigger(
        self,
        trigger_id: UUID,
        client_id: UUID,
        policy_id: Optional[UUID] = None,
        sale_id: Optional[UUID] = None,
        since: Optional[datetime] = None,
    ) -> bool:
        """
        Whether a trigger already produced a row for this client.

        Rows bound to a policy or a sale are unique per policy / sale
        forever; unbound rows are unique from since on (forever without it).
        """
        if policy_id:
            query = """
                SELECT 1 FROM notification_logs
                WHERE trigger_id = $1 AND client_id = $2 AND policy_id = $3
                LIMIT 1
            """
            found = await self.fetchval(query, trigger_id, client_id, policy_id)
        elif sale_id:
            query = """
                SELECT 1 FROM notification_logs
                WHERE trigger_id = $1 AND client_id = $2 AND sale_id = $3
                LIMIT 1
            """
            found = await self.fetchval(query, trigger_id, client_id, sale_id)
        elif since:
            query = """
                SELECT 1 FROM notification_logs
                WHERE trigger_id = $1 AND client_id = $2 AND sent_at >= $3
                LIMIT 1
            """
            found = await self.fetchval(query, trigger_id, client_id, since)
        else:
            query = """
                SELECT 1 FROM notification_logs
                WHERE trigger_id = $1 AND client_id = $2
                LIMIT 1
            """
            found = await self.fetchval(query, trigger_id, client_id)
        return found is not None

    def _row_to_log(self, row) -> NotificationLog:
        """Convert database row to NotificationLog"""
        return NotificationLog(
            id=row["id"],
            org_id=row["org_id"],
            client_id=row["client_id"],
            channel=row["channel"],
            status=row["status"],
            message=row["message"],
            source=row["source"],
            template_id=row["template_id"],
            template_title=row["template_title"],
            trigger_id=row["trigger_id"],
            policy_id=row["policy_id"],
            sale_id=row["sale_id"],
            error_message=row["error_message"],
            external_message_id=row["external_message_id"],
            external_peer_id=row["external_peer_id"],
            sent_at=row["sent_at"],
            read_at=row["read_at"],
            updated_at=row["updated_at"],
        )
