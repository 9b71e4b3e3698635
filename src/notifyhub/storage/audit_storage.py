"""
Audit Storage

PostgreSQL storage for the audit rule matrix, blacklist, user roles
and the access log.
"""
import json
import logging
from datetime import datetime
from typing import Optional, List
from uuid import UUID

from .base import BaseStorage
from ..models.audit import AuditRule, AuditBlacklistEntry, AccessLogEntry

logger = logging.getLogger("notifyhub.storage.audit")

DEFAULT_ROLE = "agent"


class AuditStorage(BaseStorage):
    """Storage for audit configuration and AccessLogEntry facts"""

    # ============================================
    # Rule matrix
    # ============================================

    async def list_rules(self) -> List[AuditRule]:
        """List all role rules"""
        rows = await self.fetch("SELECT * FROM audit_rules ORDER BY created_at")
        return [self._row_to_rule(row) for row in rows]

    async def upsert_rule(self, role: str, action_type: str, is_enabled: bool) -> AuditRule:
        """Create or update the rule for (role, action_type)"""
        query = """
            INSERT INTO audit_rules (id, target_role, action_type, is_enabled, created_at, updated_at)
            VALUES ($1, $2, $3, $4, $5, $5)
            ON CONFLICT (target_role, action_type)
            DO UPDATE SET is_enabled = EXCLUDED.is_enabled, updated_at = EXCLUDED.updated_at
            RETURNING *
        """
        rule = AuditRule(target_role=role, action_type=action_type, is_enabled=is_enabled)
        row = await self.fetchrow(
            query, rule.id, role, action_type, is_enabled, datetime.utcnow()
        )
        return self._row_to_rule(row)

    # ============================================
    # Blacklist
    # ============================================

    async def list_blacklist(self) -> List[AuditBlacklistEntry]:
        """List blacklisted users"""
        rows = await self.fetch("SELECT * FROM audit_blacklist ORDER BY created_at")
        return [
            AuditBlacklistEntry(
                id=row["id"],
                target_user_id=row["target_user_id"],
                created_at=row["created_at"],
            )
            for row in rows
        ]

    async def add_to_blacklist(self, user_id: UUID) -> AuditBlacklistEntry:
        """Exempt a user from logging (idempotent)"""
        entry = AuditBlacklistEntry(target_user_id=user_id)
        query = """
            INSERT INTO audit_blacklist (id, target_user_id, created_at)
            VALUES ($1, $2, $3)
            ON CONFLICT (target_user_id) DO UPDATE SET target_user_id = EXCLUDED.target_user_id
            RETURNING *
        """
        row = await self.fetchrow(query, entry.id, user_id, entry.created_at)
        return AuditBlacklistEntry(
            id=row["id"], target_user_id=row["target_user_id"], created_at=row["created_at"]
        )

    async def remove_from_blacklist(self, user_id: UUID) -> bool:
        """Remove a user from the blacklist"""
        result = await self.execute(
            "DELETE FROM audit_blacklist WHERE target_user_id = $1", user_id
        )
        return "DELETE 1" in result

    # ============================================
    # Roles
    # ============================================

    async def get_user_role(self, user_id: UUID) -> str:
        """Resolve a user's role; users without a role row are agents"""
        role = await self.fetchval(
            "SELECT role FROM user_roles WHERE user_id = $1", user_id
        )
        return role or DEFAULT_ROLE

    # ============================================
    # Access log
    # ============================================

    async def insert_access_log(self, entry: AccessLogEntry) -> None:
        """Append one access log entry (single INSERT)"""
        query = """
            INSERT INTO access_logs (
                id, user_id, action, category, entity_type, entity_id,
                client_id, field_accessed, old_value, new_value, details,
                created_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12)
        """
        await self.execute(
            query,
            entry.id, entry.user_id, entry.action, entry.category,
            entry.entity_type, entry.entity_id, entry.client_id,
            entry.field_accessed, entry.old_value, entry.new_value,
            json.dumps(entry.details) if entry.details is not None else None,
            entry.created_at,
        )

    async def list_access_logs(
        self, user_id: Optional[UUID] = None, limit: int = 100
    ) -> List[AccessLogEntry]:
        """List recent access log entries, optionally for one user"""
        if user_id:
            query = """
                SELECT * FROM access_logs
                WHERE user_id = $1
                ORDER BY created_at DESC
                LIMIT $2
            """
            rows = await self.fetch(query, user_id, limit)
        else:
            query = "SELECT * FROM access_logs ORDER BY created_at DESC LIMIT $1"
            rows = await self.fetch(query, limit)
        return [self._row_to_access_log(row) for row in rows]

    def _row_to_rule(self, row) -> AuditRule:
        """Convert database row to AuditRule"""
        return AuditRule(
            id=row["id"],
            target_role=row["target_role"],
            action_type=row["action_type"],
            is_enabled=row["is_enabled"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def _row_to_access_log(self, row) -> AccessLogEntry:
        """Convert database row to AccessLogEntry"""
        details = row["details"]
        if isinstance(details, str):
            details = json.loads(details)

        return AccessLogEntry(
            id=row["id"],
            user_id=row["user_id"],
            action=row["action"],
            category=row["category"],
            entity_type=row["entity_type"],
            entity_id=row["entity_id"],
            client_id=row["client_id"],
            field_accessed=row["field_accessed"],
            old_value=row["old_value"],
            new_value=row["new_value"],
            details=details,
            created_at=row["created_at"],
        )
