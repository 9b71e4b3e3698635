"""
Agent Settings Storage

PostgreSQL storage for per-tenant autopilot settings (agent_settings table).
"""
import logging
from datetime import date
from typing import Optional
from uuid import UUID

from .base import BaseStorage
from ..models.trigger import AutopilotSettings

logger = logging.getLogger("notifyhub.storage.agent_settings")


class AgentSettingsStorage(BaseStorage):
    """Storage for AutopilotSettings"""

    async def get(self, org_id: UUID) -> Optional[AutopilotSettings]:
        """Get a tenant's settings row, None when never saved"""
        row = await self.fetchrow("SELECT * FROM agent_settings WHERE org_id = $1", org_id)
        return self._row_to_settings(row) if row else None

    async def save_schedule(
        self, org_id: UUID, auto_process_time: str, auto_process_days: list, test_mode: bool
    ) -> AutopilotSettings:
        """Create or update the schedule; last_auto_run_date is left untouched"""
        query = """
            INSERT INTO agent_settings (org_id, auto_process_time, auto_process_days, notification_test_mode)
            VALUES ($1, $2, $3, $4)
            ON CONFLICT (org_id)
            DO UPDATE SET auto_process_time = EXCLUDED.auto_process_time,
                          auto_process_days = EXCLUDED.auto_process_days,
                          notification_test_mode = EXCLUDED.notification_test_mode
            RETURNING *
        """
        row = await self.fetchrow(query, org_id, auto_process_time, list(auto_process_days), test_mode)
        return self._row_to_settings(row)

    async def set_last_auto_run_date(self, org_id: UUID, run_date: date) -> bool:
        """
        Durably record the automatic run of a day.

        Returns False when the date was already recorded (no row changed).
        """
        query = """
            INSERT INTO agent_settings (org_id, last_auto_run_date)
            VALUES ($1, $2)
            ON CONFLICT (org_id)
            DO UPDATE SET last_auto_run_date = EXCLUDED.last_auto_run_date
            WHERE agent_settings.last_auto_run_date IS DISTINCT FROM EXCLUDED.last_auto_run_date
            RETURNING org_id
        """
        changed = await self.fetchval(query, org_id, run_date)
        return changed is not None

    def _row_to_settings(self, row) -> AutopilotSettings:
        """Convert database row to AutopilotSettings"""
        defaults = AutopilotSettings(org_id=row["org_id"])
        test_mode = row["notification_test_mode"]
        return AutopilotSettings(
            org_id=row["org_id"],
            auto_process_time=row["auto_process_time"] or defaults.auto_process_time,
            auto_process_days=list(row["auto_process_days"] or defaults.auto_process_days),
            last_auto_run_date=row["last_auto_run_date"],
            test_mode=defaults.test_mode if test_mode is None else test_mode,
        )
