"""
Messenger Settings Storage

PostgreSQL storage for per-tenant messenger channel settings.
"""
import json
import logging
from datetime import datetime
from typing import Optional, List
from uuid import UUID

from .base import BaseStorage
from ..models.channel import ChannelSetting, ChannelType, parse_channel_config

logger = logging.getLogger("notifyhub.storage.messenger_settings")


class MessengerSettingsStorage(BaseStorage):
    """Storage for ChannelSetting entities"""

    async def upsert(self, setting: ChannelSetting) -> ChannelSetting:
        """Create or update the setting of (org_id, channel)"""
        setting.updated_at = datetime.utcnow()
        query = """
            INSERT INTO messenger_settings (
                id, org_id, channel, is_active, config, created_at, updated_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7)
            ON CONFLICT (org_id, channel)
            DO UPDATE SET is_active = EXCLUDED.is_active,
                          config = EXCLUDED.config,
                          updated_at = EXCLUDED.updated_at
            RETURNING *
        """
        row = await self.fetchrow(
            query,
            setting.id, setting.org_id, setting.channel.value,
            setting.is_active, json.dumps(setting.config_dict()),
            setting.created_at, setting.updated_at
        )
        return self._row_to_setting(row)

    async def get_by_channel(
        self, org_id: UUID, channel: ChannelType
    ) -> Optional[ChannelSetting]:
        """Get setting by tenant and channel"""
        query = """
            SELECT * FROM messenger_settings
            WHERE org_id = $1 AND channel = $2
        """
        row = await self.fetchrow(query, org_id, channel.value)
        return self._row_to_setting(row) if row else None

    async def list_by_org(self, org_id: UUID, active_only: bool = False) -> List[ChannelSetting]:
        """List a tenant's settings, skipping channels this build does not know"""
        if active_only:
            query = """
                SELECT * FROM messenger_settings
                WHERE org_id = $1 AND is_active = true
                ORDER BY channel
            """
        else:
            query = "SELECT * FROM messenger_settings WHERE org_id = $1 ORDER BY channel"
        rows = await self.fetch(query, org_id)
        return self._rows_to_settings(rows)

    async def list_active_by_channel(self, channel: ChannelType) -> List[ChannelSetting]:
        """List active settings of one channel across all tenants"""
        query = """
            SELECT * FROM messenger_settings
            WHERE channel = $1 AND is_active = true
            ORDER BY org_id
        """
        rows = await self.fetch(query, channel.value)
        return self._rows_to_settings(rows)

    async def set_active(self, org_id: UUID, channel: ChannelType, is_active: bool) -> bool:
        """Activate or deactivate a channel"""
        query = """
            UPDATE messenger_settings
            SET is_active = $3, updated_at = $4
            WHERE org_id = $1 AND channel = $2
        """
        result = await self.execute(query, org_id, channel.value, is_active, datetime.utcnow())
        return "UPDATE 1" in result

    def _rows_to_settings(self, rows) -> List[ChannelSetting]:
        settings = []
        for row in rows:
            try:
                settings.append(self._row_to_setting(row))
            except ValueError:
                logger.warning(f"Skipping messenger setting with unknown channel '{row['channel']}'")
        return settings

    def _row_to_setting(self, row) -> ChannelSetting:
        """Convert database row to ChannelSetting"""
        config = row["config"] if row["config"] else {}
        if isinstance(config, str):
            config = json.loads(config)

        channel = ChannelType(row["channel"])
        return ChannelSetting(
            id=row["id"],
            org_id=row["org_id"],
            channel=channel,
            is_active=row["is_active"],
            config=parse_channel_config(channel, config),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
