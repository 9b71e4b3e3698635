"""
Read Receipt Service

Marks Telegram messages sent from a user session as read.

For each active Telegram setting in user_api mode, opens one session,
asks every peer with unread sent rows for its read-outbox watermark and
moves rows whose message id is at or below it to 'read'.
"""
import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List

from ..config import Config
from ..errors import PersistenceError
from ..models.channel import ChannelSetting, ChannelType
from ..models.notification import NotificationLog
from ..notifications.telegram_session import TelegramSession
from ..storage.messenger_settings_storage import MessengerSettingsStorage
from .ledger_service import LedgerService

logger = logging.getLogger("notifyhub.services.read_receipt")


@dataclass
class ReconcileResult:
    """Outcome of one reconciliation run"""
    updated: int = 0
    configs_checked: int = 0
    failed_writes: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "updated": self.updated,
            "configs_checked": self.configs_checked,
            "failed_writes": self.failed_writes,
            "errors": list(self.errors),
        }


def session_factory(setting: ChannelSetting) -> TelegramSession:
    """Default factory: one TelegramSession per channel setting"""
    config = setting.config
    return TelegramSession(
        config.api_id,
        config.api_hash,
        config.session_string,
        connection_retries=Config.TELEGRAM_CONNECTION_RETRIES,
        timeout=Config.TELEGRAM_TIMEOUT,
    )


class ReadReceiptReconciler:
    """Polls Telegram read watermarks and advances sent rows to read"""

    def __init__(
        self,
        settings_storage: MessengerSettingsStorage,
        ledger: LedgerService,
        session_factory=session_factory,
        peer_timeout: float = Config.TELEGRAM_TIMEOUT,
    ):
        self.settings_storage = settings_storage
        self.ledger = ledger
        self._session_factory = session_factory
        self.peer_timeout = peer_timeout

    async def run(self) -> ReconcileResult:
        """Check every eligible Telegram configuration, serially"""
        result = ReconcileResult()
        settings = await self.settings_storage.list_active_by_channel(ChannelType.TELEGRAM)

        for setting in settings:
            config = setting.config
            if not (config.is_user_api and config.has_user_session):
                continue

            rows = await self.ledger.unread_sent(setting.org_id, ChannelType.TELEGRAM.value)
            if not rows:
                continue

            result.configs_checked += 1
            try:
                await self._reconcile_setting(setting, rows, result)
            except Exception as e:
                logger.error(f"Read receipts for org {setting.org_id} failed: {e}")
                result.errors.append(f"Org {setting.org_id}: {e}")

        if result.failed_writes and not result.updated:
            raise PersistenceError(f"Read receipts: all {result.failed_writes} ledger write(s) failed")

        if result.updated:
            logger.info(f"Read receipts: {result.updated} notification(s) marked read")
        return result

    async def _reconcile_setting(
        self, setting: ChannelSetting, rows: List[NotificationLog], result: ReconcileResult
    ):
        """Counts into result as rows move, so a later failure keeps earlier progress"""
        by_peer: Dict[str, List[NotificationLog]] = defaultdict(list)
        for row in rows:
            by_peer[row.external_peer_id].append(row)

        async with self._session_factory(setting) as session:
            for peer_id, peer_rows in by_peer.items():
                try:
                    watermark = await self._peer_watermark(session, peer_id)
                except asyncio.TimeoutError:
                    logger.warning(f"Read watermark for peer {peer_id} timed out after {self.peer_timeout}s")
                    result.errors.append(f"Peer {peer_id}: timed out")
                    continue
                except Exception as e:
                    logger.warning(f"Read watermark for peer {peer_id} failed: {e}")
                    result.errors.append(f"Peer {peer_id}: {e}")
                    continue

                await self._mark_read_up_to(peer_rows, watermark, result)

    async def _peer_watermark(self, session: TelegramSession, peer_id: str) -> int:
        entity = await asyncio.wait_for(session.resolve_entity(peer_id), timeout=self.peer_timeout)
        return await asyncio.wait_for(session.get_read_watermark(entity), timeout=self.peer_timeout)

    async def _mark_read_up_to(self, rows: List[NotificationLog], watermark: int, result: ReconcileResult):
        now = datetime.now()
        for row in rows:
            try:
                message_id = int(row.external_message_id)
            except (TypeError, ValueError):
                logger.warning(f"Notification {row.id} has non-numeric message id '{row.external_message_id}'")
                continue

            if message_id > watermark:
                continue
            try:
                if await self.ledger.mark_read(row.id, now):
                    result.updated += 1
            except PersistenceError as e:
                logger.error(f"Marking notification {row.id} read failed: {e}")
                result.failed_writes += 1
                result.errors.append(f"Notification {row.id}: {e}")
