"""
Notification Service

Dispatches one message through the ledger:
1. Enqueues the row (test_prepared in test mode, then stops)
2. Validates the tenant's channel setting
3. Picks the channel's sender; channels without one stay pending
4. Moves the row sending -> sent / error and paces the next send
"""
import asyncio
import logging
from typing import Callable, Dict, Optional, Tuple
from uuid import UUID

from ..models.channel import ChannelSetting, ChannelType
from ..models.notification import NotificationLog, NotificationSource, NotificationStatus
from ..notifications.base_sender import BaseSender
from ..notifications.registry import build_sender
from ..storage.messenger_settings_storage import MessengerSettingsStorage
from ..storage.recipient_storage import RecipientStorage
from .channel_validator import validate_setting
from .ledger_service import LedgerService

logger = logging.getLogger("notifyhub.services.notification")


class NotificationService:
    """
    Notification delivery orchestrator.

    Senders are built per channel setting on first use and reused until
    the setting changes.
    """

    def __init__(
        self,
        ledger: LedgerService,
        settings_storage: MessengerSettingsStorage,
        recipient_storage: Optional[RecipientStorage] = None,
        sender_factory: Callable[[ChannelSetting], Optional[BaseSender]] = build_sender,
        sleep=asyncio.sleep,
    ):
        self.ledger = ledger
        self.settings_storage = settings_storage
        self.recipient_storage = recipient_storage
        self._sender_factory = sender_factory
        self._sleep = sleep
        # setting id -> (updated_at, sender)
        self._senders: Dict[UUID, Tuple[object, Optional[BaseSender]]] = {}

    async def _get_sender(self, setting: ChannelSetting) -> Optional[BaseSender]:
        cached = self._senders.get(setting.id)
        if cached and cached[0] == setting.updated_at:
            return cached[1]
        if cached and cached[1] is not None:
            await cached[1].close()

        sender = self._sender_factory(setting)
        self._senders[setting.id] = (setting.updated_at, sender)
        if sender:
            logger.info(f"Built {type(sender).__name__} for {setting.channel.value} (org {setting.org_id})")
        return sender

    async def _pace(self, sender: BaseSender):
        if sender.send_delay:
            await self._sleep(sender.send_delay)

    async def release_sessions(self):
        """Close provider sessions held by cached senders; they reopen on next use"""
        for _updated_at, sender in self._senders.values():
            if sender is not None and sender.holds_session:
                await sender.close()

    async def dispatch(
        self, entry: NotificationLog, address: dict, test_mode: bool = False
    ) -> NotificationLog:
        """
        Enqueue entry and try to deliver it.

        Returns the row in its final status for this attempt.
        """
        entry = await self.ledger.enqueue(entry, test_mode=test_mode)
        if test_mode:
            logger.info(f"Test mode: notification {entry.id} prepared, not sent")
            return entry

        try:
            channel = ChannelType(entry.channel)
        except ValueError:
            entry = await self.ledger.begin_dispatch(entry.id)
            return await self.ledger.mark_error(entry.id, f"Unsupported channel '{entry.channel}'")

        setting = await self.settings_storage.get_by_channel(entry.org_id, channel)
        validation = validate_setting(setting, channel)
        if not validation.is_configured:
            entry = await self.ledger.begin_dispatch(entry.id)
            logger.warning(f"Notification {entry.id} not sent: {validation.error_reason}")
            return await self.ledger.mark_error(entry.id, validation.error_reason)

        if validation.requires_manual_confirmation:
            logger.debug(f"Notification {entry.id} queued for manual confirmation ({channel.value})")
            return entry

        sender = await self._get_sender(setting)
        if sender is None:
            logger.debug(f"Notification {entry.id} queued, no automatic sender for {channel.value}")
            return entry

        entry = await self.ledger.begin_dispatch(entry.id)
        try:
            result = await sender.send(address, entry.message)
        except Exception as e:
            logger.error(f"Sender {type(sender).__name__} crashed on notification {entry.id}: {e}")
            await self._pace(sender)
            return await self.ledger.mark_error(entry.id, str(e) or type(e).__name__)

        if result.attempted:
            await self._pace(sender)

        if result.success:
            logger.info(f"Notification {entry.id} sent via {channel.value}")
            return await self.ledger.mark_sent(
                entry.id, result.external_message_id, result.external_peer_id
            )

        logger.warning(f"Notification {entry.id} failed via {channel.value}: {result.error}")
        return await self.ledger.mark_error(entry.id, result.error or "Send failed")

    async def send_manual(
        self,
        org_id: UUID,
        client_id: UUID,
        channel: str,
        message: str,
        source: str = NotificationSource.MANUAL.value,
    ) -> NotificationLog:
        """
        Send one operator-written message to a client.

        Raises LookupError when the client does not belong to the tenant.
        """
        client = await self.recipient_storage.get_client(org_id, client_id)
        if client is None:
            raise LookupError(f"Client {client_id} not found")

        entry = NotificationLog(
            org_id=org_id,
            client_id=client_id,
            channel=channel,
            message=message,
            source=source,
            status=NotificationStatus.PENDING.value,
        )
        try:
            return await self.dispatch(entry, client.address())
        finally:
            await self.release_sessions()

    async def close(self):
        """Cleanup sender resources"""
        for _updated_at, sender in self._senders.values():
            if sender is not None:
                await sender.close()
        self._senders.clear()
