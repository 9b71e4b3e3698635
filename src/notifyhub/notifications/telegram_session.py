"""
Telegram Session

Scoped MTProto user session (telethon) used to send as a user account
and to read per-peer read watermarks, which Telegram does not push for
chats the account itself started.

    async with TelegramSession(api_id, api_hash, session_string) as session:
        entity = await session.resolve_entity(peer_id)
        watermark = await session.get_read_watermark(entity)
"""
import asyncio
import logging
import random
from typing import Dict, Optional, Tuple

from telethon import TelegramClient, functions, types
from telethon.errors import RPCError
from telethon.sessions import StringSession

from ..errors import ConfigurationError, TransientProviderError

logger = logging.getLogger("notifyhub.notifications.telegram_session")

# session_string -> lock; at most one connected client per credential set
_credential_locks: Dict[str, asyncio.Lock] = {}


def credential_lock(session_string: str) -> asyncio.Lock:
    lock = _credential_locks.get(session_string)
    if lock is None:
        lock = _credential_locks[session_string] = asyncio.Lock()
    return lock


class TelegramSession:
    """
    One connected MTProto client per credential set.

    connect() waits while another session on the same session_string is
    open in this process; disconnect() lets the next one in.
    """

    def __init__(
        self,
        api_id: str,
        api_hash: str,
        session_string: str,
        connection_retries: int = 3,
        timeout: float = 30.0,
    ):
        self.api_id = int(api_id)
        self.api_hash = api_hash
        self._lock = credential_lock(session_string)
        self._holds_lock = False
        self._client = TelegramClient(
            StringSession(session_string),
            self.api_id,
            api_hash,
            connection_retries=connection_retries,
            timeout=timeout,
        )

    async def __aenter__(self) -> "TelegramSession":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.disconnect()

    async def connect(self):
        """Connect and check the stored session is still authorized"""
        await self._lock.acquire()
        try:
            await self._open()
        except BaseException:
            self._lock.release()
            raise
        self._holds_lock = True

    async def _open(self):
        try:
            await self._client.connect()
        except (OSError, ConnectionError, RPCError) as e:
            raise TransientProviderError(f"Telegram connect failed: {e}") from e

        if not await self._client.is_user_authorized():
            await self._client.disconnect()
            raise ConfigurationError("telegram", "Telegram session expired, re-authorize the account")

        logger.debug(f"Telegram session connected (api_id={self.api_id})")

    async def disconnect(self):
        """Disconnect; safe to call more than once"""
        try:
            if self._client.is_connected():
                await self._client.disconnect()
                logger.debug(f"Telegram session disconnected (api_id={self.api_id})")
        finally:
            if self._holds_lock:
                self._holds_lock = False
                self._lock.release()

    async def resolve_entity(self, peer_id: str):
        """Resolve a stored numeric peer id to an entity"""
        try:
            return await self._client.get_entity(types.PeerUser(int(peer_id)))
        except (ValueError, RPCError) as e:
            raise TransientProviderError(f"Cannot resolve Telegram peer {peer_id}: {e}") from e

    async def get_read_watermark(self, entity) -> int:
        """Highest outgoing message id the peer has read (0 if no dialog)"""
        try:
            input_peer = await self._client.get_input_entity(entity)
            result = await self._client(
                functions.messages.GetPeerDialogsRequest(
                    peers=[types.InputDialogPeer(peer=input_peer)]
                )
            )
        except RPCError as e:
            raise TransientProviderError(f"GetPeerDialogs failed: {e}") from e

        if not result.dialogs:
            return 0
        return result.dialogs[0].read_outbox_max_id or 0

    async def resolve_phone(self, phone: str, name: Optional[str] = None):
        """
        Find the Telegram user behind a phone number.

        Tries the session's entity cache first, then imports the number
        as a contact.
        """
        phone = "+" + "".join(ch for ch in phone if ch.isdigit())
        try:
            return await self._client.get_entity(phone)
        except (ValueError, RPCError):
            logger.debug(f"get_entity failed for {phone}, importing contact")

        try:
            result = await self._client(
                functions.contacts.ImportContactsRequest(
                    contacts=[
                        types.InputPhoneContact(
                            client_id=random.randrange(1, 2 ** 62),
                            phone=phone,
                            first_name=name or phone,
                            last_name="",
                        )
                    ]
                )
            )
        except RPCError as e:
            raise TransientProviderError(f"ImportContacts failed for {phone}: {e}") from e

        if not result.users:
            raise TransientProviderError(f"Phone {phone} is not registered in Telegram")
        return result.users[0]

    async def send_message(self, phone: str, text: str, name: Optional[str] = None) -> Tuple[str, str]:
        """Send text to a phone number; returns (message_id, peer_id)"""
        entity = await self.resolve_phone(phone, name)
        try:
            message = await self._client.send_message(entity, text)
        except RPCError as e:
            raise TransientProviderError(f"Telegram send failed: {e}") from e
        return str(message.id), str(entity.id)
