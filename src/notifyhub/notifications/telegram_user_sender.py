"""
Telegram User Sender

Sends notifications from a Telegram user account (MTProto session),
so messages reach clients who never started a bot.
"""
import asyncio
import logging
from typing import Optional

from .base_sender import BaseSender, SendResult
from .telegram_session import TelegramSession
from ..errors import ConfigurationError, TransientProviderError

logger = logging.getLogger("notifyhub.notifications.telegram_user")


class TelegramUserSender(BaseSender):
    """
    Send messages via a connected TelegramSession.

    The session is opened on first send and held until close(); callers
    close it after each batch so other users of the credentials can connect.
    """

    holds_session = True

    def __init__(
        self,
        api_id: str,
        api_hash: str,
        session_string: str,
        timeout: float = 30.0,
        connection_retries: int = 3,
        send_delay: float = 18.0,
        session_factory=TelegramSession,
    ):
        self.api_id = api_id
        self.api_hash = api_hash
        self.session_string = session_string
        self.timeout = timeout
        self.connection_retries = connection_retries
        self.send_delay = send_delay
        self._session_factory = session_factory
        self._session: Optional[TelegramSession] = None

    async def _get_session(self) -> TelegramSession:
        if self._session is None:
            session = self._session_factory(
                self.api_id,
                self.api_hash,
                self.session_string,
                connection_retries=self.connection_retries,
                timeout=self.timeout,
            )
            await session.connect()
            self._session = session
        return self._session

    async def send(self, address: dict, content: str) -> SendResult:
        """
        Send message to a client's phone number.

        address must contain 'phone'; 'name' is used when the number
        has to be imported as a contact.
        """
        phone = address.get("phone")
        if not phone:
            return SendResult(success=False, error="Client has no phone number", attempted=False)

        try:
            session = await self._get_session()
            message_id, peer_id = await asyncio.wait_for(
                session.send_message(phone, content, address.get("name")),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.error(f"Telegram user send timed out for {phone}")
            return SendResult(success=False, error="Telegram send timed out")
        except (ConfigurationError, TransientProviderError) as e:
            logger.error(f"Telegram user send error: {e}")
            return SendResult(success=False, error=str(e))

        logger.info(f"Telegram user message sent to peer {peer_id} (msg {message_id})")
        return SendResult(
            success=True,
            external_message_id=message_id,
            external_peer_id=peer_id,
        )

    async def close(self):
        if self._session is not None:
            await self._session.disconnect()
            self._session = None
