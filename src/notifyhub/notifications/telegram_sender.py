"""
Telegram Sender

Sends notifications via Telegram Bot API using httpx.
"""
import logging
from typing import Optional

import httpx

from .base_sender import BaseSender, SendResult

logger = logging.getLogger("notifyhub.notifications.telegram")

TELEGRAM_API_BASE = "https://api.telegram.org/bot{token}"


class TelegramSender(BaseSender):
    """Send messages via Telegram Bot API"""

    def __init__(self, bot_token: str, timeout: float = 30.0):
        self.bot_token = bot_token
        self.api_base = TELEGRAM_API_BASE.format(token=bot_token)
        self.timeout = timeout
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def send(self, address: dict, content: str) -> SendResult:
        """
        Send message to Telegram chat.

        address must contain 'chat_id' (the client must have started the bot).
        """
        chat_id = address.get("chat_id")
        if not chat_id:
            return SendResult(success=False, error="Client has no Telegram chat_id", attempted=False)

        if not self.bot_token:
            return SendResult(success=False, error="Missing Telegram bot token", attempted=False)

        try:
            client = self._get_client()
            response = await client.post(
                f"{self.api_base}/sendMessage",
                json={
                    "chat_id": chat_id,
                    "text": content,
                },
            )

            if response.status_code == 200:
                data = response.json()
                if data.get("ok"):
                    message = data.get("result") or {}
                    logger.info(f"Telegram message sent to chat_id={chat_id}")
                    return SendResult(
                        success=True,
                        external_message_id=str(message["message_id"]) if message.get("message_id") else None,
                        external_peer_id=str(chat_id),
                    )
                else:
                    err = data.get("description", "Unknown Telegram error")
                    logger.error(f"Telegram API error: {err}")
                    return SendResult(success=False, error=err)
            else:
                err = f"HTTP {response.status_code}: {response.text[:200]}"
                logger.error(f"Telegram request failed: {err}")
                return SendResult(success=False, error=err)

        except httpx.HTTPError as e:
            logger.error(f"Telegram send error: {e}")
            return SendResult(success=False, error=str(e))

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
