"""
Max Sender

Sends notifications via Max Bot API using httpx.
"""
import logging
from typing import Optional

import httpx

from .base_sender import BaseSender, SendResult

logger = logging.getLogger("notifyhub.notifications.max")


class MaxSender(BaseSender):
    """Send messages via Max Bot API"""

    def __init__(
        self,
        api_key: str,
        api_base: str = "https://platform-api.max.ru",
        timeout: float = 30.0,
        send_delay: float = 2.0,
    ):
        self.api_key = api_key
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self.send_delay = send_delay
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def send(self, address: dict, content: str) -> SendResult:
        """
        Send message to a Max chat.

        address must contain 'max_chat_id'.
        """
        chat_id = address.get("max_chat_id")
        if not chat_id:
            return SendResult(success=False, error="Client has no Max chat_id", attempted=False)

        if not self.api_key:
            return SendResult(success=False, error="Missing Max API key", attempted=False)

        try:
            client = self._get_client()
            response = await client.post(
                f"{self.api_base}/messages",
                params={"chat_id": chat_id},
                headers={"Authorization": self.api_key},
                json={"text": content},
            )
        except httpx.HTTPError as e:
            logger.error(f"Max send error: {e}")
            return SendResult(success=False, error=str(e))

        if response.status_code != 200:
            err = f"HTTP {response.status_code}: {response.text[:200]}"
            logger.error(f"Max request failed: {err}")
            return SendResult(success=False, error=err)

        data = response.json()
        message_id = ((data.get("message") or {}).get("body") or {}).get("mid")
        logger.info(f"Max message sent to chat_id={chat_id}")
        return SendResult(
            success=True,
            external_message_id=str(message_id) if message_id else None,
            external_peer_id=str(chat_id),
        )

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
