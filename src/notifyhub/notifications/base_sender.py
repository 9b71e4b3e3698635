"""
Base Sender

Abstract interface for notification delivery channels.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass
class SendResult:
    """Result of a send attempt"""
    success: bool
    error: Optional[str] = None
    external_message_id: Optional[str] = None   # provider's message id
    external_peer_id: Optional[str] = None      # provider's recipient id
    attempted: bool = True                      # False when the provider was never called


class BaseSender(ABC):
    """Abstract notification sender"""

    # Pause after each send to stay under provider flood limits
    send_delay: float = 0.0

    # Sender keeps a stateful provider session open between sends
    holds_session: bool = False

    @abstractmethod
    async def send(self, address: dict, content: str) -> SendResult:
        """
        Send a notification.

        Args:
            address: Recipient address (keys: phone, chat_id, max_chat_id, name)
            content: Message text to send
        Returns:
            SendResult with success flag, provider ids or error message
        """
        ...

    @abstractmethod
    async def close(self):
        """Cleanup resources"""
        ...
