"""
Sender Registry

Picks the sender implementation for a validated channel setting.
"""
import logging
from typing import Optional

from .base_sender import BaseSender
from .telegram_sender import TelegramSender
from .telegram_user_sender import TelegramUserSender
from .max_sender import MaxSender
from ..config import Config
from ..models.channel import ChannelSetting, MaxConfig, TelegramConfig

logger = logging.getLogger("notifyhub.notifications.registry")


def build_sender(setting: ChannelSetting) -> Optional[BaseSender]:
    """
    Build a sender for a channel setting.

    Returns None for channels without an automatic sender (WhatsApp,
    SMS, web bridges); their rows stay pending for manual dispatch.
    """
    config = setting.config

    if isinstance(config, TelegramConfig):
        if config.is_user_api:
            return TelegramUserSender(
                api_id=config.api_id,
                api_hash=config.api_hash,
                session_string=config.session_string,
                timeout=Config.TELEGRAM_TIMEOUT,
                connection_retries=Config.TELEGRAM_CONNECTION_RETRIES,
                send_delay=Config.TELEGRAM_SEND_DELAY,
            )
        sender = TelegramSender(config.bot_token, timeout=Config.TELEGRAM_TIMEOUT)
        sender.send_delay = Config.TELEGRAM_SEND_DELAY
        return sender

    if isinstance(config, MaxConfig):
        return MaxSender(
            config.api_key,
            api_base=Config.MAX_API_BASE,
            send_delay=Config.MAX_SEND_DELAY,
        )

    logger.debug(f"No automatic sender for channel '{setting.channel.value}'")
    return None
