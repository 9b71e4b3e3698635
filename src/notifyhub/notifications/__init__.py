"""
NotifyHub Notification Senders

Delivery channels: Telegram (Bot API and user session), Max.
"""
from .base_sender import BaseSender, SendResult
from .telegram_sender import TelegramSender
from .telegram_session import TelegramSession
from .telegram_user_sender import TelegramUserSender
from .max_sender import MaxSender
from .registry import build_sender

__all__ = [
    'BaseSender',
    'SendResult',
    'TelegramSender',
    'TelegramSession',
    'TelegramUserSender',
    'MaxSender',
    'build_sender',
]
