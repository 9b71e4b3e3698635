"""
NotifyHub Storage Layer

PostgreSQL storage implementations for NotifyHub entities.
"""
from .base import BaseStorage
from .audit_storage import AuditStorage
from .messenger_settings_storage import MessengerSettingsStorage
from .trigger_storage import TriggerStorage
from .agent_settings_storage import AgentSettingsStorage
from .notification_log_storage import NotificationLogStorage
from .recipient_storage import RecipientStorage

__all__ = [
    'BaseStorage',
    'AuditStorage',
    'MessengerSettingsStorage',
    'TriggerStorage',
    'AgentSettingsStorage',
    'NotificationLogStorage',
    'RecipientStorage',
]
