"""
NotifyHub Data Models

Domain models for the multi-channel notification pipeline.
"""
from .audit import AuditAction, AuditRule, AuditBlacklistEntry, AccessLogEntry, EventCategory
from .channel import (
    ChannelType,
    ChannelSetting,
    WhatsAppConfig,
    WhatsAppWebConfig,
    TelegramConfig,
    MaxConfig,
    MaxWebConfig,
    SmsConfig,
    parse_channel_config,
)
from .trigger import NotificationTrigger, NotificationTemplate, AutopilotSettings, TriggerEventType
from .notification import NotificationLog, NotificationStats, NotificationStatus, NotificationSource
from .recipient import Recipient

__all__ = [
    'AuditAction',
    'AuditRule',
    'AuditBlacklistEntry',
    'AccessLogEntry',
    'EventCategory',
    'ChannelType',
    'ChannelSetting',
    'WhatsAppConfig',
    'WhatsAppWebConfig',
    'TelegramConfig',
    'MaxConfig',
    'MaxWebConfig',
    'SmsConfig',
    'parse_channel_config',
    'NotificationTrigger',
    'NotificationTemplate',
    'AutopilotSettings',
    'TriggerEventType',
    'NotificationLog',
    'NotificationStats',
    'NotificationStatus',
    'NotificationSource',
    'Recipient',
]
