"""
Channel Validator

Checks whether a tenant's messenger channel is usable for automatic
dispatch. Rules, in order:
1. No settings row - not configured
2. Row inactive - not configured
3. Minimum credentials of the channel's config variant
4. WhatsApp 'web' mode - configured, but every send needs manual confirmation
5. Anything else - configured
"""
import logging
from dataclasses import dataclass
from typing import List, Optional
from uuid import UUID

from ..models.channel import (
    CHANNEL_LABELS,
    ChannelSetting,
    ChannelType,
    MaxConfig,
    MaxWebConfig,
    SmsConfig,
    TelegramConfig,
    WhatsAppConfig,
    WhatsAppWebConfig,
)
from ..storage.messenger_settings_storage import MessengerSettingsStorage

logger = logging.getLogger("notifyhub.services.channel_validator")


@dataclass
class ChannelValidationResult:
    """Outcome of validating one channel"""
    channel: ChannelType
    is_configured: bool
    requires_manual_confirmation: bool = False
    error_reason: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "channel": self.channel.value,
            "is_configured": self.is_configured,
            "requires_manual_confirmation": self.requires_manual_confirmation,
            "error_reason": self.error_reason,
        }


def _missing(config, *names: str) -> List[str]:
    return [name for name in names if not getattr(config, name)]


def _credential_error(setting: ChannelSetting) -> Optional[str]:
    """Reason the config lacks a required credential, or None"""
    config = setting.config
    label = CHANNEL_LABELS.get(setting.channel, setting.channel.value)

    if isinstance(config, WhatsAppConfig):
        if config.mode == "business_api" and not config.api_key:
            return f"{label}: Business API mode requires an API key"
        return None

    if isinstance(config, TelegramConfig):
        if config.is_user_api:
            missing = _missing(config, "session_string", "api_id", "api_hash")
            if missing:
                return f"{label}: user session is incomplete (missing {', '.join(missing)})"
            return None
        if not config.bot_token:
            return f"{label}: bot token is not set"
        return None

    if isinstance(config, MaxConfig):
        if not config.api_key:
            return f"{label}: API key is not set"
        return None

    if isinstance(config, (WhatsAppWebConfig, MaxWebConfig, SmsConfig)):
        return None

    raise TypeError(f"Unsupported channel config type: {type(config).__name__}")


def validate_setting(setting: Optional[ChannelSetting], channel: ChannelType) -> ChannelValidationResult:
    """Apply the validation rules to an already-loaded settings row"""
    label = CHANNEL_LABELS.get(channel, channel.value)

    if setting is None:
        return ChannelValidationResult(channel, False, error_reason=f"{label}: channel not set up")

    if not setting.is_active:
        return ChannelValidationResult(channel, False, error_reason=f"{label}: channel disabled")

    reason = _credential_error(setting)
    if reason:
        return ChannelValidationResult(channel, False, error_reason=reason)

    if isinstance(setting.config, WhatsAppConfig) and setting.config.mode == "web":
        return ChannelValidationResult(channel, True, requires_manual_confirmation=True)

    return ChannelValidationResult(channel, True)


class ChannelValidator:
    """Validates tenants' messenger settings"""

    def __init__(self, settings_storage: MessengerSettingsStorage):
        self.settings_storage = settings_storage

    async def validate(self, org_id: UUID, channel: ChannelType) -> ChannelValidationResult:
        """Validate one channel of a tenant"""
        channel = ChannelType(channel)
        setting = await self.settings_storage.get_by_channel(org_id, channel)
        result = validate_setting(setting, channel)
        if not result.is_configured:
            logger.debug(f"Channel {channel.value} not configured for org {org_id}: {result.error_reason}")
        return result

    def validate_setting(self, setting: ChannelSetting) -> ChannelValidationResult:
        return validate_setting(setting, setting.channel)

    async def validate_all(self, org_id: UUID) -> List[ChannelValidationResult]:
        """Result for every stored setting of a tenant"""
        settings = await self.settings_storage.list_by_org(org_id)
        return [validate_setting(s, s.channel) for s in settings]

    async def has_any_active_channel(self, org_id: UUID) -> bool:
        """At least one active channel validates as configured"""
        settings = await self.settings_storage.list_by_org(org_id, active_only=True)
        return any(validate_setting(s, s.channel).is_configured for s in settings)

    async def configured_settings(self, org_id: UUID) -> List[ChannelSetting]:
        """Active settings that validate as configured"""
        settings = await self.settings_storage.list_by_org(org_id, active_only=True)
        return [s for s in settings if validate_setting(s, s.channel).is_configured]
