"""
Channel Models

ChannelSetting: per-tenant messenger channel configuration.
Each channel has its own config dataclass; parse_channel_config() builds
the variant from the stored JSON.
"""
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Optional, Union
from uuid import UUID, uuid4


class ChannelType(str, Enum):
    """Outbound messenger channels"""
    WHATSAPP = "whatsapp"
    WHATSAPP_WEB = "whatsapp_web"
    TELEGRAM = "telegram"
    MAX = "max"
    MAX_WEB = "max_web"
    SMS = "sms"


CHANNEL_LABELS = {
    ChannelType.WHATSAPP: "WhatsApp",
    ChannelType.WHATSAPP_WEB: "WhatsApp Web",
    ChannelType.TELEGRAM: "Telegram",
    ChannelType.MAX: "Max",
    ChannelType.MAX_WEB: "Max Web",
    ChannelType.SMS: "SMS",
}


@dataclass
class WhatsAppConfig:
    """WhatsApp: browser session ('web') or Business API"""
    mode: str = "web"                                   # 'web' or 'business_api'
    phone: Optional[str] = None
    api_key: Optional[str] = None


@dataclass
class WhatsAppWebConfig:
    """WhatsApp Web bridge"""
    bridge_url: Optional[str] = None


@dataclass
class TelegramConfig:
    """Telegram: Bot API token or MTProto user session"""
    connection_type: str = "bot_api"                    # 'bot_api' or 'user_api'
    bot_token: Optional[str] = None
    session_string: Optional[str] = None
    api_id: Optional[str] = None
    api_hash: Optional[str] = None
    phone: Optional[str] = None

    @property
    def is_user_api(self) -> bool:
        return self.connection_type == "user_api"

    @property
    def has_user_session(self) -> bool:
        return bool(self.session_string and self.api_id and self.api_hash)


@dataclass
class MaxConfig:
    """Max Bot API"""
    api_key: Optional[str] = None


@dataclass
class MaxWebConfig:
    """Max web bridge"""
    bridge_url: Optional[str] = None


@dataclass
class SmsConfig:
    """SMS gateway"""
    sender_name: Optional[str] = None


ChannelConfig = Union[
    WhatsAppConfig, WhatsAppWebConfig, TelegramConfig, MaxConfig, MaxWebConfig, SmsConfig
]

CONFIG_TYPES = {
    ChannelType.WHATSAPP: WhatsAppConfig,
    ChannelType.WHATSAPP_WEB: WhatsAppWebConfig,
    ChannelType.TELEGRAM: TelegramConfig,
    ChannelType.MAX: MaxConfig,
    ChannelType.MAX_WEB: MaxWebConfig,
    ChannelType.SMS: SmsConfig,
}


def parse_channel_config(channel: ChannelType, raw: Optional[dict]) -> ChannelConfig:
    """
    Build the config variant for a channel from its stored JSON.

    Unknown keys are ignored; values are coerced to str (api_id is
    often stored as a number). Older Telegram rows carry a session
    without connection_type, those are treated as user_api.
    """
    raw = dict(raw or {})
    config_cls = CONFIG_TYPES[ChannelType(channel)]
    known = config_cls.__dataclass_fields__.keys()

    kwargs = {}
    for key in known:
        value = raw.get(key)
        if value is None or value == "":
            continue
        kwargs[key] = str(value)

    if config_cls is TelegramConfig and "connection_type" not in kwargs and kwargs.get("session_string"):
        kwargs["connection_type"] = "user_api"

    return config_cls(**kwargs)


@dataclass
class ChannelSetting:
    """
    Messenger channel configuration of a tenant.

    One row per (org_id, channel). Rows are deactivated, never deleted.
    """
    id: UUID = field(default_factory=uuid4)
    org_id: UUID = field(default_factory=uuid4)
    channel: ChannelType = ChannelType.WHATSAPP
    is_active: bool = False
    config: ChannelConfig = field(default_factory=WhatsAppConfig)

    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    def config_dict(self) -> dict:
        """Config as stored JSON (empty values dropped)"""
        return {k: v for k, v in asdict(self.config).items() if v is not None}

    def to_dict(self, mask_secrets: bool = True) -> dict:
        """Convert to dictionary for API response"""
        config = self.config_dict()
        if mask_secrets:
            for key in ("api_key", "bot_token", "session_string", "api_hash"):
                if config.get(key):
                    config[key] = "***"
        return {
            "id": str(self.id),
            "org_id": str(self.org_id),
            "channel": self.channel.value,
            "is_active": self.is_active,
            "config": config,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }
