"""
Channel Routes

Per-tenant messenger settings and their validation.
"""
import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel

from ..models.audit import EventCategory
from ..models.channel import ChannelSetting, ChannelType, parse_channel_config
from ..services.engine_service import get_engine_service
from .audit import audit_action
from .auth import get_current_user

logger = logging.getLogger("notifyhub.routes.channels")
router = APIRouter(prefix="/channels", tags=["channels"])


# ============================================
# Request/Response Models
# ============================================

class ChannelSettingRequest(BaseModel):
    """Create or replace a channel's settings"""
    is_active: bool = False
    config: dict = {}


class ChannelActiveRequest(BaseModel):
    is_active: bool


# ============================================
# Helpers
# ============================================

def _parse_channel(channel: str) -> ChannelType:
    try:
        return ChannelType(channel)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown channel '{channel}'")


# ============================================
# Routes
# ============================================

@router.get("")
async def list_channels(current_user: dict = Depends(get_current_user)):
    """Settings of the tenant's channels (secrets masked) with validation"""
    engine = get_engine_service()
    settings = await engine.messenger_settings_storage.list_by_org(current_user["org_id"])
    return [
        {
            **s.to_dict(),
            "validation": engine.channel_validator.validate_setting(s).to_dict(),
        }
        for s in settings
    ]


@router.get("/status")
async def channel_status(current_user: dict = Depends(get_current_user)):
    """Whether the tenant can send anything automatically"""
    engine = get_engine_service()
    return {"has_active_channel": await engine.channel_validator.has_any_active_channel(current_user["org_id"])}


@router.get("/{channel}/validate")
async def validate_channel(channel: str, current_user: dict = Depends(get_current_user)):
    engine = get_engine_service()
    result = await engine.channel_validator.validate(current_user["org_id"], _parse_channel(channel))
    return result.to_dict()


@router.put("/{channel}")
async def save_channel(
    channel: str,
    request: ChannelSettingRequest,
    current_user: dict = Depends(get_current_user),
):
    """
    Create or replace a channel's settings.

    Credential changes are security-sensitive: the request is refused
    when the change cannot be written to the access log.
    """
    engine = get_engine_service()
    channel_type = _parse_channel(channel)
    org_id = current_user["org_id"]

    await audit_action(
        current_user, "settings_change", EventCategory.SERVICE.value, strict=True,
        entity_type="messenger_settings", entity_id=channel_type.value,
    )

    setting: Optional[ChannelSetting] = await engine.messenger_settings_storage.get_by_channel(org_id, channel_type)
    if setting is None:
        setting = ChannelSetting(org_id=org_id, channel=channel_type)
    setting.is_active = request.is_active
    setting.config = parse_channel_config(channel_type, request.config)

    saved = await engine.messenger_settings_storage.upsert(setting)
    logger.info(f"Saved {channel_type.value} settings for org {org_id} (active={saved.is_active})")
    return {
        **saved.to_dict(),
        "validation": engine.channel_validator.validate_setting(saved).to_dict(),
    }


@router.post("/{channel}/active")
async def set_channel_active(
    channel: str,
    request: ChannelActiveRequest,
    current_user: dict = Depends(get_current_user),
):
    """Enable or disable a channel (rows are never deleted)"""
    engine = get_engine_service()
    channel_type = _parse_channel(channel)

    await audit_action(
        current_user, "update", EventCategory.SERVICE.value,
        entity_type="messenger_settings", entity_id=channel_type.value,
        new_value=str(request.is_active),
    )
    updated = await engine.messenger_settings_storage.set_active(
        current_user["org_id"], channel_type, request.is_active
    )
    if not updated:
        raise HTTPException(status_code=404, detail="Channel not set up")
    return {"success": True, "is_active": request.is_active}
