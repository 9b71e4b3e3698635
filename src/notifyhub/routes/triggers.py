"""
Trigger Routes

Notification triggers, the autopilot schedule and manual autopilot runs.
"""
import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel

from ..models.audit import EventCategory
from ..models.notification import NotificationSource
from ..models.trigger import NotificationTrigger
from ..services.engine_service import get_engine_service
from .audit import audit_action
from .auth import get_current_user

logger = logging.getLogger("notifyhub.routes.triggers")
router = APIRouter(prefix="/triggers", tags=["triggers"])


# ============================================
# Request/Response Models
# ============================================

class TriggerRequest(BaseModel):
    """Create or update a trigger"""
    event_type: str
    template_id: Optional[str] = None
    days_before: int = 0
    is_active: bool = True


class ToggleRequest(BaseModel):
    is_active: bool


class AutopilotSettingsRequest(BaseModel):
    """Autopilot schedule"""
    auto_process_time: str               # "HH:MM"
    auto_process_days: List[int]         # ISO weekdays 1..7
    test_mode: Optional[bool] = None


# ============================================
# Helpers
# ============================================

def _parse_uuid(value: str, name: str) -> UUID:
    try:
        return UUID(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {name}")


async def _get_own_trigger(trigger_id: str, current_user: dict) -> NotificationTrigger:
    engine = get_engine_service()
    trigger = await engine.trigger_service.get_trigger(_parse_uuid(trigger_id, "trigger ID"))
    if not trigger:
        raise HTTPException(status_code=404, detail="Trigger not found")
    if trigger.org_id != current_user["org_id"]:
        raise HTTPException(status_code=403, detail="Access denied")
    return trigger


# ============================================
# Autopilot Routes
# ============================================

@router.get("/autopilot")
async def get_autopilot(current_user: dict = Depends(get_current_user)):
    """Schedule, next run and channel readiness"""
    engine = get_engine_service()
    org_id = current_user["org_id"]
    settings = await engine.trigger_service.get_autopilot_settings(org_id)
    next_run = engine.trigger_service.next_run_at(settings)
    return {
        **settings.to_dict(),
        "next_run_at": next_run.isoformat() if next_run else None,
        "has_active_channel": await engine.channel_validator.has_any_active_channel(org_id),
    }


@router.put("/autopilot")
async def save_autopilot(
    request: AutopilotSettingsRequest,
    current_user: dict = Depends(get_current_user),
):
    engine = get_engine_service()
    await audit_action(
        current_user, "settings_change", EventCategory.SERVICE.value,
        entity_type="agent_settings",
        new_value=f"{request.auto_process_time} {request.auto_process_days}",
    )
    try:
        settings = await engine.trigger_service.save_autopilot_settings(
            current_user["org_id"],
            request.auto_process_time,
            request.auto_process_days,
            request.test_mode,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return settings.to_dict()


@router.post("/autopilot/run")
async def run_autopilot_now(current_user: dict = Depends(get_current_user)):
    """Run the tenant's triggers now, ignoring the schedule"""
    engine = get_engine_service()
    org_id = current_user["org_id"]
    await audit_action(current_user, "create", EventCategory.SERVICE.value, entity_type="autopilot_run")
    result = await engine.autopilot_service.run_autopilot_pass(
        source=NotificationSource.MANUAL.value, org_ids=[org_id]
    )
    return result.to_dict()


# ============================================
# Trigger Routes
# ============================================

@router.get("")
async def list_triggers(current_user: dict = Depends(get_current_user)):
    engine = get_engine_service()
    triggers = await engine.trigger_service.list_triggers(current_user["org_id"])
    return [t.to_dict() for t in triggers]


@router.post("")
async def create_trigger(request: TriggerRequest, current_user: dict = Depends(get_current_user)):
    engine = get_engine_service()
    trigger = NotificationTrigger(
        org_id=current_user["org_id"],
        event_type=request.event_type,
        template_id=_parse_uuid(request.template_id, "template_id") if request.template_id else None,
        days_before=request.days_before,
        is_active=request.is_active,
    )
    await audit_action(current_user, "create", EventCategory.SERVICE.value, entity_type="notification_trigger", entity_id=str(trigger.id))
    try:
        created = await engine.trigger_service.upsert_trigger(trigger)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return created.to_dict()


@router.put("/{trigger_id}")
async def update_trigger(
    trigger_id: str,
    request: TriggerRequest,
    current_user: dict = Depends(get_current_user),
):
    engine = get_engine_service()
    trigger = await _get_own_trigger(trigger_id, current_user)
    trigger.event_type = request.event_type
    trigger.template_id = _parse_uuid(request.template_id, "template_id") if request.template_id else None
    trigger.days_before = request.days_before
    trigger.is_active = request.is_active

    await audit_action(current_user, "update", EventCategory.SERVICE.value, entity_type="notification_trigger", entity_id=str(trigger.id))
    try:
        updated = await engine.trigger_service.upsert_trigger(trigger)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return updated.to_dict()


@router.post("/{trigger_id}/toggle")
async def toggle_trigger(
    trigger_id: str,
    request: ToggleRequest,
    current_user: dict = Depends(get_current_user),
):
    engine = get_engine_service()
    trigger = await _get_own_trigger(trigger_id, current_user)
    await audit_action(
        current_user, "update", EventCategory.SERVICE.value,
        entity_type="notification_trigger", entity_id=str(trigger.id), new_value=str(request.is_active),
    )
    toggled = await engine.trigger_service.toggle(trigger.id, request.is_active)
    if not toggled:
        raise HTTPException(status_code=404, detail="Trigger not found")
    return toggled.to_dict()


@router.delete("/{trigger_id}")
async def delete_trigger(trigger_id: str, current_user: dict = Depends(get_current_user)):
    engine = get_engine_service()
    trigger = await _get_own_trigger(trigger_id, current_user)
    await audit_action(current_user, "delete", EventCategory.SERVICE.value, entity_type="notification_trigger", entity_id=str(trigger.id))
    deleted = await engine.trigger_service.delete_trigger(trigger.id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Trigger not found")
    return {"success": True}
