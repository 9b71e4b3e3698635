"""
Audit Routes

Access log events (best-effort and strict), the audit rule matrix,
presets and the blacklist.
"""
import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel

from ..models.audit import AccessLogEntry, AuditAction, EventCategory
from ..services.engine_service import get_engine_service
from .auth import get_current_user

logger = logging.getLogger("notifyhub.routes.audit")
router = APIRouter(prefix="/audit", tags=["audit"])


# ============================================
# Request/Response Models
# ============================================

class AccessEventRequest(BaseModel):
    """Access log event reported by the console"""
    action: str                          # raw action, e.g. 'view_contact_phone'
    category: str = EventCategory.ACCESS.value
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    client_id: Optional[str] = None
    field_accessed: Optional[str] = None
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    details: Optional[dict] = None


class RuleRequest(BaseModel):
    """Set one cell of the rule matrix"""
    target_role: str
    action_type: str
    is_enabled: bool


class BlacklistRequest(BaseModel):
    """Exempt a user from logging"""
    user_id: str


# ============================================
# Helpers
# ============================================

def build_entry(user_id: UUID, action: str, category: str, **fields) -> AccessLogEntry:
    """AccessLogEntry for the current user"""
    return AccessLogEntry(user_id=user_id, action=action, category=category, **fields)


async def audit_action(current_user: dict, action: str, category: str, strict: bool = False, **fields) -> bool:
    """
    Log a mutating action of the current user.

    strict=True raises AuthorizationError (403) when the entry cannot be written.
    """
    gate = get_engine_service().audit_gate
    entry = build_entry(current_user["user_id"], action, category, **fields)
    if strict:
        await gate.require_logged(entry)
        return True
    return await gate.log_best_effort(entry)


def _parse_uuid(value: Optional[str], name: str) -> Optional[UUID]:
    if value is None:
        return None
    try:
        return UUID(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {name}")


async def require_admin(current_user: dict = Depends(get_current_user)) -> dict:
    """Dependency: current user must have the admin role"""
    engine = get_engine_service()
    role = await engine.audit_storage.get_user_role(current_user["user_id"])
    if role != "admin":
        raise HTTPException(status_code=403, detail="Admin role required")
    return current_user


def _entry_from_request(request: AccessEventRequest, user_id: UUID) -> AccessLogEntry:
    return build_entry(
        user_id,
        request.action,
        request.category,
        entity_type=request.entity_type,
        entity_id=request.entity_id,
        client_id=_parse_uuid(request.client_id, "client_id"),
        field_accessed=request.field_accessed,
        old_value=request.old_value,
        new_value=request.new_value,
        details=request.details,
    )


# ============================================
# Event Routes
# ============================================

@router.post("/events")
async def log_event(
    request: AccessEventRequest,
    current_user: dict = Depends(get_current_user),
):
    """Best-effort logging; never fails the caller"""
    engine = get_engine_service()
    entry = _entry_from_request(request, current_user["user_id"])
    logged = await engine.audit_gate.log_best_effort(entry)
    return {"logged": logged}


@router.post("/events/strict")
async def log_event_strict(
    request: AccessEventRequest,
    current_user: dict = Depends(get_current_user),
):
    """
    Security-sensitive logging.

    Responds 403 when the entry must be written but could not be;
    the console must not proceed with the action then.
    """
    engine = get_engine_service()
    entry = _entry_from_request(request, current_user["user_id"])
    await engine.audit_gate.require_logged(entry)
    return {"allowed": True}


@router.get("/should-log")
async def should_log(action: str, current_user: dict = Depends(get_current_user)):
    """Whether an action of the current user would be logged"""
    engine = get_engine_service()
    return {"should_log": await engine.audit_gate.should_log(current_user["user_id"], action)}


@router.get("/logs")
async def list_logs(
    user_id: Optional[str] = None,
    limit: int = 100,
    current_user: dict = Depends(require_admin),
):
    """Recent access log entries"""
    engine = get_engine_service()
    entries = await engine.audit_gate.list_access_logs(
        user_id=_parse_uuid(user_id, "user_id"), limit=min(limit, 500)
    )
    return [e.to_dict() for e in entries]


# ============================================
# Rule Matrix Routes
# ============================================

@router.get("/rules")
async def list_rules(current_user: dict = Depends(require_admin)):
    engine = get_engine_service()
    return [r.to_dict() for r in await engine.audit_gate.list_rules()]


@router.put("/rules")
async def set_rule(request: RuleRequest, current_user: dict = Depends(require_admin)):
    """Enable or disable logging of one action for one role"""
    engine = get_engine_service()
    if request.action_type not in {a.value for a in AuditAction}:
        raise HTTPException(status_code=400, detail=f"Unknown action_type '{request.action_type}'")

    await audit_action(
        current_user, "settings_change", EventCategory.ACCESS.value, strict=True,
        entity_type="audit_rule", entity_id=f"{request.target_role}/{request.action_type}",
        new_value=str(request.is_enabled),
    )
    rule = await engine.audit_gate.set_rule(request.target_role, request.action_type, request.is_enabled)
    return rule.to_dict()


@router.post("/presets/{preset}")
async def apply_preset(preset: str, current_user: dict = Depends(require_admin)):
    """Apply the 'all' or 'critical' preset"""
    engine = get_engine_service()
    await audit_action(
        current_user, "settings_change", EventCategory.ACCESS.value, strict=True,
        entity_type="audit_preset", entity_id=preset,
    )
    try:
        rules = await engine.audit_gate.apply_preset(preset)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return [r.to_dict() for r in rules]


# ============================================
# Blacklist Routes
# ============================================

@router.get("/blacklist")
async def list_blacklist(current_user: dict = Depends(require_admin)):
    engine = get_engine_service()
    return [e.to_dict() for e in await engine.audit_gate.list_blacklist()]


@router.post("/blacklist")
async def add_to_blacklist(request: BlacklistRequest, current_user: dict = Depends(require_admin)):
    """Exempt a user from logging"""
    engine = get_engine_service()
    user_id = _parse_uuid(request.user_id, "user_id")
    await audit_action(
        current_user, "settings_change", EventCategory.ACCESS.value, strict=True,
        entity_type="audit_blacklist", entity_id=str(user_id),
    )
    entry = await engine.audit_gate.add_to_blacklist(user_id)
    return entry.to_dict()


@router.delete("/blacklist/{user_id}")
async def remove_from_blacklist(user_id: str, current_user: dict = Depends(require_admin)):
    engine = get_engine_service()
    target = _parse_uuid(user_id, "user_id")
    await audit_action(
        current_user, "settings_change", EventCategory.ACCESS.value,
        entity_type="audit_blacklist", entity_id=str(target),
    )
    removed = await engine.audit_gate.remove_from_blacklist(target)
    if not removed:
        raise HTTPException(status_code=404, detail="User is not blacklisted")
    return {"success": True}
