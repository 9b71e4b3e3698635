"""
Notification Routes

Ledger projections (queue, history, stats) and manual sends.
"""
import logging
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel

from ..models.audit import EventCategory
from ..models.channel import ChannelType
from ..services.engine_service import get_engine_service
from .audit import audit_action
from .auth import get_current_user

logger = logging.getLogger("notifyhub.routes.notifications")
router = APIRouter(prefix="/notifications", tags=["notifications"])


# ============================================
# Request/Response Models
# ============================================

class SendRequest(BaseModel):
    """Manual message to one client"""
    client_id: str
    channel: str
    message: str


class NotificationLogResponse(BaseModel):
    """Ledger row"""
    id: str
    org_id: str
    client_id: Optional[str]
    channel: str
    status: str
    message: str
    source: str
    template_id: Optional[str]
    template_title: Optional[str]
    trigger_id: Optional[str]
    policy_id: Optional[str]
    error_message: Optional[str]
    external_message_id: Optional[str]
    external_peer_id: Optional[str]
    sent_at: str
    read_at: Optional[str]
    updated_at: str


class StatsResponse(BaseModel):
    """Bucketed ledger counts"""
    total_prepared: int
    sent: int
    delivered: int
    read: int
    error: int
    test_prepared: int


# ============================================
# Helpers
# ============================================

def _parse_datetime(value: Optional[str], name: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {name} format (use ISO)")


# ============================================
# Ledger Routes
# ============================================

@router.get("/queue", response_model=List[NotificationLogResponse])
async def get_queue(limit: int = 200, current_user: dict = Depends(get_current_user)):
    """Rows waiting for (or in) dispatch"""
    engine = get_engine_service()
    rows = await engine.ledger_service.pending_queue(current_user["org_id"], limit=min(limit, 500))
    return [NotificationLogResponse(**r.to_dict()) for r in rows]


@router.get("/history", response_model=List[NotificationLogResponse])
async def get_history(
    limit: int = 30,
    status: Optional[str] = None,
    current_user: dict = Depends(get_current_user),
):
    """Newest rows first, optionally of one status"""
    engine = get_engine_service()
    rows = await engine.ledger_service.history(current_user["org_id"], limit=min(limit, 500), status=status)
    return [NotificationLogResponse(**r.to_dict()) for r in rows]


@router.get("/stats", response_model=StatsResponse)
async def get_stats(
    since: Optional[str] = None,
    until: Optional[str] = None,
    current_user: dict = Depends(get_current_user),
):
    """Counts per bucket; defaults to today"""
    engine = get_engine_service()
    stats = await engine.ledger_service.stats(
        current_user["org_id"],
        since=_parse_datetime(since, "since"),
        until=_parse_datetime(until, "until"),
    )
    return StatsResponse(**stats.to_dict())


# ============================================
# Send Routes
# ============================================

@router.post("/send", response_model=NotificationLogResponse)
async def send_notification(request: SendRequest, current_user: dict = Depends(get_current_user)):
    """Send one message to a client through the ledger"""
    engine = get_engine_service()
    try:
        client_id = UUID(request.client_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid client_id")
    if request.channel not in {c.value for c in ChannelType}:
        raise HTTPException(status_code=400, detail=f"Unknown channel '{request.channel}'")
    if not request.message.strip():
        raise HTTPException(status_code=400, detail="Message is empty")

    await audit_action(
        current_user, "create", EventCategory.CLIENTS.value,
        entity_type="notification", client_id=client_id,
    )
    try:
        entry = await engine.notification_service.send_manual(
            current_user["org_id"], client_id, request.channel, request.message
        )
    except LookupError:
        raise HTTPException(status_code=404, detail="Client not found")
    return NotificationLogResponse(**entry.to_dict())
