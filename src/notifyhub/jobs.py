"""
Scheduled Jobs

Entry points invoked by the background scheduler and the job endpoints.
Store failures propagate as PersistenceError so callers can tell them
apart from a zero result.
"""
from datetime import datetime
from typing import Optional

from .services.autopilot_service import AutopilotResult
from .services.engine_service import get_engine_service
from .services.read_receipt_service import ReconcileResult


async def run_autopilot_pass(now: Optional[datetime] = None) -> AutopilotResult:
    """Scheduled autopilot pass over all tenants"""
    engine = get_engine_service()
    return await engine.autopilot_service.run_autopilot_pass(now or datetime.now())


async def run_read_receipt_reconciliation() -> ReconcileResult:
    """Mark Telegram user-session messages read up to each peer's watermark"""
    engine = get_engine_service()
    return await engine.read_receipt_reconciler.run()
