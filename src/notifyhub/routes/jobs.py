"""
Job Routes

HTTP trigger surface for external schedulers. Store failures surface
as 503 so a failed run is distinguishable from a run that did nothing.
"""
from typing import Optional

from fastapi import APIRouter, HTTPException, Header

from .. import jobs
from ..config import Config

router = APIRouter(prefix="/jobs", tags=["jobs"])


def _check_token(token: Optional[str]):
    if Config.JOBS_TOKEN and token != Config.JOBS_TOKEN:
        raise HTTPException(status_code=401, detail="Invalid job token")


@router.post("/autopilot")
async def run_autopilot(x_job_token: Optional[str] = Header(None)):
    """Run the scheduled autopilot pass now"""
    _check_token(x_job_token)
    result = await jobs.run_autopilot_pass()
    return {"dispatched": result.dispatched}


@router.post("/read-receipts")
async def run_read_receipts(x_job_token: Optional[str] = Header(None)):
    """Run read-receipt reconciliation now"""
    _check_token(x_job_token)
    result = await jobs.run_read_receipt_reconciliation()
    return {"updated": result.updated}
