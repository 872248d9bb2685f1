"""
Calibration API
Full-discharge calibration control and status
"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from ..engines.calibration import Running
from ..engines.session import SessionBusyError
from ..models import CalibrationResult
from ..services import get_diagnostics_service

router = APIRouter(prefix="/calibration")


# ============ Models ============

class CalibrationStatusResponse(BaseModel):
    """Calibration session status"""
    phase: str
    step: str
    progress: float
    estimated_seconds_remaining: Optional[float] = None
    started_at: Optional[datetime] = None
    start_percent: Optional[int] = None
    sample_count: int
    auto_reset_due_to_gap: bool
    max_resume_gap_s: float
    last_result: Optional[CalibrationResult] = None
    recent_results: List[CalibrationResult] = []


class ResumeGapUpdate(BaseModel):
    """Maximum telemetry gap resumed without checks"""
    seconds: float = Field(..., ge=0, example=1800)


def _status() -> CalibrationStatusResponse:
    engine = get_diagnostics_service().calibration
    snapshot = engine.progress()
    state = engine.state

    return CalibrationStatusResponse(
        phase=snapshot.phase,
        step=snapshot.step,
        progress=snapshot.progress,
        estimated_seconds_remaining=snapshot.estimated_seconds_remaining,
        started_at=state.started_at if isinstance(state, Running) else None,
        start_percent=state.start_percent if isinstance(state, Running) else None,
        sample_count=len(engine.samples),
        auto_reset_due_to_gap=engine.auto_reset_due_to_gap,
        max_resume_gap_s=engine.max_resume_gap_s,
        last_result=engine.last_result,
        recent_results=engine.recent_results
    )


# ============ Endpoints ============

@router.get("", response_model=CalibrationStatusResponse)
async def get_calibration():
    """Current calibration phase, progress and results."""
    return _status()


@router.post("/start", response_model=CalibrationStatusResponse)
async def start_calibration():
    """
    Start a full-discharge calibration.

    The session begins once the battery reports at least 99% on
    battery power. Fails with 409 while a quick test is running.
    """
    try:
        get_diagnostics_service().calibration.start()
    except SessionBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _status()


@router.post("/stop", response_model=CalibrationStatusResponse)
async def stop_calibration():
    """Abort the calibration and discard its samples."""
    get_diagnostics_service().calibration.stop()
    return _status()


@router.post("/acknowledge-reset", response_model=CalibrationStatusResponse)
async def acknowledge_reset():
    """Clear the reset-due-to-gap notice."""
    get_diagnostics_service().calibration.acknowledge_auto_reset()
    return _status()


@router.put("/max-resume-gap", response_model=CalibrationStatusResponse)
async def set_max_resume_gap(update: ResumeGapUpdate):
    """Set the largest telemetry gap a running session survives unchecked."""
    get_diagnostics_service().calibration.set_max_resume_gap(update.seconds)
    return _status()
