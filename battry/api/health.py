"""
Health Check API
Service liveness and session status endpoints
"""
from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel

from ..config import get_settings
from ..services import get_diagnostics_service

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    app_name: str
    version: str
    active_session: Optional[str]
    telemetry_queue_depth: int
    telemetry_pump_running: bool


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Check application health status.

    Returns system status including:
    - Application info
    - Which test, if any, holds the session
    - Telemetry backlog
    """
    settings = get_settings()
    service = get_diagnostics_service()

    return HealthResponse(
        status="healthy",
        app_name=settings.app_name,
        version="0.1.0",
        active_session=service.session_lock.holder,
        telemetry_queue_depth=service.channel.size,
        telemetry_pump_running=service.pump.running
    )


@router.get("/live")
async def liveness_check():
    """
    Liveness probe.
    Returns 200 if application is alive.
    """
    return {"alive": True}
