"""
Telemetry API
Ingest endpoint for power-monitor readings
"""
import logging

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from ..engines.telemetry import ChannelFullError
from ..models import Reading
from ..services import get_diagnostics_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/telemetry")


class TelemetryAccepted(BaseModel):
    """Ingest acknowledgement"""
    accepted: bool
    queued: int


@router.post("", response_model=TelemetryAccepted, status_code=202)
async def ingest_reading(reading: Reading):
    """
    Queue one reading for the test engines.

    Readings are processed in arrival order; a full queue is rejected
    with 503 so the source can back off and retry.
    """
    service = get_diagnostics_service()

    try:
        service.publish(reading)
    except ChannelFullError as e:
        logger.warning(str(e))
        raise HTTPException(status_code=503, detail=str(e))

    return TelemetryAccepted(accepted=True, queued=service.channel.size)
