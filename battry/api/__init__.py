"""
API Router - connects all endpoints
"""
from fastapi import APIRouter

from .telemetry import router as telemetry_router
from .calibration import router as calibration_router
from .quick_test import router as quick_test_router

api_router = APIRouter()

api_router.include_router(telemetry_router, tags=["Telemetry"])
api_router.include_router(calibration_router, tags=["Calibration"])
api_router.include_router(quick_test_router, tags=["Quick Test"])
