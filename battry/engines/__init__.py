"""
Battry Engines Module
Test state machines and the plumbing that feeds them
"""
from .scheduler import Scheduler, CancelToken, ManualScheduler, AsyncioScheduler
from .session import SessionLock, SessionBusyError
from .calibration import CalibrationEngine, CalibrationPhase, next_state
from .quick_test import QuickHealthTest, QuickPhase
from .telemetry import TelemetryChannel, TelemetryPump, ChannelFullError

__all__ = [
    "Scheduler",
    "CancelToken",
    "ManualScheduler",
    "AsyncioScheduler",
    "SessionLock",
    "SessionBusyError",
    "CalibrationEngine",
    "CalibrationPhase",
    "next_state",
    "QuickHealthTest",
    "QuickPhase",
    "TelemetryChannel",
    "TelemetryPump",
    "ChannelFullError",
]
