"""
Battry Adapters Module
Collaborator interfaces and their default implementations
"""
from .base import (
    LoadProfile,
    LoadGenerator,
    ConstantPowerControl,
    CalibrationReporter,
    ReadingHistory,
    AlertSink,
    NullLoadGenerator,
    LoggingAlertSink,
)
from .constant_power import PIConstantPowerController, ControllerState
from .reporting import SessionSummaryReporter

__all__ = [
    "LoadProfile",
    "LoadGenerator",
    "ConstantPowerControl",
    "CalibrationReporter",
    "ReadingHistory",
    "AlertSink",
    "NullLoadGenerator",
    "LoggingAlertSink",
    "PIConstantPowerController",
    "ControllerState",
    "SessionSummaryReporter",
]
