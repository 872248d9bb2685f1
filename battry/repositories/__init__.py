"""
Repository module for data access
"""
from .history_repo import QuickHealthHistoryRepository, CalibrationSessionRepository, SchemaVersionError

__all__ = [
    "QuickHealthHistoryRepository",
    "CalibrationSessionRepository",
    "SchemaVersionError",
]
