"""
Services module
"""
from .diagnostics import DiagnosticsService, get_diagnostics_service, reset_diagnostics_service

__all__ = ["DiagnosticsService", "get_diagnostics_service", "reset_diagnostics_service"]
