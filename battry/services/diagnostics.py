"""
Diagnostics Service
Wires the test engines, their collaborators and the telemetry channel
"""
import logging
from typing import Optional

from ..adapters.base import AlertSink, CalibrationReporter, LoadGenerator, LoggingAlertSink, NullLoadGenerator, ReadingHistory
from ..adapters.constant_power import PIConstantPowerController
from ..adapters.reporting import SessionSummaryReporter
from ..analysis.presets import PowerPreset
from ..config import Settings, get_settings
from ..engines.calibration import CalibrationEngine
from ..engines.quick_test import QuickHealthTest
from ..engines.scheduler import AsyncioScheduler, Scheduler
from ..engines.session import SessionLock
from ..engines.telemetry import TelemetryChannel, TelemetryPump
from ..models import Reading
from ..repositories.history_repo import CalibrationSessionRepository, QuickHealthHistoryRepository

logger = logging.getLogger(__name__)


class DiagnosticsService:
    """
    One calibration engine and one quick test sharing a session lock.

    Readings enter through publish(); the pump hands them to both
    engines in order, and only the engine holding the session acts.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        scheduler: Optional[Scheduler] = None,
        load_generator: Optional[LoadGenerator] = None,
        reporter: Optional[CalibrationReporter] = None,
        history: Optional[ReadingHistory] = None,
        alert_sink: Optional[AlertSink] = None
    ):
        self.settings = settings or get_settings()
        self.scheduler = scheduler or AsyncioScheduler()
        self.alert_sink = alert_sink or LoggingAlertSink()
        self.load_generator = load_generator or NullLoadGenerator()
        self.session_lock = SessionLock()
        self.latest: Optional[Reading] = None

        self.constant_power = PIConstantPowerController(
            scheduler=self.scheduler,
            power_reader=self._current_power,
            load_generator=self.load_generator
        )
        self.quick_history = QuickHealthHistoryRepository(
            self.settings.quick_history_path,
            limit=self.settings.quick_history_limit,
            alert_sink=self.alert_sink
        )
        self.calibration_repo = CalibrationSessionRepository(
            self.settings.calibration_state_path,
            alert_sink=self.alert_sink
        )

        self.calibration = CalibrationEngine(
            session_lock=self.session_lock,
            reporter=reporter or SessionSummaryReporter(self.settings.report_dir),
            history=history,
            repository=self.calibration_repo,
            alert_sink=self.alert_sink,
            end_threshold=self.settings.calibration_end_threshold_percent,
            max_resume_gap_s=self.settings.calibration_max_resume_gap_s,
            recent_limit=self.settings.calibration_recent_results
        )
        self.quick_test = QuickHealthTest(
            scheduler=self.scheduler,
            session_lock=self.session_lock,
            load_generator=self.load_generator,
            constant_power=self.constant_power,
            repository=self.quick_history,
            preset=PowerPreset(self.settings.power_preset),
            baseline_s=self.settings.quick_baseline_s,
            pulse_s=self.settings.quick_pulse_s,
            rest_s=self.settings.quick_rest_s,
            energy_window_span_pct=self.settings.quick_energy_window_span_pct,
            min_start_soc=self.settings.quick_min_start_soc,
            dcir_window_s=self.settings.dcir_window_s,
            ocv_bin_size=self.settings.ocv_bin_size_pct
        )

        self.channel = TelemetryChannel(self.settings.telemetry_queue_size)
        self.pump = TelemetryPump(
            self.channel,
            [self.calibration.handle_reading, self.quick_test.handle_reading]
        )

        self._restore_calibration()

    def _restore_calibration(self) -> None:
        record = self.calibration_repo.load()
        if record is None:
            return
        try:
            self.calibration.restore(record)
        except ValueError as e:
            logger.error(f"Discarding unreadable calibration session: {e}")
            self.alert_sink.persistence_failed("restore calibration session", e)

    def _current_power(self) -> float:
        return self.latest.power_w if self.latest is not None else 0.0

    def publish(self, reading: Reading) -> None:
        """
        Accept one telemetry sample.

        Raises:
            ChannelFullError: If the engines have fallen too far behind
        """
        self.channel.publish(reading)
        self.latest = reading

    def start_quick_test(self, preset: Optional[PowerPreset] = None) -> None:
        if preset is not None:
            self.quick_test.set_power_preset(preset)
        self.quick_test.start(self.latest)

    async def start(self) -> None:
        self.calibration.attach()
        self.pump.start()

    async def shutdown(self) -> None:
        self.quick_test.stop()
        await self.pump.stop()
        logger.info("Diagnostics service stopped")


# Singleton instance
_service_instance: Optional[DiagnosticsService] = None


def get_diagnostics_service() -> DiagnosticsService:
    """Service shared by the API for the application lifecycle"""
    global _service_instance

    if _service_instance is None:
        _service_instance = DiagnosticsService()
        logger.info("Diagnostics service created")

    return _service_instance


async def reset_diagnostics_service() -> None:
    """Reset the service singleton."""
    global _service_instance

    if _service_instance is not None:
        await _service_instance.shutdown()
        _service_instance = None
        logger.info("Diagnostics service reset")
