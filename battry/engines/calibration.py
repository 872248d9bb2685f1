"""
Calibration Engine
Full-discharge (100% -> 5%) battery calibration session
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import ClassVar, List, Optional, Union

from ..adapters.base import AlertSink, CalibrationReporter, LoggingAlertSink, ReadingHistory
from ..models import CalibrationResult, CalibrationSessionRecord, Reading
from .progress import DischargeRateEstimator, ProgressSnapshot
from .session import SessionBusyError, SessionLock

logger = logging.getLogger(__name__)


class CalibrationPhase(str, Enum):
    IDLE = "idle"
    WAITING_FULL = "waiting_full"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"


ACTIVE_PHASES = {CalibrationPhase.WAITING_FULL, CalibrationPhase.RUNNING, CalibrationPhase.PAUSED}


class _CalibrationStateBase:
    kind: ClassVar[CalibrationPhase]

    @property
    def is_active(self) -> bool:
        return self.kind in ACTIVE_PHASES


@dataclass(frozen=True)
class CalibrationIdle(_CalibrationStateBase):
    kind: ClassVar[CalibrationPhase] = CalibrationPhase.IDLE


@dataclass(frozen=True)
class WaitingFull(_CalibrationStateBase):
    kind: ClassVar[CalibrationPhase] = CalibrationPhase.WAITING_FULL


@dataclass(frozen=True)
class Running(_CalibrationStateBase):
    started_at: datetime
    start_percent: int
    kind: ClassVar[CalibrationPhase] = CalibrationPhase.RUNNING


@dataclass(frozen=True)
class Paused(_CalibrationStateBase):
    kind: ClassVar[CalibrationPhase] = CalibrationPhase.PAUSED


@dataclass(frozen=True)
class CalibrationCompleted(_CalibrationStateBase):
    result: CalibrationResult
    kind: ClassVar[CalibrationPhase] = CalibrationPhase.COMPLETED


CalibrationState = Union[CalibrationIdle, WaitingFull, Running, Paused, CalibrationCompleted]

FULL_CHARGE_PERCENT = 99


def build_result(started_at: datetime, start_percent: int, reading: Reading) -> CalibrationResult:
    """Closed-form discharge rate and runtime for a finished session"""
    dt_hours = (reading.timestamp - started_at).total_seconds() / 3600.0
    d_percent = start_percent - reading.percentage
    discharge_per_hour = d_percent / max(dt_hours, 0.001)
    runtime = 100.0 / discharge_per_hour if discharge_per_hour > 0 else 0.0

    return CalibrationResult(
        started_at=started_at,
        finished_at=reading.timestamp,
        start_percent=start_percent,
        end_percent=reading.percentage,
        duration_hours=dt_hours,
        avg_discharge_per_hour=discharge_per_hour,
        estimated_runtime_hours_from_100_to_0=runtime
    )


def _ready_to_run(reading: Reading) -> bool:
    return (
        reading.percentage >= FULL_CHARGE_PERCENT
        and not reading.is_charging
        and reading.on_battery_power
    )


def next_state(state: CalibrationState, reading: Reading, end_threshold: int = 5) -> CalibrationState:
    """
    Calibration transition for one reading.

    Side-effect free: buffer handling, reporting and persistence are
    applied by CalibrationEngine around this function.
    """
    if isinstance(state, WaitingFull):
        if _ready_to_run(reading):
            return Running(started_at=reading.timestamp, start_percent=reading.percentage)
        return state

    if isinstance(state, Running):
        if not reading.on_battery_power or reading.is_charging:
            return Paused()
        if reading.percentage <= end_threshold:
            return CalibrationCompleted(build_result(state.started_at, state.start_percent, reading))
        return state

    if isinstance(state, Paused):
        # An interrupted arc cannot resume, it is remeasured from full
        if _ready_to_run(reading):
            return Running(started_at=reading.timestamp, start_percent=reading.percentage)
        return state

    return state


class CalibrationEngine:
    """
    Full-discharge calibration driven by pushed telemetry.

    Time is taken from reading timestamps, so a replayed stream gives
    the same result as a live one.
    """

    OWNER = "calibration"

    def __init__(
        self,
        session_lock: Optional[SessionLock] = None,
        reporter: Optional[CalibrationReporter] = None,
        history: Optional[ReadingHistory] = None,
        repository=None,
        alert_sink: Optional[AlertSink] = None,
        end_threshold: int = 5,
        max_resume_gap_s: float = 1800.0,
        recent_limit: int = 5
    ):
        """
        Initialize engine.

        Args:
            session_lock: Lock shared with the quick test
            reporter: Analytics and report collaborator for finished sessions
            history: Long-lived reading store preferred over the engine buffer
            repository: CalibrationSessionRepository for save/restore
            alert_sink: Receives report and persistence failures
            end_threshold: SOC at or below which the session completes
            max_resume_gap_s: Largest telemetry gap continued without checks
            recent_limit: Number of results kept in recent_results
        """
        self.session_lock = session_lock or SessionLock()
        self.reporter = reporter
        self.history = history
        self.repository = repository
        self.alert_sink = alert_sink or LoggingAlertSink()
        self.end_threshold = end_threshold
        self.max_resume_gap_s = max(0.0, max_resume_gap_s)
        self.recent_limit = recent_limit

        self.state: CalibrationState = CalibrationIdle()
        self.samples: List[Reading] = []
        self.last_sample_at: Optional[datetime] = None
        self.last_result: Optional[CalibrationResult] = None
        self.recent_results: List[CalibrationResult] = []
        self.auto_reset_due_to_gap = False

        self._just_attached = False
        self._rate = DischargeRateEstimator()

    @property
    def is_active(self) -> bool:
        return self.state.is_active

    def start(self) -> None:
        """
        Begin a new session and wait for a full, unplugged battery.

        Raises:
            SessionBusyError: If the quick test holds the session
        """
        if not self.session_lock.acquire(self.OWNER):
            raise SessionBusyError(self.session_lock.holder)

        self._clear_buffers()
        self.auto_reset_due_to_gap = False
        self._set_state(WaitingFull())

    def stop(self) -> None:
        """Return to idle, discarding the session. Safe to call repeatedly."""
        self._clear_buffers()
        self.auto_reset_due_to_gap = False
        self.session_lock.release(self.OWNER)
        if not isinstance(self.state, CalibrationIdle):
            self._set_state(CalibrationIdle())

    def attach(self) -> None:
        """Mark the engine as (re)attached to the telemetry stream"""
        self._just_attached = True

    def acknowledge_auto_reset(self) -> None:
        self.auto_reset_due_to_gap = False
        self._save()

    def set_max_resume_gap(self, seconds: float) -> None:
        self.max_resume_gap_s = max(0.0, seconds)
        self._save()

    def handle_reading(self, reading: Reading) -> None:
        """Advance the session with one telemetry sample"""
        if self._just_attached:
            self._just_attached = False
            self._apply_resume_policy(reading)

        previous = self.state
        state = next_state(previous, reading, self.end_threshold)

        if isinstance(state, Running):
            if state is not previous:
                # Fresh discharge arc, from WaitingFull or Paused
                self._clear_buffers()
                logger.info(f"Calibration running from {state.start_percent}%")
            self._buffer(reading)
            self._rate.update(self.samples, (reading.timestamp - state.started_at).total_seconds())
            if state is not previous:
                self._set_state(state)
            else:
                self._save()
        elif isinstance(state, Paused) and state is not previous:
            logger.info(f"Calibration paused at {reading.percentage}%: on AC or charging")
            self._set_state(state)
        elif isinstance(state, CalibrationCompleted) and state is not previous:
            self._buffer(reading)
            self._complete(state.result)

    def _apply_resume_policy(self, reading: Reading) -> None:
        if not isinstance(self.state, Running):
            return

        if self.last_sample_at is None:
            gap = math.inf
        else:
            gap = (reading.timestamp - self.last_sample_at).total_seconds()

        if gap <= self.max_resume_gap_s:
            return

        last_percent = self.samples[-1].percentage if self.samples else None
        still_discharging = (
            reading.on_battery_power
            and not reading.is_charging
            and last_percent is not None
            and reading.percentage <= last_percent
        )
        if still_discharging:
            logger.info(f"Resuming calibration after {gap:.0f}s gap")
            return

        logger.warning(f"Calibration reset after {gap:.0f}s telemetry gap")
        self._clear_buffers()
        self.auto_reset_due_to_gap = True
        self._set_state(WaitingFull())

    def _complete(self, result: CalibrationResult) -> None:
        report_path = self._report(result)
        if report_path:
            result = result.model_copy(update={"report_path": report_path})

        logger.info(
            f"Calibration complete: {result.start_percent}% -> {result.end_percent}% "
            f"in {result.duration_hours:.2f}h ({result.avg_discharge_per_hour:.2f} %/h)"
        )

        self.last_result = result
        self.recent_results = ([result] + self.recent_results)[:self.recent_limit]
        self.session_lock.release(self.OWNER)
        self._set_state(CalibrationCompleted(result))

    def _report(self, result: CalibrationResult) -> Optional[str]:
        if self.reporter is None:
            return None

        history = list(self.samples)
        if self.history is not None:
            try:
                history = self.history.between(result.started_at, result.finished_at) or history
            except Exception as e:
                logger.error(f"Reading history unavailable: {e}")

        try:
            return self.reporter.report(history, result)
        except Exception as e:
            logger.error(f"Calibration report failed: {e}")
            self.alert_sink.persistence_failed("calibration report", e)
            return None

    def _buffer(self, reading: Reading) -> None:
        self.samples.append(reading)
        self.last_sample_at = reading.timestamp

    def _clear_buffers(self) -> None:
        self.samples = []
        self.last_sample_at = None
        self._rate.reset()

    def _set_state(self, state: CalibrationState) -> None:
        self.state = state
        logger.info(f"Calibration state: {state.kind.value}")
        self._save()

    def _save(self) -> None:
        if self.repository is not None:
            self.repository.save(self.to_record())

    def to_record(self) -> CalibrationSessionRecord:
        """Snapshot for persistence"""
        state = self.state
        return CalibrationSessionRecord(
            state=state.kind.value,
            started_at=state.started_at if isinstance(state, Running) else None,
            start_percent=state.start_percent if isinstance(state, Running) else None,
            result=state.result if isinstance(state, CalibrationCompleted) else None,
            last_result=self.last_result,
            recent_results=list(self.recent_results),
            samples=list(self.samples),
            last_sample_at=self.last_sample_at,
            max_resume_gap_s=self.max_resume_gap_s,
            auto_reset_due_to_gap=self.auto_reset_due_to_gap
        )

    def restore(self, record: CalibrationSessionRecord) -> None:
        """
        Load a saved snapshot and mark the engine as reattached.

        A Running snapshot without its start data falls back to WaitingFull.
        """
        phase = CalibrationPhase(record.state)

        if phase == CalibrationPhase.RUNNING:
            if record.started_at is not None and record.start_percent is not None:
                state = Running(started_at=record.started_at, start_percent=record.start_percent)
            else:
                state = WaitingFull()
        elif phase == CalibrationPhase.COMPLETED and record.result is not None:
            state = CalibrationCompleted(record.result)
        elif phase == CalibrationPhase.WAITING_FULL:
            state = WaitingFull()
        elif phase == CalibrationPhase.PAUSED:
            state = Paused()
        else:
            state = CalibrationIdle()

        if state.is_active and not self.session_lock.acquire(self.OWNER):
            raise SessionBusyError(self.session_lock.holder)

        self.state = state
        self.samples = list(record.samples)
        self.last_sample_at = record.last_sample_at
        self.last_result = record.last_result
        self.recent_results = list(record.recent_results)[:self.recent_limit]
        self.max_resume_gap_s = max(0.0, record.max_resume_gap_s)
        self.auto_reset_due_to_gap = record.auto_reset_due_to_gap
        self._just_attached = True

        logger.info(f"Calibration restored in state {state.kind.value} with {len(self.samples)} samples")

    def progress(self) -> ProgressSnapshot:
        """Phase label, discharge fraction and advisory time remaining"""
        state = self.state

        if isinstance(state, Running):
            current = self.samples[-1].percentage if self.samples else state.start_percent
            span = state.start_percent - self.end_threshold
            fraction = (state.start_percent - current) / span if span > 0 else 0.0
            return ProgressSnapshot(
                phase=state.kind.value,
                step=f"Discharging {current}% -> {self.end_threshold}%",
                progress=max(0.0, min(1.0, fraction)),
                estimated_seconds_remaining=self._rate.seconds_to_drop(current - self.end_threshold)
            )

        if isinstance(state, CalibrationCompleted):
            return ProgressSnapshot(phase=state.kind.value, step="Completed", progress=1.0)

        steps = {
            CalibrationPhase.IDLE: "Idle",
            CalibrationPhase.WAITING_FULL: "Waiting for a full, unplugged battery",
            CalibrationPhase.PAUSED: "Paused: recharge to 100% and unplug to restart",
        }
        return ProgressSnapshot(phase=state.kind.value, step=steps[state.kind])
