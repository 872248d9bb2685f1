"""
Tests for the full-discharge calibration engine
"""
from pathlib import Path

import pytest

from battry.adapters.base import AlertSink, CalibrationReporter
from battry.adapters.reporting import CalibrationSummary, SessionSummaryReporter
from battry.engines.calibration import (
    CalibrationCompleted,
    CalibrationEngine,
    CalibrationIdle,
    Paused,
    Running,
    WaitingFull,
    next_state,
)
from battry.engines.session import SessionBusyError, SessionLock
from battry.repositories.history_repo import CalibrationSessionRepository
from conftest import T0, make_reading


class RecordingAlertSink(AlertSink):
    def __init__(self):
        self.alerts = []

    def persistence_failed(self, operation, error):
        self.alerts.append((operation, error))


class FixedPathReporter(CalibrationReporter):
    def __init__(self):
        self.calls = []

    def report(self, history, result):
        self.calls.append((list(history), result))
        return "/reports/calibration.json"


class BrokenReporter(CalibrationReporter):
    def report(self, history, result):
        raise OSError("disk full")


def discharge(engine, start=99, end=5, step_s=360, offset_s=0):
    """Feed one reading per percent from start down to end"""
    for soc in range(start, end - 1, -1):
        engine.handle_reading(make_reading(offset_s + (start - soc) * step_s, soc))


class TestNextState:
    """Pure transition function"""

    def test_waiting_full_needs_unplugged_full_battery(self):
        state = WaitingFull()

        assert next_state(state, make_reading(0, 98)) is state
        assert next_state(state, make_reading(0, 100, is_charging=True)) is state
        assert next_state(state, make_reading(0, 100, on_battery_power=False)) is state

        running = next_state(state, make_reading(0, 99))
        assert running == Running(started_at=T0, start_percent=99)

    def test_running_pauses_on_power(self):
        state = Running(started_at=T0, start_percent=100)

        assert next_state(state, make_reading(60, 97)) is state
        assert isinstance(next_state(state, make_reading(60, 97, is_charging=True)), Paused)
        assert isinstance(next_state(state, make_reading(60, 97, on_battery_power=False)), Paused)

    def test_running_completes_at_threshold(self):
        state = Running(started_at=T0, start_percent=100)

        completed = next_state(state, make_reading(3600 * 9.5, 5))

        assert isinstance(completed, CalibrationCompleted)
        assert completed.result.end_percent == 5
        assert completed.result.duration_hours == pytest.approx(9.5)
        assert completed.result.avg_discharge_per_hour == pytest.approx(10.0)

    def test_paused_restarts_from_full(self):
        state = Paused()

        assert next_state(state, make_reading(0, 80)) is state
        assert isinstance(next_state(state, make_reading(0, 100)), Running)

    def test_idle_and_completed_ignore_readings(self):
        idle = CalibrationIdle()
        assert next_state(idle, make_reading(0, 100)) is idle

    def test_does_not_mutate_input(self):
        state = Running(started_at=T0, start_percent=100)
        next_state(state, make_reading(60, 3))

        assert state.start_percent == 100
        assert state.started_at == T0


class TestCalibrationEngine:
    """Engine around the transition function"""

    def setup_method(self):
        self.lock = SessionLock()
        self.reporter = FixedPathReporter()
        self.alerts = RecordingAlertSink()
        self.engine = CalibrationEngine(
            session_lock=self.lock,
            reporter=self.reporter,
            alert_sink=self.alerts
        )

    def test_full_discharge_result(self):
        # 100% arrives while idle and is ignored
        self.engine.handle_reading(make_reading(-360, 100))
        self.engine.start()
        assert isinstance(self.engine.state, WaitingFull)

        discharge(self.engine)

        state = self.engine.state
        assert isinstance(state, CalibrationCompleted)
        result = state.result
        assert result.start_percent == 99
        assert result.end_percent == 5
        assert result.duration_hours == pytest.approx(9.4)
        assert result.avg_discharge_per_hour == pytest.approx(10.0)
        assert result.estimated_runtime_hours_from_100_to_0 == pytest.approx(10.0)
        assert result.report_path == "/reports/calibration.json"

        assert self.engine.last_result == result
        assert self.engine.recent_results == [result]
        assert not self.lock.is_held
        assert self.engine.progress().progress == 1.0

    def test_reporter_receives_session_samples(self):
        self.engine.start()
        discharge(self.engine)

        history, result = self.reporter.calls[0]
        assert len(history) == 95
        assert history[0].percentage == 99
        assert history[-1].percentage == 5

    def test_reporter_failure_is_alerted(self):
        engine = CalibrationEngine(reporter=BrokenReporter(), alert_sink=self.alerts)
        engine.start()
        discharge(engine)

        assert isinstance(engine.state, CalibrationCompleted)
        assert engine.last_result.report_path is None
        assert self.alerts.alerts[0][0] == "calibration report"

    def test_recent_results_newest_first_and_capped(self):
        engine = CalibrationEngine(recent_limit=2)
        for run in range(3):
            engine.start()
            discharge(engine, offset_s=run * 100000)

        assert len(engine.recent_results) == 2
        assert engine.recent_results[0].started_at > engine.recent_results[1].started_at

    def test_pause_then_restart_discards_arc(self):
        self.engine.start()
        discharge(self.engine, start=100, end=80)
        self.engine.handle_reading(make_reading(8000, 80, is_charging=True, on_battery_power=False))

        assert isinstance(self.engine.state, Paused)
        assert len(self.engine.samples) == 21

        self.engine.handle_reading(make_reading(9000, 90, on_battery_power=False))
        assert isinstance(self.engine.state, Paused)

        self.engine.handle_reading(make_reading(20000, 100))
        state = self.engine.state
        assert isinstance(state, Running)
        assert state.start_percent == 100
        assert state.started_at == make_reading(20000, 100).timestamp
        assert len(self.engine.samples) == 1

    def test_start_rejected_while_quick_test_holds_session(self):
        self.lock.acquire("quick_test")

        with pytest.raises(SessionBusyError):
            self.engine.start()
        assert isinstance(self.engine.state, CalibrationIdle)

    def test_stop_is_idempotent(self):
        self.engine.start()
        discharge(self.engine, start=100, end=90)

        self.engine.stop()
        self.engine.stop()

        assert isinstance(self.engine.state, CalibrationIdle)
        assert self.engine.samples == []
        assert not self.lock.is_held

    def test_progress_while_running(self):
        self.engine.start()
        discharge(self.engine, start=100, end=52)

        snapshot = self.engine.progress()
        assert snapshot.phase == "running"
        assert snapshot.progress == pytest.approx(48 / 95)
        assert snapshot.estimated_seconds_remaining > 0

    def test_polling_progress_does_not_move_eta(self):
        self.engine.start()
        discharge(self.engine, start=100, end=52)

        first = self.engine.progress().estimated_seconds_remaining
        for _ in range(20):
            self.engine.progress()

        assert self.engine.progress().estimated_seconds_remaining == first

        self.engine.handle_reading(make_reading(49 * 360, 51))
        assert self.engine.progress().estimated_seconds_remaining != first


class TestResumeGap:
    """First reading after reattach"""

    def setup_method(self):
        self.alerts = RecordingAlertSink()
        self.engine = CalibrationEngine(max_resume_gap_s=1800, alert_sink=self.alerts)
        self.engine.start()
        discharge(self.engine, start=100, end=90, step_s=60)
        # Last sample at t=600 with 90%

    def test_short_gap_continues(self):
        self.engine.attach()
        self.engine.handle_reading(make_reading(600 + 1200, 88))

        assert isinstance(self.engine.state, Running)
        assert not self.engine.auto_reset_due_to_gap
        assert len(self.engine.samples) == 12

    def test_long_gap_still_discharging_continues(self):
        self.engine.attach()
        self.engine.handle_reading(make_reading(600 + 7200, 70))

        assert isinstance(self.engine.state, Running)
        assert not self.engine.auto_reset_due_to_gap

    def test_long_gap_after_charge_resets(self):
        self.engine.attach()
        self.engine.handle_reading(make_reading(600 + 7200, 95))

        assert isinstance(self.engine.state, WaitingFull)
        assert self.engine.auto_reset_due_to_gap
        assert self.engine.samples == []

        self.engine.acknowledge_auto_reset()
        assert not self.engine.auto_reset_due_to_gap

    def test_long_gap_on_ac_resets(self):
        self.engine.attach()
        self.engine.handle_reading(make_reading(600 + 7200, 85, on_battery_power=False))

        assert isinstance(self.engine.state, WaitingFull)
        assert self.engine.auto_reset_due_to_gap

    def test_gap_policy_only_on_first_reading(self):
        self.engine.handle_reading(make_reading(600 + 7200, 95))

        assert isinstance(self.engine.state, Running)

    def test_negative_gap_setting_clamps_to_zero(self):
        self.engine.set_max_resume_gap(-5)
        assert self.engine.max_resume_gap_s == 0.0


class TestSaveRestore:
    """Round trip through the session repository"""

    def test_restore_running_session(self, tmp_path: Path):
        repo = CalibrationSessionRepository(tmp_path / "calibration.json")
        engine = CalibrationEngine(repository=repo)
        engine.start()
        discharge(engine, start=100, end=70)

        lock = SessionLock()
        restored = CalibrationEngine(session_lock=lock, repository=repo)
        restored.restore(repo.load())

        assert restored.state == engine.state
        assert len(restored.samples) == 31
        assert restored.last_sample_at == engine.last_sample_at
        assert lock.holder == CalibrationEngine.OWNER

        # Reattached: continuing discharge after a long gap is accepted
        restored.handle_reading(make_reading(30 * 360 + 7200, 60))
        assert isinstance(restored.state, Running)

        discharge(restored, start=60, end=5, offset_s=30 * 360 + 7200)
        assert isinstance(restored.state, CalibrationCompleted)
        assert restored.state.result.start_percent == 100

    def test_restore_completed_keeps_results(self, tmp_path: Path):
        repo = CalibrationSessionRepository(tmp_path / "calibration.json")
        engine = CalibrationEngine(repository=repo)
        engine.start()
        discharge(engine)

        restored = CalibrationEngine(repository=repo)
        restored.restore(repo.load())

        assert isinstance(restored.state, CalibrationCompleted)
        assert restored.last_result == engine.last_result
        assert not restored.session_lock.is_held


class TestSessionSummaryReporter:
    """JSON summary for a finished calibration"""

    def test_writes_summary(self, tmp_path: Path):
        engine = CalibrationEngine(reporter=SessionSummaryReporter(tmp_path))
        engine.start()
        discharge(engine)

        path = Path(engine.last_result.report_path)
        assert path.exists()
        assert path.name == "calibration_2026-01-05_09-00-00.json"

        summary = CalibrationSummary.model_validate_json(path.read_text(encoding="utf-8"))
        assert summary.sample_count == 95
        assert summary.trend_discharge_per_hour == pytest.approx(10.0, rel=0.01)
        assert summary.result.end_percent == 5

    def test_trend_ignores_charging_and_outliers(self):
        history = [make_reading(i * 360, 90 - i) for i in range(10)]
        history[4] = make_reading(4 * 360, 99)
        history.append(make_reading(10 * 360, 100, is_charging=True))

        assert SessionSummaryReporter.trend_discharge_per_hour(history) == pytest.approx(10.0, rel=0.05)

    def test_trend_needs_points(self):
        history = [make_reading(0, 90), make_reading(360, 89)]
        assert SessionSummaryReporter.trend_discharge_per_hour(history) == 0.0
