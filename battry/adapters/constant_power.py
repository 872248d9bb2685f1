"""
Constant-Power Controller
PI loop that holds battery draw near a target by modulating a load generator
"""
import logging
from enum import Enum
from typing import Callable, List, Optional

import numpy as np

from ..engines.scheduler import CancelToken, Scheduler
from .base import ConstantPowerControl, LoadGenerator, LoadProfile

logger = logging.getLogger(__name__)


class ControllerState(str, Enum):
    IDLE = "idle"
    STABILIZING = "stabilizing"
    STABLE = "stable"
    ERROR = "error"


class PIConstantPowerController(ConstantPowerControl):
    """
    Proportional-integral duty-cycle controller ticking at 1 Hz.

    The duty cycle (0-1) is mapped onto load profiles: below 0.1 the
    load is off, then light, medium and heavy bands.
    """

    MIN_TARGET_W = 0.1
    MAX_INTEGRAL = 1.0
    HISTORY_SIZE = 60
    QUALITY_WINDOW = 30
    MIN_QUALITY_SAMPLES = 10
    STABLE_AFTER_S = 30.0
    STABLE_ERROR = 0.1
    UNSTABLE_ERROR = 0.2

    def __init__(
        self,
        scheduler: Scheduler,
        power_reader: Callable[[], float],
        load_generator: Optional[LoadGenerator] = None,
        kp: float = 0.10,
        ki: float = 0.02,
        interval_s: float = 1.0
    ):
        """
        Initialize controller.

        Args:
            scheduler: Timer source for control ticks
            power_reader: Returns the latest measured power draw (W)
            load_generator: Load the duty cycle is applied to
            kp: Proportional gain
            ki: Integral gain
            interval_s: Control period
        """
        self.scheduler = scheduler
        self.power_reader = power_reader
        self.load_generator = load_generator
        self.kp = kp
        self.ki = ki
        self.interval_s = interval_s

        self.state = ControllerState.IDLE
        self.error_message: Optional[str] = None
        self.target_power_w = 0.0
        self.current_power_w = 0.0
        self.power_error = 0.0
        self.duty_cycle = 0.5
        self._quality = 100.0

        self._integral = 0.0
        self._history: List[float] = []
        self._last_tick: Optional[float] = None
        self._stabilizing_since: Optional[float] = None
        self._profile: Optional[LoadProfile] = None
        self._timer: Optional[CancelToken] = None

    @property
    def control_quality(self) -> float:
        return self._quality

    @property
    def is_active(self) -> bool:
        return self.state in (ControllerState.STABILIZING, ControllerState.STABLE)

    def current_power(self) -> float:
        return self.current_power_w

    def start(self, target_watts: float) -> None:
        if target_watts <= self.MIN_TARGET_W:
            self._fail(f"Target power must be above {self.MIN_TARGET_W}W")
            return

        self.target_power_w = target_watts
        self._integral = 0.0
        self.duty_cycle = 0.5
        self._history = []
        self._last_tick = None
        self._stabilizing_since = self.scheduler.now()
        self.state = ControllerState.STABILIZING
        self.error_message = None

        self._schedule_tick()
        logger.info(f"Constant power control started at {target_watts:.1f}W")

    def stop(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        if self.load_generator is not None:
            self.load_generator.apply_load(None)
        self._profile = None
        self.state = ControllerState.IDLE
        self.target_power_w = 0.0
        self.current_power_w = 0.0
        self.power_error = 0.0
        self.duty_cycle = 0.5
        self._integral = 0.0
        self._history = []
        logger.info("Constant power control stopped")

    def _schedule_tick(self) -> None:
        self._timer = self.scheduler.call_later(self.interval_s, self._tick)

    def _tick(self) -> None:
        if self.target_power_w <= 0:
            return
        self.update()
        if self.state != ControllerState.IDLE:
            self._schedule_tick()

    def update(self) -> None:
        """One control step: measure, integrate, adjust duty, reassess"""
        now = self.scheduler.now()
        self.current_power_w = abs(self.power_reader())
        self.power_error = self.target_power_w - self.current_power_w

        self._history.append(self.current_power_w)
        self._history = self._history[-self.HISTORY_SIZE:]

        dt = now - self._last_tick if self._last_tick is not None else self.interval_s
        self._last_tick = now

        self._integral += self.power_error * self.ki * dt
        self._integral = max(-self.MAX_INTEGRAL, min(self.MAX_INTEGRAL, self._integral))

        output = self.power_error * self.kp + self._integral
        self.duty_cycle = max(0.0, min(1.0, self.duty_cycle + output))
        self._apply_duty(self.duty_cycle)

        self._quality = self.quality_for(self._history, self.target_power_w)
        self._update_state(now)

    @classmethod
    def quality_for(cls, history: List[float], target_w: float) -> float:
        """Tracking quality 0-100 from mean error and spread of recent power"""
        if len(history) < cls.MIN_QUALITY_SAMPLES:
            return 50.0

        recent = np.array(history[-cls.QUALITY_WINDOW:])
        avg_power = float(np.mean(recent))
        std_dev = float(np.std(recent))

        relative_error = abs(avg_power - target_w) / max(0.1, target_w)
        variation = std_dev / max(0.1, avg_power)

        error_penalty = min(50.0, relative_error * 200)
        stability_penalty = min(30.0, variation * 300)
        return max(0.0, 100.0 - error_penalty - stability_penalty)

    def _update_state(self, now: float) -> None:
        relative_error = abs(self.power_error) / max(0.1, self.target_power_w)

        if self.duty_cycle <= 0.01 and self.current_power_w < self.target_power_w * 0.5:
            self._fail("Cannot generate sufficient load")
            return
        if self.duty_cycle >= 0.99 and self.current_power_w > self.target_power_w * 1.5:
            self._fail("Cannot reduce load sufficiently")
            return

        if self.state == ControllerState.STABILIZING:
            started = self._stabilizing_since if self._stabilizing_since is not None else now
            if relative_error < self.STABLE_ERROR and now - started > self.STABLE_AFTER_S:
                self.state = ControllerState.STABLE
                logger.info(f"Constant power stable at {self.current_power_w:.1f}W")
        elif self.state == ControllerState.STABLE:
            if relative_error > self.UNSTABLE_ERROR:
                self.state = ControllerState.STABILIZING
                self._stabilizing_since = now

    def _fail(self, message: str) -> None:
        self.state = ControllerState.ERROR
        self.error_message = message
        logger.warning(f"Constant power control error: {message}")

    @staticmethod
    def profile_for_duty(duty_cycle: float) -> Optional[LoadProfile]:
        if duty_cycle < 0.1:
            return None
        if duty_cycle < 0.4:
            return LoadProfile.LIGHT
        if duty_cycle < 0.7:
            return LoadProfile.MEDIUM
        return LoadProfile.HEAVY

    def _apply_duty(self, duty_cycle: float) -> None:
        if self.load_generator is None:
            return
        profile = self.profile_for_duty(duty_cycle)
        if profile != self._profile:
            self.load_generator.apply_load(profile)
            self._profile = profile
        if profile is not None:
            self.load_generator.set_intensity(duty_cycle)
