"""
Test Progress
Advisory progress and remaining-time estimates for display
"""
from dataclasses import dataclass
from typing import Optional, Sequence

from ..models import Reading


@dataclass
class ProgressSnapshot:
    """What a UI needs to render a running test"""
    phase: str
    step: str = ""
    progress: float = 0.0                          # 0.0-1.0
    estimated_seconds_remaining: Optional[float] = None


class DischargeRateEstimator:
    """
    Exponentially smoothed discharge rate in %SOC per minute.

    Advisory only: nothing in the test protocol depends on it.
    """

    def __init__(
        self,
        initial_rate: float = 0.5,
        smoothing: float = 0.3,
        window: int = 30,
        min_elapsed_s: float = 60.0
    ):
        self.initial_rate = initial_rate
        self.rate = initial_rate
        self.smoothing = smoothing
        self.window = window
        self.min_elapsed_s = min_elapsed_s

    def reset(self) -> None:
        self.rate = self.initial_rate

    def update(self, samples: Sequence[Reading], elapsed_s: float) -> float:
        """Fold the rate over the last window samples into the average"""
        if len(samples) < 2 or elapsed_s <= self.min_elapsed_s:
            return self.rate

        recent = samples[-self.window:]
        minutes = (recent[-1].timestamp - recent[0].timestamp).total_seconds() / 60.0
        soc_drop = recent[0].percentage - recent[-1].percentage

        if minutes > 0 and soc_drop > 0:
            self.rate = self.smoothing * (soc_drop / minutes) + (1 - self.smoothing) * self.rate
        return self.rate

    def seconds_to_drop(self, soc_points: float) -> float:
        """Time for SOC to fall by soc_points at the current rate"""
        if soc_points <= 0 or self.rate <= 0:
            return 0.0
        return soc_points / self.rate * 60.0
