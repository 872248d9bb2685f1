"""
DC Internal Resistance (DCIR) Calculator
Ohm's-law resistance estimates from load pulses and their aggregate analysis
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np
from sklearn.linear_model import LinearRegression

from ..models import DCIRPoint, Reading

logger = logging.getLogger(__name__)


@dataclass
class DCIRAnalysis:
    """Aggregate view over the DCIR points of one test"""
    dcir_points: List[DCIRPoint] = field(default_factory=list)  # descending SOC
    dcir_at_50: Optional[float] = None   # mΩ, key metric
    dcir_at_20: Optional[float] = None   # mΩ, low-charge metric
    resistance_trend: float = 0.0        # mΩ per %SOC
    degradation_score: float = 100.0     # 0-100, 0 = critical


class DCIRCalculator:
    """
    Estimates internal resistance from pulse-load transitions.

    A pulse is a step change in discharge current. Averaging voltage and
    current over a short window on each side of the step gives
    R = ΔV / ΔI. Measurements outside (0, 10000) mΩ or with less than
    1 mA of current change are rejected.
    """

    MIN_SAMPLES = 6
    MIN_SIDE_SAMPLES = 2
    MIN_CURRENT_DELTA_A = 0.001
    MAX_RESISTANCE_MOHM = 10000.0

    # Degradation thresholds (mΩ)
    DCIR50_PENALTIES = ((300, 40), (200, 20), (150, 10))
    DCIR20_PENALTIES = ((500, 30), (350, 15), (250, 5))
    # Trend thresholds (mΩ per %SOC)
    TREND_PENALTIES = ((5.0, 20), (3.0, 10), (2.0, 5))

    def __init__(self, window_seconds: float = 3.0):
        self.window_seconds = window_seconds

    def estimate(
        self,
        samples: Sequence[Reading],
        pulse_start_index: int,
        window_seconds: Optional[float] = None
    ) -> Optional[DCIRPoint]:
        """
        Estimate DCIR around a load transition.

        Args:
            samples: Time-ordered readings spanning the pulse
            pulse_start_index: Index of the last reading before load was applied
            window_seconds: Averaging window on each side of the transition

        Returns:
            DCIRPoint, or None when the transition cannot be measured
        """
        window = self.window_seconds if window_seconds is None else window_seconds

        if len(samples) < self.MIN_SAMPLES:
            return None
        if not 0 < pulse_start_index < len(samples) - 1:
            return None

        pulse_time = samples[pulse_start_index].timestamp

        before = [
            s for s in samples
            if 0 <= (pulse_time - s.timestamp).total_seconds() <= window
        ]
        after = [
            s for s in samples
            if 0 < (s.timestamp - pulse_time).total_seconds() <= window
        ]

        if len(before) < self.MIN_SIDE_SAMPLES or len(after) < self.MIN_SIDE_SAMPLES:
            logger.debug("DCIR rejected: not enough samples around pulse")
            return None

        v_before = np.mean([s.voltage for s in before])
        i_before = np.mean([s.current for s in before])
        soc_before = np.mean([s.percentage for s in before])

        v_after = np.mean([s.voltage for s in after])
        i_after = np.mean([s.current for s in after])
        soc_after = np.mean([s.percentage for s in after])

        # Voltage drop under load, current change in A
        delta_v = float(v_before - v_after)
        delta_i = float(i_after - i_before) / 1000.0

        if abs(delta_i) < self.MIN_CURRENT_DELTA_A:
            logger.debug("DCIR rejected: current change below 1 mA")
            return None

        resistance_mohm = delta_v / delta_i * 1000.0

        if not 0 < resistance_mohm < self.MAX_RESISTANCE_MOHM:
            logger.debug(f"DCIR rejected: {resistance_mohm:.1f} mΩ out of range")
            return None

        quality = self._measurement_quality(
            delta_i * 1000.0, delta_v * 1000.0, float(soc_after - soc_before)
        )

        return DCIRPoint(
            soc_percent=float(soc_before + soc_after) / 2.0,
            resistance_milliohm=resistance_mohm,
            timestamp=pulse_time,
            quality=quality
        )

    def _measurement_quality(self, delta_i_ma: float, delta_v_mv: float, soc_drift: float) -> float:
        """Larger swings score higher, SOC drift during the pulse scores lower"""
        quality = min(100.0, (abs(delta_i_ma) / 100.0) * (abs(delta_v_mv) / 10.0) * 10.0)

        drift = abs(soc_drift)
        if drift > 1.0:
            quality *= 1.0 - min(0.5, drift / 10.0)

        return max(0.0, quality)

    def analyze(self, points: Sequence[DCIRPoint]) -> DCIRAnalysis:
        """
        Aggregate DCIR points into a degradation analysis.

        Args:
            points: DCIR measurements from one or more SOC levels

        Returns:
            DCIRAnalysis with interpolated key values, trend and score
        """
        sorted_points = sorted(points, key=lambda p: p.soc_percent, reverse=True)

        dcir_50 = self.interpolate(sorted_points, 50.0)
        dcir_20 = self.interpolate(sorted_points, 20.0)
        trend = self._resistance_trend(sorted_points)

        return DCIRAnalysis(
            dcir_points=sorted_points,
            dcir_at_50=dcir_50,
            dcir_at_20=dcir_20,
            resistance_trend=trend,
            degradation_score=self._degradation_score(dcir_50, dcir_20, trend)
        )

    @staticmethod
    def interpolate(points: Sequence[DCIRPoint], target_soc: float) -> Optional[float]:
        """Resistance at target SOC, linear between neighbours, nearest value outside"""
        if not points:
            return None

        lower = None
        upper = None
        for point in points:
            if point.soc_percent <= target_soc:
                if lower is None or point.soc_percent > lower.soc_percent:
                    lower = point
            if point.soc_percent >= target_soc:
                if upper is None or point.soc_percent < upper.soc_percent:
                    upper = point

        if lower is not None and lower.soc_percent == target_soc:
            return lower.resistance_milliohm
        if upper is not None and upper.soc_percent == target_soc:
            return upper.resistance_milliohm

        if lower is not None and upper is not None:
            factor = (target_soc - lower.soc_percent) / (upper.soc_percent - lower.soc_percent)
            return lower.resistance_milliohm + factor * (
                upper.resistance_milliohm - lower.resistance_milliohm
            )

        nearest = lower or upper
        return nearest.resistance_milliohm

    def _resistance_trend(self, points: Sequence[DCIRPoint]) -> float:
        """Slope of resistance vs SOC using linear regression"""
        if len(points) < 2:
            return 0.0

        X = np.array([p.soc_percent for p in points]).reshape(-1, 1)
        y = np.array([p.resistance_milliohm for p in points])

        if np.ptp(X) < 1e-10:
            return 0.0

        model = LinearRegression()
        model.fit(X, y)

        # Negative slope = resistance grows as charge falls
        return float(model.coef_[0])

    def _degradation_score(
        self,
        dcir_50: Optional[float],
        dcir_20: Optional[float],
        trend: float
    ) -> float:
        """Threshold penalties on absolute resistance and trend steepness"""
        score = 100.0

        if dcir_50 is not None:
            score -= self._penalty(dcir_50, self.DCIR50_PENALTIES)
        if dcir_20 is not None:
            score -= self._penalty(dcir_20, self.DCIR20_PENALTIES)
        score -= self._penalty(abs(trend), self.TREND_PENALTIES)

        return max(0.0, min(100.0, score))

    @staticmethod
    def _penalty(value: float, thresholds) -> float:
        for limit, penalty in thresholds:
            if value > limit:
                return penalty
        return 0
