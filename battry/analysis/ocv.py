"""
Open-Circuit Voltage (OCV) Analyzer
Reconstructs the OCV curve from loaded readings and locates its knee
"""
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..models import DCIRPoint, OCVPoint, Reading

logger = logging.getLogger(__name__)


@dataclass
class OCVAnalysis:
    """Reconstructed OCV curve and its knee"""
    ocv_curve: List[OCVPoint] = field(default_factory=list)
    knee_soc: Optional[float] = None
    knee_index: float = 0.0          # 0-100, 100 = healthy knee position
    voltage_gradient: float = 0.0    # mV per %SOC
    early_degradation: bool = False


@dataclass
class _LinearFit:
    slope: float
    intercept: float
    sse: float


class OCVAnalyzer:
    """
    Rebuilds open-circuit voltage from loaded readings.

    Each reading is compensated for the I·R drop using the DCIR curve
    measured during the same test, binned by SOC, and the resulting
    curve is split into two linear segments to find the knee.
    """

    MIN_KNEE_POINTS = 8
    KNEE_EDGE_POINTS = 3
    KNEE_SOC_RANGE = (10.0, 90.0)
    SLOPE_PENALTY = 0.001

    # Knee position scoring. A knee at HEALTHY_KNEE_SOC or below scores 100,
    # KNEE_SCORE_SPAN percent higher scores 0. Empirical, tune as data arrives.
    HEALTHY_KNEE_SOC = 20.0
    KNEE_SCORE_SPAN = 30.0

    EARLY_KNEE_SOC = 40.0

    def __init__(self, dcir_points: Optional[Sequence[DCIRPoint]] = None, bin_size: float = 2.0):
        """
        Initialize analyzer.

        Args:
            dcir_points: Resistance curve used for I·R compensation
            bin_size: SOC bin width in percent
        """
        self.dcir_points = sorted(dcir_points or [], key=lambda p: p.soc_percent)
        self.bin_size = bin_size

    def interpolated_dcir(self, soc: float) -> Optional[float]:
        """DCIR at the given SOC, clamped to the nearest measured point outside the range"""
        if not self.dcir_points:
            return None

        first, last = self.dcir_points[0], self.dcir_points[-1]
        if soc <= first.soc_percent:
            return first.resistance_milliohm
        if soc >= last.soc_percent:
            return last.resistance_milliohm

        for lower, upper in zip(self.dcir_points, self.dcir_points[1:]):
            if lower.soc_percent <= soc <= upper.soc_percent:
                span = upper.soc_percent - lower.soc_percent
                if span <= 0:
                    return lower.resistance_milliohm
                factor = (soc - lower.soc_percent) / span
                return lower.resistance_milliohm + factor * (
                    upper.resistance_milliohm - lower.resistance_milliohm
                )

        return last.resistance_milliohm

    def reconstruct(self, sample: Reading) -> float:
        """Compensated voltage V + I·R, raw voltage when no DCIR data exists"""
        dcir_mohm = self.interpolated_dcir(float(sample.percentage))
        if dcir_mohm is None:
            return sample.voltage

        return sample.voltage + (sample.current / 1000.0) * (dcir_mohm / 1000.0)

    def build_curve(self, samples: Sequence[Reading], bin_size: Optional[float] = None) -> List[OCVPoint]:
        """
        Bin reconstructed OCV by SOC.

        Args:
            samples: Readings to reconstruct
            bin_size: SOC bin width, defaults to the analyzer setting

        Returns:
            OCV points sorted ascending by SOC
        """
        size = bin_size or self.bin_size
        bins: Dict[float, Tuple[float, int, float]] = {}

        for sample in samples:
            ocv = self.reconstruct(sample)
            center = math.floor(sample.percentage / size) * size + size / 2
            voltage_sum, count, ts_sum = bins.get(center, (0.0, 0, 0.0))
            bins[center] = (voltage_sum + ocv, count + 1, ts_sum + sample.timestamp.timestamp())

        curve = []
        for center, (voltage_sum, count, ts_sum) in bins.items():
            curve.append(OCVPoint(
                soc_percent=center,
                ocv_voltage=voltage_sum / count,
                timestamp=datetime.fromtimestamp(ts_sum / count, tz=timezone.utc)
            ))

        return sorted(curve, key=lambda p: p.soc_percent)

    @classmethod
    def find_knee(cls, curve: Sequence[OCVPoint]) -> Optional[float]:
        """
        Locate the knee by two-segment least-squares fitting.

        Every interior split with SOC in [10, 90] is scored by the sum of
        both segments' squared residuals plus a small slope-difference
        term. The split with the lowest score is the knee.
        """
        if len(curve) < cls.MIN_KNEE_POINTS:
            return None

        points = sorted(curve, key=lambda p: p.soc_percent)
        x = np.array([p.soc_percent for p in points])
        y = np.array([p.ocv_voltage for p in points])
        lo, hi = cls.KNEE_SOC_RANGE

        best_soc = None
        best_error = math.inf

        for i in range(cls.KNEE_EDGE_POINTS, len(points) - cls.KNEE_EDGE_POINTS):
            split_soc = x[i]
            if not lo <= split_soc <= hi:
                continue

            left = cls._linear_fit(x[:i + 1], y[:i + 1])
            right = cls._linear_fit(x[i:], y[i:])
            error = left.sse + right.sse + cls.SLOPE_PENALTY * abs(left.slope - right.slope)

            if error < best_error:
                best_error = error
                best_soc = float(split_soc)

        return best_soc

    @staticmethod
    def _linear_fit(x: np.ndarray, y: np.ndarray) -> _LinearFit:
        if len(x) < 2 or np.ptp(x) < 1e-12:
            return _LinearFit(0.0, float(np.mean(y)) if len(y) else 0.0, math.inf)

        slope, intercept = np.polyfit(x, y, 1)
        residuals = y - (slope * x + intercept)
        return _LinearFit(float(slope), float(intercept), float(np.sum(residuals ** 2)))

    @classmethod
    def knee_index(cls, knee_soc: Optional[float]) -> float:
        """Knee quality 0-100: near 20-30% SOC is healthy, 50%+ is degraded"""
        if knee_soc is None:
            return 0.0
        normalized = max(0.0, min(1.0, (knee_soc - cls.HEALTHY_KNEE_SOC) / cls.KNEE_SCORE_SPAN))
        return (1.0 - normalized) * 100.0

    def analyze(self, samples: Sequence[Reading]) -> OCVAnalysis:
        """Full OCV analysis: curve, knee, gradient, early-degradation flag"""
        curve = self.build_curve(samples)
        knee = self.find_knee(curve)
        index = self.knee_index(knee)

        knee_for_flag = knee if knee is not None else 25.0
        early = knee_for_flag > self.EARLY_KNEE_SOC or index < 50.0

        if knee is not None:
            logger.info(f"OCV knee at {knee:.1f}% SOC (index {index:.0f})")

        return OCVAnalysis(
            ocv_curve=curve,
            knee_soc=knee,
            knee_index=index,
            voltage_gradient=self._voltage_gradient(curve),
            early_degradation=early
        )

    @staticmethod
    def _voltage_gradient(curve: Sequence[OCVPoint]) -> float:
        if len(curve) < 2:
            return 0.0
        first, last = curve[0], curve[-1]
        soc_range = last.soc_percent - first.soc_percent
        if soc_range <= 0:
            return 0.0
        return (last.ocv_voltage - first.ocv_voltage) * 1000.0 / soc_range

    @classmethod
    def average_ocv(
        cls,
        samples: Sequence[Reading],
        dcir_points: Optional[Sequence[DCIRPoint]] = None,
        bin_size: float = 2.0
    ) -> Optional[float]:
        """Mean of the reconstructed OCV curve, None without data"""
        curve = cls(dcir_points, bin_size).build_curve(samples)
        if not curve:
            return None
        return float(np.mean([p.ocv_voltage for p in curve]))
