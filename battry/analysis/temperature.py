"""
Temperature Normalizer
Corrects SOH and DCIR to a 25 °C reference so tests stay comparable
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Tuple

logger = logging.getLogger(__name__)

# (soh_energy, dcir_at_50, average_temperature) -> (normalized_soh, normalized_dcir, quality)
TemperatureNormalize = Callable[
    [float, Optional[float], float],
    Tuple[float, Optional[float], float]
]


class DegradationTrend(str, Enum):
    """Direction of SOH change between two normalised tests"""
    ACCELERATING = "accelerating"
    NORMAL = "normal"
    STABLE = "stable"
    IMPROVING = "improving"  # usually measurement noise


@dataclass
class NormalizationResult:
    """Metrics corrected to the reference temperature"""
    normalized_soh: float
    normalized_dcir: Optional[float]
    temperature_coefficient: float
    average_temperature: float
    normalization_quality: float  # 0-100


@dataclass
class TestComparison:
    """Change between two tests after normalisation"""
    soh_change_percent: float
    dcir_change_percent: Optional[float]
    temperature_difference: float
    normalization_quality: float

    @property
    def trend(self) -> DegradationTrend:
        if self.soh_change_percent < -2.0:
            return DegradationTrend.ACCELERATING
        elif self.soh_change_percent < -0.5:
            return DegradationTrend.NORMAL
        elif self.soh_change_percent > 1.0:
            return DegradationTrend.IMPROVING
        return DegradationTrend.STABLE


def temperature_quality(temperature: float) -> float:
    """Suitability of the test temperature, 100 inside 20-30 °C"""
    if 20.0 <= temperature <= 30.0:
        return 100.0
    if 15.0 <= temperature <= 35.0:
        distance = min(abs(temperature - 20.0), abs(temperature - 30.0))
        return max(70.0, 100.0 - distance * 6)
    if 10.0 <= temperature <= 40.0:
        distance = min(abs(temperature - 15.0), abs(temperature - 35.0))
        return max(40.0, 70.0 - distance * 6)
    return 20.0


class TemperatureNormalizer:
    """
    Linear temperature correction around a 25 °C reference.

    Capacity rises slightly with heat (+0.15 %/°C) and resistance
    falls (-2.5 %/°C). Outside 10-50 °C the correction is not
    trusted and values pass through with low quality.
    """

    REFERENCE_TEMPERATURE = 25.0
    SOH_PER_DEGREE = 0.15      # %/°C
    DCIR_PER_DEGREE = -2.5     # %/°C
    MIN_TEMPERATURE = 10.0
    MAX_TEMPERATURE = 50.0
    MIN_DCIR_MOHM = 10.0

    def normalize(
        self,
        soh_energy: float,
        dcir_at_50: Optional[float],
        average_temperature: float
    ) -> NormalizationResult:
        """
        Normalize test results to the reference temperature.

        Args:
            soh_energy: SOH by energy (%)
            dcir_at_50: DCIR at 50% SOC (mΩ)
            average_temperature: Mean battery temperature during the test

        Returns:
            NormalizationResult
        """
        if not self.MIN_TEMPERATURE <= average_temperature <= self.MAX_TEMPERATURE:
            logger.warning(f"Temperature {average_temperature:.1f}°C outside correction range")
            return NormalizationResult(
                normalized_soh=soh_energy,
                normalized_dcir=dcir_at_50,
                temperature_coefficient=1.0,
                average_temperature=average_temperature,
                normalization_quality=20.0
            )

        delta = average_temperature - self.REFERENCE_TEMPERATURE

        normalized_soh = max(0.0, min(100.0, soh_energy - delta * self.SOH_PER_DEGREE))

        normalized_dcir = None
        if dcir_at_50 is not None:
            correction = delta * self.DCIR_PER_DEGREE / 100.0
            normalized_dcir = max(self.MIN_DCIR_MOHM, dcir_at_50 * (1.0 - correction))

        return NormalizationResult(
            normalized_soh=normalized_soh,
            normalized_dcir=normalized_dcir,
            temperature_coefficient=1.0 + delta * self.SOH_PER_DEGREE / 100.0,
            average_temperature=average_temperature,
            normalization_quality=max(50.0, 100.0 - abs(delta) * 3)
        )

    def compare_tests(
        self,
        first: Tuple[float, Optional[float], float],
        second: Tuple[float, Optional[float], float]
    ) -> TestComparison:
        """Compare two (soh, dcir, temperature) tests after normalisation"""
        n1 = self.normalize(*first)
        n2 = self.normalize(*second)

        dcir_change = None
        if n1.normalized_dcir and n2.normalized_dcir is not None:
            dcir_change = (n2.normalized_dcir - n1.normalized_dcir) / n1.normalized_dcir * 100.0

        return TestComparison(
            soh_change_percent=n2.normalized_soh - n1.normalized_soh,
            dcir_change_percent=dcir_change,
            temperature_difference=second[2] - first[2],
            normalization_quality=min(n1.normalization_quality, n2.normalization_quality)
        )

    def as_capability(self) -> TemperatureNormalize:
        """Adapter to the (soh, dcir, temp) -> (soh, dcir, quality) capability"""
        def normalize(soh_energy, dcir_at_50, average_temperature):
            result = self.normalize(soh_energy, dcir_at_50, average_temperature)
            return (
                result.normalized_soh,
                result.normalized_dcir,
                temperature_quality(average_temperature)
            )
        return normalize
