"""
Tests for OCV Analyzer
"""
import pytest

from battry.analysis.ocv import OCVAnalyzer
from battry.models import DCIRPoint, OCVPoint
from conftest import T0, make_reading


def _two_segment_voltage(soc: float, knee: float = 30.0) -> float:
    """Flat plateau above the knee, steep drop below it"""
    if soc >= knee:
        return 11.0 + 0.01 * (soc - knee)
    return 11.0 + 0.05 * (soc - knee)


def _discharge(knee: float = 30.0):
    # One sample per SOC point, 100% down to 0%
    return [
        make_reading(i * 60, soc, _two_segment_voltage(soc, knee), 0.0)
        for i, soc in enumerate(range(100, -1, -1))
    ]


class TestReconstruct:
    """I·R compensation"""

    def test_raw_voltage_without_dcir(self):
        analyzer = OCVAnalyzer()
        sample = make_reading(0, 50, 11.2, -2000.0)

        assert analyzer.reconstruct(sample) == 11.2

    def test_compensation_formula(self):
        points = [DCIRPoint(soc_percent=50, resistance_milliohm=100, timestamp=T0)]
        analyzer = OCVAnalyzer(points)
        sample = make_reading(0, 50, 11.2, -2000.0)

        # V + I_A x R_Ω = 11.2 + (-2.0)(0.1)
        assert analyzer.reconstruct(sample) == pytest.approx(11.0)

    def test_dcir_interpolation_clamps(self):
        points = [
            DCIRPoint(soc_percent=80, resistance_milliohm=100, timestamp=T0),
            DCIRPoint(soc_percent=40, resistance_milliohm=200, timestamp=T0),
        ]
        analyzer = OCVAnalyzer(points)

        assert analyzer.interpolated_dcir(60) == pytest.approx(150.0)
        assert analyzer.interpolated_dcir(95) == 100
        assert analyzer.interpolated_dcir(10) == 200


class TestBuildCurve:
    """SOC binning"""

    def test_bins_sorted_by_soc(self):
        samples = [
            make_reading(0, 51, 11.3, 0.0),
            make_reading(60, 50, 11.1, 0.0),
            make_reading(120, 48, 11.0, 0.0),
        ]

        curve = OCVAnalyzer().build_curve(samples)

        assert [p.soc_percent for p in curve] == [49.0, 51.0]
        assert curve[1].ocv_voltage == pytest.approx(11.2)
        assert curve[1].timestamp == samples[0].timestamp + (samples[1].timestamp - samples[0].timestamp) / 2

    def test_empty(self):
        assert OCVAnalyzer().build_curve([]) == []
        assert OCVAnalyzer.average_ocv([]) is None


class TestKnee:
    """Two-segment knee detection"""

    def test_knee_within_one_bin(self):
        curve = OCVAnalyzer(bin_size=2.0).build_curve(_discharge(knee=30.0))

        knee = OCVAnalyzer.find_knee(curve)

        assert knee is not None
        assert abs(knee - 30.0) <= 2.0

    def test_late_knee_detected(self):
        curve = OCVAnalyzer().build_curve(_discharge(knee=56.0))

        knee = OCVAnalyzer.find_knee(curve)

        assert abs(knee - 56.0) <= 2.0

    def test_too_few_points(self):
        curve = [OCVPoint(soc_percent=s, ocv_voltage=11.0, timestamp=T0) for s in range(10, 80, 10)]
        assert OCVAnalyzer.find_knee(curve) is None

    def test_knee_index(self):
        assert OCVAnalyzer.knee_index(None) == 0.0
        assert OCVAnalyzer.knee_index(15.0) == 100.0
        assert OCVAnalyzer.knee_index(35.0) == pytest.approx(50.0)
        assert OCVAnalyzer.knee_index(60.0) == 0.0

    def test_analyze_flags_early_degradation(self):
        healthy = OCVAnalyzer().analyze(_discharge(knee=24.0))
        degraded = OCVAnalyzer().analyze(_discharge(knee=56.0))

        assert not healthy.early_degradation
        assert degraded.early_degradation
        assert healthy.knee_index > degraded.knee_index
        assert healthy.voltage_gradient > 0
