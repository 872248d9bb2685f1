"""
Tests for DCIR Calculator
"""
import pytest

from battry.analysis.dcir import DCIRCalculator
from battry.models import DCIRPoint
from conftest import T0, make_reading
from datetime import timedelta


def _pulse(v_before, i_before, v_after, i_after, soc_before=60, soc_after=60):
    """Four samples at rest, then four under load, 1 Hz; transition at index 3"""
    samples = [make_reading(t, soc_before, v_before, i_before) for t in range(4)]
    samples += [make_reading(t, soc_after, v_after, i_after) for t in range(4, 8)]
    return samples


def _point(soc, mohm):
    return DCIRPoint(soc_percent=soc, resistance_milliohm=mohm, timestamp=T0)


class TestEstimate:
    """Single-pulse resistance estimates"""

    def setup_method(self):
        self.calculator = DCIRCalculator(window_seconds=3.0)

    def test_ohms_law(self):
        samples = _pulse(11.5, 500.0, 11.3, 2500.0)

        point = self.calculator.estimate(samples, 3)

        assert point is not None
        # 0.2 V / 2.0 A
        assert point.resistance_milliohm == pytest.approx(100.0)
        assert point.soc_percent == pytest.approx(60.0)
        assert point.timestamp == samples[3].timestamp

    def test_small_current_change_rejected(self):
        samples = _pulse(11.5, 1000.0, 11.3, 1000.5)
        assert self.calculator.estimate(samples, 3) is None

    def test_negative_ratio_rejected(self):
        # More-negative discharge current with a voltage drop gives R < 0
        samples = _pulse(11.5, -500.0, 11.3, -2500.0)
        assert self.calculator.estimate(samples, 3) is None

    def test_out_of_range_resistance_rejected(self):
        # 11 V over 1 A = 11000 mΩ
        samples = _pulse(12.0, 0.0, 1.0, 1000.0)
        assert self.calculator.estimate(samples, 3) is None

    def test_too_few_samples(self):
        samples = _pulse(11.5, 500.0, 11.3, 2500.0)[:5]
        assert self.calculator.estimate(samples, 2) is None

    def test_index_bounds(self):
        samples = _pulse(11.5, 500.0, 11.3, 2500.0)
        assert self.calculator.estimate(samples, 0) is None
        assert self.calculator.estimate(samples, len(samples) - 1) is None

    def test_one_sided_window_rejected(self):
        samples = _pulse(11.5, 500.0, 11.3, 2500.0)
        # Only one sample after the transition falls in the window
        late = [s.model_copy(update={"timestamp": s.timestamp + timedelta(seconds=2)}) for s in samples[5:]]
        assert self.calculator.estimate(samples[:5] + late, 3) is None

    def test_quality_large_swing(self):
        point = self.calculator.estimate(_pulse(11.5, 500.0, 11.3, 2500.0), 3)
        assert point.quality == 100.0

    def test_quality_small_swing_and_drift(self):
        steady = self.calculator.estimate(_pulse(11.5, 500.0, 11.49, 600.0), 3)
        drifting = self.calculator.estimate(
            _pulse(11.5, 500.0, 11.49, 600.0, soc_before=60, soc_after=57), 3
        )

        # 100 mA x 10 mV: (1)(1)10
        assert steady.quality == pytest.approx(10.0)
        assert drifting.quality < steady.quality


class TestAnalyze:
    """Aggregate DCIR analysis"""

    def setup_method(self):
        self.calculator = DCIRCalculator()

    def test_interpolation_and_trend(self):
        points = [_point(80, 100), _point(20, 200), _point(60, 120), _point(40, 150)]

        analysis = self.calculator.analyze(points)

        assert [p.soc_percent for p in analysis.dcir_points] == [80, 60, 40, 20]
        assert analysis.dcir_at_50 == pytest.approx(135.0)
        assert analysis.dcir_at_20 == pytest.approx(200.0)
        assert analysis.resistance_trend == pytest.approx(-1.65)
        assert analysis.degradation_score == 100.0

    def test_nearest_value_outside_range(self):
        analysis = self.calculator.analyze([_point(70, 110), _point(60, 130)])

        assert analysis.dcir_at_50 == pytest.approx(130.0)
        assert analysis.dcir_at_20 == pytest.approx(130.0)

    def test_single_point_has_no_trend(self):
        analysis = self.calculator.analyze([_point(30, 180)])

        assert analysis.resistance_trend == 0.0
        assert analysis.dcir_at_50 == 180

    def test_empty(self):
        analysis = self.calculator.analyze([])

        assert analysis.dcir_at_50 is None
        assert analysis.dcir_at_20 is None
        assert analysis.degradation_score == 100.0

    def test_degraded_battery_penalties(self):
        analysis = self.calculator.analyze([_point(50, 320), _point(20, 520)])

        # 40 (DCIR50) + 30 (DCIR20) + 20 (steep trend)
        assert analysis.degradation_score == pytest.approx(10.0)
