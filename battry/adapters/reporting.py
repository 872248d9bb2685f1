"""
Calibration Session Reporter
Session analytics written as a JSON summary document
"""
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence

import numpy as np
from sklearn.linear_model import LinearRegression

from ..analysis.ocv import OCVAnalyzer
from ..analysis.stability import micro_drop_stats
from ..models import CalibrationResult, Reading, VersionedDocument
from .base import CalibrationReporter

logger = logging.getLogger(__name__)


class CalibrationSummary(VersionedDocument):
    """Analytics for one finished calibration"""
    result: CalibrationResult
    sample_count: int
    trend_discharge_per_hour: float
    micro_drop_count: int
    average_temperature: Optional[float] = None
    knee_soc: Optional[float] = None
    generated_at: datetime


class SessionSummaryReporter(CalibrationReporter):
    """
    Writes one JSON summary per finished calibration.

    The regression rate is computed over non-charging readings with a
    3-point median filter on SOC so single outliers do not tilt it.
    """

    MIN_TREND_POINTS = 4

    def __init__(self, report_dir: Path):
        self.report_dir = Path(report_dir)

    def report(self, history: Sequence[Reading], result: CalibrationResult) -> Optional[str]:
        summary = self.summarize(history, result)

        self.report_dir.mkdir(parents=True, exist_ok=True)
        path = self.report_dir / f"calibration_{result.started_at.strftime('%Y-%m-%d_%H-%M-%S')}.json"
        path.write_text(summary.model_dump_json(indent=2), encoding="utf-8")

        logger.info(f"Calibration report written to {path}")
        return str(path)

    def summarize(self, history: Sequence[Reading], result: CalibrationResult) -> CalibrationSummary:
        temperatures = [r.temperature for r in history]
        return CalibrationSummary(
            result=result,
            sample_count=len(history),
            trend_discharge_per_hour=self.trend_discharge_per_hour(history),
            micro_drop_count=micro_drop_stats(history).total_count,
            average_temperature=float(np.mean(temperatures)) if temperatures else None,
            knee_soc=OCVAnalyzer().analyze(history).knee_soc,
            generated_at=datetime.now(result.finished_at.tzinfo)
        )

    @classmethod
    def trend_discharge_per_hour(cls, history: Sequence[Reading]) -> float:
        """Discharge rate (%/h) from a least-squares fit of SOC over time"""
        points = [r for r in history if not r.is_charging]
        if len(points) < cls.MIN_TREND_POINTS:
            return 0.0

        t0 = points[0].timestamp
        X = np.array([(r.timestamp - t0).total_seconds() / 3600.0 for r in points]).reshape(-1, 1)
        y = cls._median_filter3(np.array([r.percentage for r in points], dtype=float))

        if np.ptp(X) < 1e-10:
            return 0.0

        model = LinearRegression()
        model.fit(X, y)

        # Discharge is a negative slope
        return max(0.0, -float(model.coef_[0]))

    @staticmethod
    def _median_filter3(values: np.ndarray) -> np.ndarray:
        if len(values) < 3:
            return values
        out = values.copy()
        windows = np.stack([values[:-2], values[1:-1], values[2:]])
        out[1:-1] = np.median(windows, axis=0)
        return out
