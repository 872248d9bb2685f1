"""
Collaborator Interfaces
Capabilities the diagnostic engines drive but do not own
"""
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import List, Optional, Sequence

from ..models import CalibrationResult, Reading

logger = logging.getLogger(__name__)


class LoadProfile(str, Enum):
    """Synthetic load levels used for DCIR pulses"""
    LIGHT = "light"
    MEDIUM = "medium"
    HEAVY = "heavy"


class LoadGenerator(ABC):
    """
    Abstract synthetic load (CPU/GPU burner).

    Implement this interface to plug in a real load source. The
    engines only switch profiles on and off and, during the
    constant-power window, adjust intensity.
    """

    @abstractmethod
    def apply_load(self, profile: Optional[LoadProfile]) -> None:
        """
        Switch to a load profile.

        Args:
            profile: Profile to run, None to switch the load off
        """
        pass

    def set_intensity(self, intensity: float) -> None:
        """Fine-grained intensity 0-1 within the current profile"""
        pass


class ConstantPowerControl(ABC):
    """Abstract constant-power (CP) discharge controller"""

    @abstractmethod
    def start(self, target_watts: float) -> None:
        """Begin holding the battery draw near target_watts"""
        pass

    @abstractmethod
    def stop(self) -> None:
        """Stop regulating and release the load"""
        pass

    @abstractmethod
    def current_power(self) -> float:
        """Most recent measured power draw (W), for status display"""
        pass

    @property
    def control_quality(self) -> float:
        """How well the target was held, 0-100"""
        return 100.0


class CalibrationReporter(ABC):
    """Analytics and report generation for a finished calibration"""

    @abstractmethod
    def report(self, history: Sequence[Reading], result: CalibrationResult) -> Optional[str]:
        """
        Analyse the session and write a report.

        Returns:
            Path of the written report, None if nothing was written
        """
        pass


class ReadingHistory(ABC):
    """Long-lived reading store that outlives a single engine buffer"""

    @abstractmethod
    def between(self, start: datetime, end: datetime) -> List[Reading]:
        """Readings with start <= timestamp <= end"""
        pass


class AlertSink(ABC):
    """Surfaces background failures to the user"""

    @abstractmethod
    def persistence_failed(self, operation: str, error: Exception) -> None:
        pass


class NullLoadGenerator(LoadGenerator):
    """Stand-in when no load source is attached, logs requests only"""

    def __init__(self):
        self.profile: Optional[LoadProfile] = None

    def apply_load(self, profile: Optional[LoadProfile]) -> None:
        self.profile = profile
        logger.info(f"Load profile requested: {profile.value if profile else 'off'}")


class LoggingAlertSink(AlertSink):
    """Alert sink that writes to the application log"""

    def persistence_failed(self, operation: str, error: Exception) -> None:
        logger.error(f"Persistence failed during {operation}: {error}")
