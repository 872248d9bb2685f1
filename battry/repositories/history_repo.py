"""
History Repositories
File-backed storage for quick test history and calibration sessions
"""
import logging
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from ..adapters.base import AlertSink, LoggingAlertSink
from ..models import SCHEMA_VERSION, CalibrationSessionRecord, QuickHealthHistory, QuickHealthResult

logger = logging.getLogger(__name__)


class SchemaVersionError(ValueError):
    """Raised when a stored document was written by a newer schema"""
    pass


def _check_version(raw: str, model):
    document = model.model_validate_json(raw)
    if document.schema_version != SCHEMA_VERSION:
        raise SchemaVersionError(f"Unsupported schema version {document.schema_version}")
    return document


class QuickHealthHistoryRepository:
    """Append-only quick test history, newest first and capped"""

    def __init__(self, path: Path, limit: int = 50, alert_sink: Optional[AlertSink] = None):
        self.path = Path(path)
        self.limit = limit
        self.alert_sink = alert_sink or LoggingAlertSink()

    def load(self) -> List[QuickHealthResult]:
        """All stored results, empty when missing or unreadable"""
        try:
            return self._read()
        except (OSError, ValueError, ValidationError) as e:
            logger.error(f"Failed to load quick test history from {self.path}: {e}")
            self.alert_sink.persistence_failed("load quick test history", e)
            return []

    def _read(self) -> List[QuickHealthResult]:
        if not self.path.exists():
            return []
        history = _check_version(self.path.read_text(encoding="utf-8"), QuickHealthHistory)
        return list(history.results)

    def append(self, result: QuickHealthResult) -> bool:
        """
        Add a result and rewrite the history file.

        An existing file that cannot be read is left untouched.

        Returns:
            True if the history was written
        """
        try:
            results = self._read() + [result]
        except (OSError, ValueError, ValidationError) as e:
            logger.error(f"Not overwriting unreadable quick test history at {self.path}: {e}")
            self.alert_sink.persistence_failed("save quick test history", e)
            return False

        results.sort(key=lambda r: r.started_at, reverse=True)
        history = QuickHealthHistory(results=results[:self.limit])

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(history.model_dump_json(indent=2), encoding="utf-8")
        except OSError as e:
            logger.error(f"Failed to save quick test history to {self.path}: {e}")
            self.alert_sink.persistence_failed("save quick test history", e)
            return False

        logger.info(f"Quick test result saved ({len(history.results)} in history)")
        return True

    def latest(self) -> Optional[QuickHealthResult]:
        results = self.load()
        return results[0] if results else None


class CalibrationSessionRepository:
    """Single-document store for the calibration engine snapshot"""

    def __init__(self, path: Path, alert_sink: Optional[AlertSink] = None):
        self.path = Path(path)
        self.alert_sink = alert_sink or LoggingAlertSink()

    def load(self) -> Optional[CalibrationSessionRecord]:
        if not self.path.exists():
            return None
        try:
            return _check_version(self.path.read_text(encoding="utf-8"), CalibrationSessionRecord)
        except (OSError, ValueError, ValidationError) as e:
            logger.error(f"Failed to load calibration session from {self.path}: {e}")
            self.alert_sink.persistence_failed("load calibration session", e)
            return None

    def save(self, record: CalibrationSessionRecord) -> bool:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(record.model_dump_json(), encoding="utf-8")
        except OSError as e:
            logger.error(f"Failed to save calibration session to {self.path}: {e}")
            self.alert_sink.persistence_failed("save calibration session", e)
            return False
        return True
