"""
Test Session Ownership
Guarantees that only one diagnostic test runs at a time
"""
import logging
from typing import Optional

logger = logging.getLogger(__name__)


class SessionBusyError(RuntimeError):
    """Raised when a test cannot start because another one holds the session"""

    def __init__(self, holder: str):
        self.holder = holder
        super().__init__(f"Another test session is active: {holder}")


class SessionLock:
    """
    Single-owner lock shared by the calibration and quick-test engines.

    The load generator and constant-power controller belong to whichever
    engine holds it. Ownership only changes through release then acquire.
    """

    def __init__(self):
        self._holder: Optional[str] = None

    @property
    def holder(self) -> Optional[str]:
        return self._holder

    @property
    def is_held(self) -> bool:
        return self._holder is not None

    def acquire(self, owner: str) -> bool:
        """Take the session, re-entrant for the current holder"""
        if self._holder is not None and self._holder != owner:
            return False
        if self._holder is None:
            logger.info(f"Test session acquired by {owner}")
        self._holder = owner
        return True

    def release(self, owner: str) -> None:
        """Release the session if owner holds it"""
        if self._holder == owner:
            self._holder = None
            logger.info(f"Test session released by {owner}")

    def held_by_other(self, owner: str) -> bool:
        return self._holder is not None and self._holder != owner
