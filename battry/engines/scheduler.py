"""
Cancellable Timers
Scheduled delays that re-enter the test state machines
"""
import asyncio
import heapq
import itertools
import logging
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)


class CancelToken:
    """Handle for one scheduled callback"""

    def __init__(self, on_cancel: Optional[Callable[[], None]] = None):
        self._on_cancel = on_cancel
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        if self.cancelled or self.fired:
            return
        self.cancelled = True
        if self._on_cancel is not None:
            self._on_cancel()

    @property
    def pending(self) -> bool:
        return not (self.cancelled or self.fired)


class Scheduler(ABC):
    """
    Schedules callbacks after a delay.

    Engines never block: pulse, rest and baseline waits are scheduled
    here and every returned token must be cancellable.
    """

    @abstractmethod
    def now(self) -> float:
        """Current scheduler time in seconds"""
        pass

    @abstractmethod
    def call_later(self, delay: float, callback: Callable[[], None]) -> CancelToken:
        """Run callback after delay seconds unless cancelled"""
        pass


class ManualScheduler(Scheduler):
    """
    Virtual-clock scheduler.

    Time only moves when advance() or advance_to() is called, which
    makes timer-driven flows deterministic in tests and offline replay.
    """

    def __init__(self, start: float = 0.0):
        self._now = start
        self._queue: List[Tuple[float, int, CancelToken, Callable[[], None]]] = []
        self._counter = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> CancelToken:
        token = CancelToken()
        heapq.heappush(self._queue, (self._now + max(0.0, delay), next(self._counter), token, callback))
        return token

    def advance(self, seconds: float) -> int:
        """Move the clock forward, returns the number of callbacks fired"""
        return self.advance_to(self._now + seconds)

    def advance_to(self, when: float) -> int:
        fired = 0
        while self._queue and self._queue[0][0] <= when:
            due, _, token, callback = heapq.heappop(self._queue)
            if not token.pending:
                continue
            self._now = max(self._now, due)
            token.fired = True
            callback()
            fired += 1
        self._now = max(self._now, when)
        return fired

    @property
    def pending_count(self) -> int:
        return sum(1 for _, _, token, _ in self._queue if token.pending)


class AsyncioScheduler(Scheduler):
    """Scheduler backed by the running asyncio event loop"""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        # Without a pinned loop, timers go to whichever loop is running
        return self._loop or asyncio.get_running_loop()

    def now(self) -> float:
        return self._get_loop().time()

    def call_later(self, delay: float, callback: Callable[[], None]) -> CancelToken:
        def run():
            token.fired = True
            try:
                callback()
            except Exception:
                logger.exception("Scheduled callback failed")

        handle = self._get_loop().call_later(max(0.0, delay), run)
        token = CancelToken(on_cancel=handle.cancel)
        return token
