"""
Telemetry Channel
Bounded single-consumer queue between the telemetry source and the engines
"""
import asyncio
import logging
from typing import Callable, List, Optional

from ..models import Reading

logger = logging.getLogger(__name__)

ReadingConsumer = Callable[[Reading], None]


class ChannelFullError(RuntimeError):
    """Raised when a reading is published to a full channel"""
    pass


class TelemetryChannel:
    """Bounded FIFO of readings. Publishing never blocks the source."""

    def __init__(self, maxsize: int = 256):
        self.maxsize = maxsize
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.latest: Optional[Reading] = None

    def publish(self, reading: Reading) -> None:
        """
        Enqueue a reading.

        Raises:
            ChannelFullError: If the consumer has fallen maxsize readings behind
        """
        try:
            self._queue.put_nowait(reading)
        except asyncio.QueueFull:
            raise ChannelFullError(f"Telemetry channel full ({self.maxsize} readings)")
        self.latest = reading

    async def get(self) -> Reading:
        return await self._queue.get()

    def get_nowait(self) -> Optional[Reading]:
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    def task_done(self) -> None:
        self._queue.task_done()

    async def join(self) -> None:
        await self._queue.join()

    @property
    def size(self) -> int:
        return self._queue.qsize()


class TelemetryPump:
    """
    Drains the channel and hands each reading to every consumer in order.

    A failing consumer is logged and skipped so one engine cannot stall
    the stream for the other.
    """

    def __init__(self, channel: TelemetryChannel, consumers: Optional[List[ReadingConsumer]] = None):
        self.channel = channel
        self.consumers: List[ReadingConsumer] = list(consumers or [])
        self._task: Optional[asyncio.Task] = None

    def dispatch(self, reading: Reading) -> None:
        for consumer in self.consumers:
            try:
                consumer(reading)
            except Exception:
                logger.exception("Telemetry consumer failed")

    def drain(self) -> int:
        """Dispatch everything queued right now, returns the count"""
        count = 0
        while True:
            reading = self.channel.get_nowait()
            if reading is None:
                return count
            self.dispatch(reading)
            self.channel.task_done()
            count += 1

    async def run(self) -> None:
        while True:
            reading = await self.channel.get()
            try:
                self.dispatch(reading)
            finally:
                self.channel.task_done()

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self.run())
            logger.info("Telemetry pump started")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Telemetry pump stopped")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()
