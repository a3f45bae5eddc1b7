"""
Heartbeat ticker driving the simulation loop
"""
import asyncio
import logging
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class Ticker:
    """Calls ``callback`` every ``interval`` seconds on the running event loop"""

    def __init__(self, interval: float, callback: Callable[[], None], name: str = "ticker"):
        if interval <= 0:
            raise ValueError(f"Tick interval must be positive: {interval}")
        self.interval = interval
        self.callback = callback
        self.name = name
        self.ticks = 0

        self.task: Optional[asyncio.Task] = None
        self.stop_event = asyncio.Event()

    @property
    def running(self) -> bool:
        return self.task is not None and not self.task.done()

    async def start(self):
        """Start the heartbeat; no-op when already running"""
        if self.running:
            logger.warning(f"Ticker {self.name} is already running")
            return

        self.stop_event.clear()
        self.task = asyncio.create_task(self._run())
        logger.debug(f"Ticker {self.name} started ({self.interval}s)")

    async def stop(self):
        """Stop the heartbeat and wait for the loop to exit"""
        if not self.running:
            return

        self.stop_event.set()
        self.task.cancel()
        try:
            await self.task
        except asyncio.CancelledError:
            pass
        logger.debug(f"Ticker {self.name} stopped after {self.ticks} ticks")

    async def _run(self):
        while not self.stop_event.is_set():
            try:
                await asyncio.wait_for(self.stop_event.wait(), timeout=self.interval)
                break
            except asyncio.TimeoutError:
                pass

            self.ticks += 1
            try:
                self.callback()
            except Exception as e:
                logger.error(f"Error in ticker {self.name} tick {self.ticks}: {e}")
