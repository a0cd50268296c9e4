import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class SchedulerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


class AttributionScheduler:
    """
    Runs an async job immediately and then once per tick of a fixed-period ticker.

    Ticks go through a single-slot buffer. When a job overruns the period, one
    tick stays buffered and any further tick is dropped, so an overrunning job
    is followed by at most one catch-up run and cadence drifts instead of
    piling up.
    """

    def __init__(self, job: Callable[[], Awaitable], interval_seconds: float, name: Optional[str] = None):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.job = job
        self.interval_seconds = interval_seconds
        self.name = name or getattr(job, "__name__", "job")
        self.state = SchedulerState.IDLE
        self.runs = 0
        self.dropped_ticks = 0
        self._ticks: asyncio.Queue = asyncio.Queue(maxsize=1)
        self._ticker_task: Optional[asyncio.Task] = None
        self._runner_task: Optional[asyncio.Task] = None

    @property
    def pending_ticks(self) -> int:
        return self._ticks.qsize()

    def start(self):
        """Starts the ticker and runs the first job right away."""
        if self.state is SchedulerState.STOPPED:
            raise RuntimeError("Cannot restart a stopped scheduler.")
        if self._runner_task is not None:
            return
        self._ticker_task = asyncio.create_task(self._tick_loop())
        self._runner_task = asyncio.create_task(self._run_loop())
        logger.info(f"Scheduled job '{self.name}' to run every {self.interval_seconds:g} second(s).")

    async def _tick_loop(self):
        loop = asyncio.get_running_loop()
        next_tick = loop.time() + self.interval_seconds
        while True:
            await asyncio.sleep(max(0.0, next_tick - loop.time()))
            self._offer_tick()
            next_tick += self.interval_seconds

    def _offer_tick(self):
        try:
            self._ticks.put_nowait(None)
        except asyncio.QueueFull:
            self.dropped_ticks += 1
            logger.warning(
                f"Job '{self.name}' overran its period; dropping tick ({self.dropped_ticks} dropped so far)."
            )

    async def _run_loop(self):
        try:
            await self._run_once()
            while True:
                await self._ticks.get()
                await self._run_once()
        except asyncio.CancelledError:
            logger.info(f"Job '{self.name}' cancelled.")
            raise

    async def _run_once(self):
        self.state = SchedulerState.RUNNING
        try:
            await self.job()
        except Exception as e:
            logger.error(f"Error in scheduled job '{self.name}': {e}", exc_info=True)
        finally:
            self.runs += 1
            if self.state is SchedulerState.RUNNING:
                self.state = SchedulerState.IDLE

    async def wait(self):
        """Waits until the scheduler is stopped."""
        if self._runner_task is not None:
            await asyncio.gather(self._runner_task, return_exceptions=True)

    async def stop(self):
        """Cancels the ticker and any job in flight. Safe to call more than once."""
        if self.state is SchedulerState.STOPPED:
            return
        logger.info("Stopping scheduler...")
        self.state = SchedulerState.STOPPED
        tasks = [task for task in (self._ticker_task, self._runner_task) if task is not None]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
