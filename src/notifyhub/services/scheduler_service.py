"""
Scheduler Service

Background asyncio tasks that run the periodic jobs:
- autopilot pass every AUTOPILOT_POLL_INTERVAL seconds
- read-receipt reconciliation every READ_RECEIPT_POLL_INTERVAL seconds
"""
import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional

logger = logging.getLogger("notifyhub.services.scheduler")

Job = Callable[[], Awaitable[object]]


class SchedulerService:
    """
    Background scheduler for periodic jobs.

    Each job gets its own polling loop. A run is awaited to completion
    before the next sleep; exceptions are logged and never stop the loop.
    """

    def __init__(
        self,
        autopilot_job: Job,
        read_receipt_job: Job,
        autopilot_interval: int = 300,
        read_receipt_interval: int = 600,
        enabled: bool = True,
    ):
        self._jobs: Dict[str, tuple] = {
            "autopilot": (autopilot_job, autopilot_interval),
            "read_receipts": (read_receipt_job, read_receipt_interval),
        }
        self.enabled = enabled
        self._tasks: List[asyncio.Task] = []
        self._running = False

    async def start(self):
        """Start the scheduler background tasks"""
        if not self.enabled:
            logger.info("Scheduler is disabled (SCHEDULER_ENABLED=false)")
            return

        if self._running:
            logger.warning("Scheduler is already running")
            return

        self._running = True
        for name, (job, interval) in self._jobs.items():
            self._tasks.append(asyncio.create_task(self._poll_loop(name, job, interval)))
            logger.info(f"Scheduler job '{name}' started (poll_interval={interval}s)")

    async def stop(self):
        """Stop the scheduler background tasks"""
        self._running = False
        for task in self._tasks:
            if not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._tasks = []
        logger.info("Scheduler stopped")

    async def run_once(self, name: str) -> Optional[object]:
        """Run one job immediately; errors are logged and swallowed"""
        job, _interval = self._jobs[name]
        try:
            return await job()
        except Exception as e:
            logger.error(f"Scheduler job '{name}' error: {e}")
            return None

    async def _poll_loop(self, name: str, job: Job, interval: int):
        """Main polling loop of one job"""
        while self._running:
            await self.run_once(name)

            try:
                await asyncio.sleep(interval)
            except asyncio.CancelledError:
                break

    @property
    def is_running(self) -> bool:
        return self._running
