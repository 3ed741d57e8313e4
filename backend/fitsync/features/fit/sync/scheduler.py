"""
Periodic sync trigger.

Fires a callback at a fixed interval until stopped. It does not run
syncs itself; the orchestrator's debounced entry point decides.
"""

import asyncio
import logging
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class SyncScheduler:
    """
    Fixed-interval trigger.

    Usage:
        scheduler = SyncScheduler(1800, lambda: orchestrator.request_sync("timer"))
        scheduler.start()
        # ... later ...
        await scheduler.stop()
    """

    def __init__(self, interval_seconds: float, trigger: Callable[[], object]):
        self.interval_seconds = interval_seconds
        self._trigger = trigger
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the timer loop. No-op if already running."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run_loop())
        logger.debug(f"Sync scheduler started ({self.interval_seconds}s)")

    def cancel(self) -> None:
        """Cancel the timer without waiting for it."""
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            logger.debug("Sync scheduler cancelled")

    async def stop(self) -> None:
        """Cancel the timer and wait for it to finish."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug("Sync scheduler stopped")

    async def _run_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                self._trigger()
            except Exception as e:
                logger.error(f"Sync trigger error: {e}")
