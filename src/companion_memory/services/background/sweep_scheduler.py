import asyncio
import logging
from typing import Optional

from ...core.exceptions import StorageError
from ...models.schemas.memory import SweepResult
from ..memory.manager import MemoryManager

logger = logging.getLogger("sweep_scheduler")


class SweepScheduler:
    """Background service running the memory eviction sweep on an interval"""

    def __init__(self, manager: MemoryManager, interval_seconds: Optional[float] = None):
        self.manager = manager
        self.interval_seconds = interval_seconds or manager.settings.SWEEP_INTERVAL_SECONDS
        self.is_running = False
        self.runs = 0
        self.last_result: Optional[SweepResult] = None
        self._task: Optional[asyncio.Task] = None

    def start(self) -> asyncio.Task:
        """Start the sweep loop as a background task"""
        if self._task is None or self._task.done():
            self.is_running = True
            self._task = asyncio.create_task(self._run())
            logger.info("Memory sweep scheduler started (every %ss)", self.interval_seconds)
        return self._task

    async def stop(self):
        """Stop the loop and wait for the current pass to finish"""
        self.is_running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Memory sweep scheduler stopped")

    async def run_once(self) -> Optional[SweepResult]:
        """Run a single sweep pass; storage failures are logged and retried next interval"""
        try:
            result = await self.manager.cleanup()
        except StorageError as e:
            logger.error("Memory sweep failed: %s", e.message)
            return None

        self.runs += 1
        self.last_result = result
        logger.info(
            "Memory sweep finished: %s soft-deleted, %s hard-deleted",
            result.soft_deleted,
            result.hard_deleted,
        )
        return result

    async def _run(self):
        while self.is_running:
            await self.run_once()
            await asyncio.sleep(self.interval_seconds)
