"""
Checkpoint scheduler.

Fires the upload trigger once per configured wall-clock checkpoint per day.
A failed run is not retried; the next checkpoint (or a manual trigger) is the
retry path.  The clock is injected so tests can drive ticks directly.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import datetime, time
from typing import Any, Awaitable, Callable

from attendsync.services.cursor import SyncCursor

logger = logging.getLogger(__name__)

Trigger = Callable[[], Awaitable[Any]]


class SyncScheduler:
    def __init__(
        self,
        trigger: Trigger,
        checkpoints: list[time],
        cursor: SyncCursor,
        clock: Callable[[], datetime] = datetime.now,
        tick_interval: float = 1.0,
    ) -> None:
        self.trigger = trigger
        self.checkpoints = sorted(checkpoints)
        self.cursor = cursor
        self.clock = clock
        self.tick_interval = tick_interval
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def due_checkpoint(self, now: datetime) -> time | None:
        for checkpoint in self.checkpoints:
            if (now.hour, now.minute) == (checkpoint.hour, checkpoint.minute) and now.second >= checkpoint.second:
                return checkpoint
        return None

    async def tick(self) -> bool:
        """Run one scheduling step.  Returns True when a checkpoint fired."""
        now = self.clock()
        checkpoint = self.due_checkpoint(now)
        if checkpoint is None:
            return False

        key = now.strftime("%Y-%m-%d %H:%M")
        if self.cursor.last_checkpoint_key == key:
            return False
        self.cursor.last_checkpoint_key = key

        logger.info("Checkpoint %s reached, starting scheduled sync", checkpoint.strftime("%H:%M"))
        try:
            await self.trigger()
        except Exception:
            logger.exception("Scheduled sync at %s failed", key)
        return True

    async def trigger_now(self) -> Any:
        logger.info("Manual sync requested")
        return await self.trigger()

    async def _run(self) -> None:
        while True:
            await self.tick()
            await asyncio.sleep(self.tick_interval)

    def start(self) -> None:
        if self.running:
            return
        logger.info(
            "Sync scheduler started with checkpoints %s",
            ", ".join(c.strftime("%H:%M") for c in self.checkpoints),
        )
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Sync scheduler stopped")
