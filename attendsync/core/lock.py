"""
Single-flight processing lock.

Only one of the mutating pipelines (upload, server-edit apply, action executor,
duplicate cleanup) may run at a time.  A second request is rejected instead of
queued; callers retry manually or at the next scheduled checkpoint.

Everything runs on one asyncio loop, so the check-and-set in ``hold`` happens
without a suspension point and needs no asyncio.Lock.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator

from attendsync.core.exceptions import LockRejectedError, PipelineCancelledError

logger = logging.getLogger(__name__)


class ProcessingLock:
    def __init__(self) -> None:
        self._holder: str | None = None
        self._since: datetime | None = None
        self._cancel_requested = False

    @property
    def active(self) -> bool:
        return self._holder is not None

    @property
    def holder(self) -> str | None:
        return self._holder

    @property
    def since(self) -> datetime | None:
        return self._since

    @asynccontextmanager
    async def hold(self, name: str) -> AsyncIterator["ProcessingLock"]:
        if self._holder is not None:
            logger.warning(
                "Processing lock active: '%s' rejected while '%s' runs", name, self._holder
            )
            raise LockRejectedError(name, self._holder)

        self._holder = name
        self._since = datetime.now()
        self._cancel_requested = False
        logger.debug("Processing lock acquired by '%s'", name)
        try:
            yield self
        finally:
            logger.debug("Processing lock released by '%s'", name)
            self._holder = None
            self._since = None
            self._cancel_requested = False

    def request_cancel(self) -> bool:
        """Ask the running pipeline to stop at its next step boundary."""
        if self._holder is None:
            return False
        logger.info("Cancellation requested for '%s'", self._holder)
        self._cancel_requested = True
        return True

    def raise_if_cancelled(self) -> None:
        if self._cancel_requested:
            raise PipelineCancelledError(f"'{self._holder}' cancelled")
