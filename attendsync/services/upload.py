"""
Upload pipeline: push pending local attendance, then pending summaries.

Nothing is flagged synced until the remote acknowledged it.  A rejected batch
or a transport failure ends the run with ``success=False``; the next
checkpoint or a manual trigger retries it.
"""

from __future__ import annotations

import asyncio
import logging

from attendsync.core.events import EventBus, PipelineReporter
from attendsync.core.exceptions import NetworkError
from attendsync.core.lock import ProcessingLock
from attendsync.db.store import LocalStore
from attendsync.schemas.sync import UploadResult
from attendsync.services.cursor import SyncCursor
from attendsync.services.remote import RemoteClient
from attendsync.services.summary import SummaryBuilder
from attendsync.services.validation import ValidationEngine

logger = logging.getLogger(__name__)

PIPELINE = "upload"


class UploadPipeline:
    def __init__(
        self,
        store: LocalStore,
        remote: RemoteClient,
        validator: ValidationEngine,
        summaries: SummaryBuilder,
        cursor: SyncCursor,
        lock: ProcessingLock | None = None,
        bus: EventBus | None = None,
        settle_delay: float = 2.0,
        apply_8_hour_rule: bool = True,
    ) -> None:
        self.store = store
        self.remote = remote
        self.validator = validator
        self.summaries = summaries
        self.cursor = cursor
        self.lock = lock
        self.bus = bus
        self.settle_delay = settle_delay
        self.apply_8_hour_rule = apply_8_hour_rule

    def _checkpoint(self) -> None:
        if self.lock is not None:
            self.lock.raise_if_cancelled()

    async def run(self, silent: bool = False, show_progress: bool = False) -> UploadResult:
        reporter = PipelineReporter(self.bus, PIPELINE, silent=silent, show_progress=show_progress)
        result = UploadResult()
        phase = "prepare"

        try:
            await self._prepare(result, reporter)
            self._checkpoint()

            phase = "attendance"
            await self._push_attendance(result, reporter)
            self._checkpoint()

            phase = "summary"
            # Give the server time to settle the attendance batch first
            if self.settle_delay > 0:
                await asyncio.sleep(self.settle_delay)
            await self._push_summaries(result, reporter)
        except NetworkError as exc:
            logger.warning("Upload stopped during '%s': %s", phase, exc)
            reporter.error(phase, str(exc))
            result.success = False
            result.error = str(exc)
        finally:
            await self.cursor.rebuild(self.store)

        if result.success:
            logger.info(
                "Upload finished: %d attendance, %d summaries synced",
                result.attendance_synced, result.summary_synced,
            )
        return result

    async def _prepare(self, result: UploadResult, reporter: PipelineReporter) -> None:
        """Best-effort: correct pending days and refresh their summaries."""
        reporter.started("prepare")
        try:
            validation = await self.validator.validate_unsynced(
                apply_8_hour_rule=self.apply_8_hour_rule
            )
            result.corrected_records = validation.corrected_records
            keys = await self.store.pending_employee_days()
            await self.summaries.rebuild_days(keys)
        except Exception:
            logger.exception("Pre-upload validation failed; uploading records as they are")
            return
        reporter.completed("prepare", corrected=result.corrected_records)

    async def _push_attendance(self, result: UploadResult, reporter: PipelineReporter) -> None:
        records = await self.store.list_unsynced("attendance")
        if not records:
            logger.debug("No pending attendance records")
            return

        reporter.started("attendance", pending=len(records))
        push = await self.remote.push_attendance(records)
        if not push.success:
            raise NetworkError(push.message or "attendance batch rejected")

        sent = {r.id for r in records}
        if push.accepted_ids is None:
            acknowledged = sent
        else:
            acknowledged = sent & set(push.accepted_ids)
            if len(acknowledged) < len(sent):
                logger.warning(
                    "Server accepted %d of %d attendance records; the rest stay pending",
                    len(acknowledged), len(sent),
                )

        result.attendance_synced = await self.store.mark_synced("attendance", acknowledged)
        if push.id_map:
            await self.store.remap_ids(push.id_map)
        self.cursor.mark_pushed("attendance")
        reporter.completed("attendance", synced=result.attendance_synced)

    async def _push_summaries(self, result: UploadResult, reporter: PipelineReporter) -> None:
        summaries = await self.store.list_unsynced("summary")
        if not summaries:
            logger.debug("No pending summaries")
            return

        reporter.started("summary", pending=len(summaries))
        push = await self.remote.push_summary(summaries)
        if not push.success:
            raise NetworkError(push.message or "summary batch rejected")

        keys = [(s.employee_id, s.date) for s in summaries]
        result.summary_synced = await self.store.mark_synced("summary", keys)
        self.cursor.mark_pushed("summary")
        reporter.completed("summary", synced=result.summary_synced)
