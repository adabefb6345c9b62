"""
Server-edit download & apply pipeline.

When the server accepts an edit to an attendance record it drops its own
summary for that employee-day.  After applying edits locally we mirror that:
delete the local summary, re-validate the day, rebuild the summary and push it
back.  Between the delete and the push neither side has a summary for the day.
"""

from __future__ import annotations

import logging
from datetime import date, datetime

from attendsync.core.events import EventBus, PipelineReporter
from attendsync.core.exceptions import NetworkError
from attendsync.core.lock import ProcessingLock
from attendsync.db.store import LocalStore
from attendsync.schemas.attendance import DailySummary
from attendsync.schemas.sync import ServerEditResult
from attendsync.services.cursor import SyncCursor
from attendsync.services.remote import RemoteClient
from attendsync.services.summary import SummaryBuilder
from attendsync.services.validation import ValidationEngine

logger = logging.getLogger(__name__)

PIPELINE = "server-edits"


async def refresh_days(
    keys: list[tuple[int, date]],
    store: LocalStore,
    remote: RemoteClient,
    validator: ValidationEngine,
    summaries: SummaryBuilder,
    apply_8_hour_rule: bool = True,
) -> tuple[int, int, int]:
    """
    Re-validate the given days, rebuild their summaries and push them.

    Returns (corrected, rebuilt, uploaded).  A failed push raises NetworkError
    after the local rebuild has landed; the summaries stay pending.
    """
    if not keys:
        return 0, 0, 0

    validation = await validator.validate_days(keys, apply_8_hour_rule=apply_8_hour_rule)
    rebuilt: list[DailySummary] = await summaries.rebuild_days(keys)
    if not rebuilt:
        return validation.corrected_records, 0, 0

    push = await remote.push_summary(rebuilt)
    if not push.success:
        raise NetworkError(push.message or "summary batch rejected")
    uploaded = await store.mark_synced("summary", [(s.employee_id, s.date) for s in rebuilt])
    return validation.corrected_records, len(rebuilt), uploaded


class ServerEditPipeline:
    def __init__(
        self,
        store: LocalStore,
        remote: RemoteClient,
        validator: ValidationEngine,
        summaries: SummaryBuilder,
        cursor: SyncCursor,
        lock: ProcessingLock | None = None,
        bus: EventBus | None = None,
        apply_8_hour_rule: bool = True,
    ) -> None:
        self.store = store
        self.remote = remote
        self.validator = validator
        self.summaries = summaries
        self.cursor = cursor
        self.lock = lock
        self.bus = bus
        self.apply_8_hour_rule = apply_8_hour_rule

    def _checkpoint(self) -> None:
        if self.lock is not None:
            self.lock.raise_if_cancelled()

    async def run(self, silent: bool = False) -> ServerEditResult:
        reporter = PipelineReporter(self.bus, PIPELINE, silent=silent)
        result = ServerEditResult()
        pulled_at = datetime.now()
        phase = "download"

        try:
            reporter.started("download")
            edits = await self.remote.pull_server_edits(self.cursor.last_pull)
            reporter.completed("download", edited=len(edits.updated), deleted=len(edits.deleted_ids))
            self._checkpoint()

            phase = "apply"
            reporter.started("apply")
            touched: list[tuple[int, date]] = []
            applied_ids: list[int] = []
            deleted_ids: list[int] = []

            for record in edits.updated:
                incoming = record.model_copy(update={"sync_status": "synced", "source": "server"})
                try:
                    changed, previous = await self.store.upsert_record(incoming)
                except Exception as exc:
                    logger.exception("Failed to apply server edit for record #%d", record.id)
                    result.errors.append(f"update #{record.id}: {exc}")
                    continue
                applied_ids.append(record.id)
                if not changed:
                    continue
                result.applied += 1
                touched.append(incoming.day_key)
                if previous is not None and previous.day_key != incoming.day_key:
                    touched.append(previous.day_key)

            for record_id in edits.deleted_ids:
                try:
                    previous = await self.store.delete_record(record_id)
                except Exception as exc:
                    logger.exception("Failed to apply server deletion for record #%d", record_id)
                    result.errors.append(f"delete #{record_id}: {exc}")
                    continue
                deleted_ids.append(record_id)
                if previous is None:
                    continue
                result.deleted += 1
                touched.append(previous.day_key)

            touched = list(dict.fromkeys(touched))
            reporter.completed("apply", applied=result.applied, deleted=result.deleted)
            self._checkpoint()

            phase = "summaries"
            if touched:
                reporter.started("summaries", days=len(touched))
                for employee_id, day in touched:
                    await self.store.delete_summary(employee_id, day)
                (
                    result.corrected,
                    result.summaries_regenerated,
                    result.summaries_uploaded,
                ) = await refresh_days(
                    touched,
                    self.store,
                    self.remote,
                    self.validator,
                    self.summaries,
                    self.apply_8_hour_rule,
                )
                reporter.completed(
                    "summaries",
                    regenerated=result.summaries_regenerated,
                    uploaded=result.summaries_uploaded,
                )

            if applied_ids or deleted_ids:
                try:
                    await self.remote.acknowledge_server_edits(applied_ids, deleted_ids)
                except NetworkError as exc:
                    logger.warning("Could not acknowledge server edits: %s", exc)

            self.cursor.last_pull = pulled_at
        except NetworkError as exc:
            logger.warning("Server-edit sync stopped during '%s': %s", phase, exc)
            reporter.error(phase, str(exc))
            result.success = False
            result.error = str(exc)
        finally:
            await self.cursor.rebuild(self.store)

        for message in result.errors:
            reporter.error("apply", message)
        if result.applied or result.deleted:
            logger.info(
                "Applied %d server edits and %d deletions; %d summaries regenerated, %d uploaded",
                result.applied, result.deleted,
                result.summaries_regenerated, result.summaries_uploaded,
            )
        return result
