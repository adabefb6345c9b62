"""
Entry-point facade for the UI/CLI layer.

Wires the store, remote client and pipelines together, takes the processing
lock for mutating runs, writes the sync history and turns every outcome into
an ``OperationResult``.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Any, Awaitable, Callable

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from attendsync.core.config import Settings, parse_checkpoints, settings
from attendsync.core.events import EventBus
from attendsync.core.exceptions import LockRejectedError, NetworkError, PipelineCancelledError
from attendsync.core.lock import ProcessingLock
from attendsync.db.session import AsyncSessionLocal
from attendsync.db.store import LocalStore
from attendsync.schemas.attendance import AttendanceRecord
from attendsync.schemas.sync import OperationResult, ReconciliationAction
from attendsync.services.actions import ActionExecutor
from attendsync.services.clock_events import ClockEventRecorder
from attendsync.services.comparison import ComparisonEngine
from attendsync.services.cursor import SyncCursor
from attendsync.services.duplicates import preview_duplicates, remove_duplicates
from attendsync.services.remote import HttpRemoteClient, RemoteClient
from attendsync.services.scheduler import SyncScheduler
from attendsync.services.server_edits import ServerEditPipeline
from attendsync.services.summary import SummaryBuilder
from attendsync.services.time_calculator import SessionSchedule
from attendsync.services.upload import UploadPipeline
from attendsync.services.validation import ValidationEngine

logger = logging.getLogger(__name__)


def _counts(model: BaseModel) -> dict[str, int]:
    return {
        k: v
        for k, v in model.model_dump().items()
        if isinstance(v, int) and not isinstance(v, bool)
    }


class SyncEngine:
    def __init__(
        self,
        store: LocalStore,
        remote: RemoteClient,
        cfg: Settings | None = None,
        bus: EventBus | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        cfg = cfg or settings
        self.cfg = cfg
        self.store = store
        self.remote = remote
        self.bus = bus or EventBus()
        self.lock = ProcessingLock()
        self.cursor = SyncCursor()
        self.schedule = SessionSchedule.from_settings(cfg)
        self.tolerance = timedelta(minutes=cfg.DUPLICATE_TOLERANCE_MINUTES)
        rule = cfg.APPLY_8_HOUR_RULE

        self.validator = ValidationEngine(store, self.schedule)
        self.summaries = SummaryBuilder(store, self.schedule)
        self.upload = UploadPipeline(
            store, remote, self.validator, self.summaries, self.cursor,
            lock=self.lock, bus=self.bus,
            settle_delay=cfg.SETTLE_DELAY_SEC, apply_8_hour_rule=rule,
        )
        self.server_edits = ServerEditPipeline(
            store, remote, self.validator, self.summaries, self.cursor,
            lock=self.lock, bus=self.bus, apply_8_hour_rule=rule,
        )
        self.comparison = ComparisonEngine(store, remote, self.tolerance)
        self.executor = ActionExecutor(
            store, remote, self.validator, self.summaries,
            lock=self.lock, bus=self.bus, apply_8_hour_rule=rule,
        )
        self.clock_events = ClockEventRecorder(store, self.summaries, self.schedule, rule)
        self.scheduler = SyncScheduler(
            lambda: self.sync_now(silent=True),
            parse_checkpoints(cfg.SYNC_CHECKPOINTS),
            self.cursor,
            clock=clock,
            tick_interval=cfg.SCHEDULER_TICK_SEC,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, run_scheduler: bool = True) -> None:
        await self.cursor.rebuild(self.store)
        if run_scheduler:
            self.scheduler.start()

    async def stop(self) -> None:
        await self.scheduler.stop()
        self.lock.request_cancel()
        await self.remote.aclose()

    # ------------------------------------------------------------------
    # Locked pipelines
    # ------------------------------------------------------------------

    async def _run_locked(
        self, name: str, run: Callable[[], Awaitable[Any]]
    ) -> OperationResult:
        started_at = datetime.now()
        try:
            async with self.lock.hold(name):
                outcome = await run()
        except LockRejectedError as exc:
            await self.store.add_sync_log(
                name, started_at, "rejected", errors=[f"'{exc.holder}' was running"]
            )
            return OperationResult(
                success=False,
                error=str(exc),
                message=f"'{exc.holder}' is already running, try again later",
            )
        except PipelineCancelledError as exc:
            logger.info("%s", exc)
            await self.store.add_sync_log(name, started_at, "failed", errors=["cancelled"])
            return OperationResult(success=False, error="cancelled")

        success = getattr(outcome, "success", True)
        errors = list(getattr(outcome, "errors", []) or [])
        error = getattr(outcome, "error", None)
        if error:
            errors.insert(0, error)
        counts = _counts(outcome)
        await self.store.add_sync_log(
            name, started_at, "success" if success else "failed", counts=counts, errors=errors
        )
        return OperationResult(
            success=success,
            message=f"{name} finished" if success else f"{name} failed",
            error=error,
            counts=counts,
            data=outcome.model_dump(mode="json"),
        )

    async def sync_now(self, silent: bool = False, show_progress: bool = False) -> OperationResult:
        return await self._run_locked(
            "upload", lambda: self.upload.run(silent=silent, show_progress=show_progress)
        )

    async def check_server_edits_now(self, silent: bool = False) -> OperationResult:
        return await self._run_locked("server-edits", lambda: self.server_edits.run(silent=silent))

    async def apply_selected_actions(
        self, actions: list[ReconciliationAction], silent: bool = False
    ) -> OperationResult:
        return await self._run_locked(
            "reconcile", lambda: self.executor.apply(actions, silent=silent)
        )

    async def cleanup_duplicates(
        self,
        date_from: date | None = None,
        date_to: date | None = None,
        dry_run: bool = False,
    ) -> OperationResult:
        return await self._run_locked(
            "duplicates",
            lambda: remove_duplicates(
                self.store, self.summaries, self.tolerance, date_from, date_to, dry_run=dry_run
            ),
        )

    async def validate(
        self,
        date_from: date | None = None,
        date_to: date | None = None,
        employee_id: int | None = None,
        auto_correct: bool = True,
        apply_8_hour_rule: bool | None = None,
    ) -> OperationResult:
        rule = self.cfg.APPLY_8_HOUR_RULE if apply_8_hour_rule is None else apply_8_hour_rule

        async def run():
            result = await self.validator.validate(
                date_from, date_to, employee_id, auto_correct=auto_correct, apply_8_hour_rule=rule
            )
            if result.affected_days:
                await self.summaries.rebuild_days(result.affected_days)
            return result

        if not auto_correct:
            result = await run()
            return OperationResult(success=True, counts=_counts(result), data=result.model_dump(mode="json"))
        return await self._run_locked("validate", run)

    # ------------------------------------------------------------------
    # Read-only and producer entry points
    # ------------------------------------------------------------------

    async def compare(self, start_date: date, end_date: date, silent: bool = False) -> OperationResult:
        try:
            result = await self.comparison.compare(start_date, end_date)
        except (NetworkError, ValueError) as exc:
            logger.warning("Comparison %s..%s failed: %s", start_date, end_date, exc)
            return OperationResult(success=False, error=str(exc))

        counts = {
            "server_only": len(result.server_only),
            "local_only": len(result.local_only),
            "different": len(result.different),
            "identical": len(result.identical),
            "duplicates": len(result.duplicates),
        }
        return OperationResult(success=True, counts=counts, data=result.model_dump(mode="json"))

    async def record_clock_event(
        self, employee_id: int, clock_type: str, timestamp: datetime | None = None
    ) -> AttendanceRecord:
        record = await self.clock_events.submit(employee_id, clock_type, timestamp)
        self.cursor.pending_attendance += 1
        return record

    async def duplicates(
        self, date_from: date | None = None, date_to: date | None = None, employee_id: int | None = None
    ) -> OperationResult:
        clusters = await preview_duplicates(self.store, self.tolerance, date_from, date_to, employee_id)
        return OperationResult(
            success=True,
            counts={"clusters": len(clusters)},
            data=[c.model_dump(mode="json") for c in clusters],
        )

    def cancel(self) -> bool:
        return self.lock.request_cancel()

    async def status(self) -> OperationResult:
        await self.cursor.rebuild(self.store)
        return OperationResult(
            success=True,
            counts={
                "pending_attendance": self.cursor.pending_attendance,
                "pending_summary": self.cursor.pending_summary,
            },
            data={
                "lock_active": self.lock.active,
                "lock_holder": self.lock.holder,
                "scheduler_running": self.scheduler.running,
                "checkpoints": [c.strftime("%H:%M") for c in self.scheduler.checkpoints],
                "cursor": self.cursor.snapshot(),
            },
        )

    async def history(self, limit: int = 20) -> OperationResult:
        entries = await self.store.list_sync_log(limit)
        return OperationResult(success=True, counts={"entries": len(entries)}, data=entries)


def build_sync_engine(
    cfg: Settings | None = None,
    sessionmaker: async_sessionmaker[AsyncSession] | None = None,
    remote: RemoteClient | None = None,
) -> SyncEngine:
    cfg = cfg or settings
    return SyncEngine(
        LocalStore(sessionmaker or AsyncSessionLocal),
        remote or HttpRemoteClient.from_settings(cfg),
        cfg,
    )
