"""
Applies reconciliation actions a human picked from a comparison.

One failing action never stops the others.  Every touched employee-day is then
re-validated, its summary rebuilt and pushed, the same way server edits are.
"""

from __future__ import annotations

import logging
from datetime import date

from attendsync.core.events import EventBus, PipelineReporter
from attendsync.core.exceptions import ActionExecutionError, NetworkError
from attendsync.core.lock import ProcessingLock
from attendsync.db.store import LocalStore
from attendsync.schemas.sync import ActionResult, ReconciliationAction
from attendsync.services.remote import RemoteClient
from attendsync.services.server_edits import refresh_days
from attendsync.services.summary import SummaryBuilder
from attendsync.services.validation import ValidationEngine

logger = logging.getLogger(__name__)

PIPELINE = "reconcile"


class ActionExecutor:
    def __init__(
        self,
        store: LocalStore,
        remote: RemoteClient,
        validator: ValidationEngine,
        summaries: SummaryBuilder,
        lock: ProcessingLock | None = None,
        bus: EventBus | None = None,
        apply_8_hour_rule: bool = True,
    ) -> None:
        self.store = store
        self.remote = remote
        self.validator = validator
        self.summaries = summaries
        self.lock = lock
        self.bus = bus
        self.apply_8_hour_rule = apply_8_hour_rule

    async def apply(self, actions: list[ReconciliationAction], silent: bool = False) -> ActionResult:
        reporter = PipelineReporter(self.bus, PIPELINE, silent=silent)
        result = ActionResult()
        touched: list[tuple[int, date]] = []

        reporter.started("apply", actions=len(actions))
        for action in actions:
            try:
                touched.extend(await self._apply_one(action, result))
            except ActionExecutionError as exc:
                logger.warning("Reconciliation action failed: %s", exc)
                result.errors.append(str(exc))
            except Exception as exc:
                logger.exception("Unexpected failure in %s #%d", action.type, action.record_id)
                result.errors.append(str(ActionExecutionError(str(exc), action.type, action.record_id)))
        reporter.completed(
            "apply",
            added=result.added,
            updated=result.updated,
            deleted=result.deleted,
            kept=result.kept,
        )
        if self.lock is not None:
            self.lock.raise_if_cancelled()

        touched = list(dict.fromkeys(touched))
        if touched:
            reporter.started("summaries", days=len(touched))
            try:
                _, result.summaries_rebuilt, result.summaries_uploaded = await refresh_days(
                    touched,
                    self.store,
                    self.remote,
                    self.validator,
                    self.summaries,
                    self.apply_8_hour_rule,
                )
            except NetworkError as exc:
                # Local changes stand; the summaries stay pending for the next upload
                logger.warning("Summary upload after reconciliation failed: %s", exc)
                reporter.error("summaries", str(exc))
                result.success = False
                result.error = str(exc)
            else:
                reporter.completed(
                    "summaries",
                    rebuilt=result.summaries_rebuilt,
                    uploaded=result.summaries_uploaded,
                )

        for message in result.errors:
            reporter.error("apply", message)
        return result

    async def _apply_one(
        self, action: ReconciliationAction, result: ActionResult
    ) -> list[tuple[int, date]]:
        """Apply one action and return the employee-days it touched."""
        if action.type in ("add_from_server", "update_from_server"):
            if action.payload is None:
                raise ActionExecutionError("server payload missing", action.type, action.record_id)
            if action.payload.id != action.record_id:
                raise ActionExecutionError(
                    f"payload id {action.payload.id} does not match", action.type, action.record_id
                )
            incoming = action.payload.model_copy(update={"sync_status": "synced", "source": "server"})
            existing = await self.store.get_record(action.record_id)

            if action.type == "add_from_server":
                if existing is not None:
                    raise ActionExecutionError("record already exists locally", action.type, action.record_id)
                await self.store.add_record(incoming)
                result.added += 1
                return [incoming.day_key]

            if existing is None:
                raise ActionExecutionError("record not found locally", action.type, action.record_id)
            await self.store.upsert_record(incoming)
            result.updated += 1
            return list(dict.fromkeys([existing.day_key, incoming.day_key]))

        if action.type == "delete_local":
            previous = await self.store.delete_record(action.record_id)
            if previous is None:
                raise ActionExecutionError("record not found locally", action.type, action.record_id)
            result.deleted += 1
            return [previous.day_key]

        # keep_local: re-flag so the next upload pushes the local version
        existing = await self.store.get_record(action.record_id)
        if existing is None:
            raise ActionExecutionError("record not found locally", action.type, action.record_id)
        await self.store.update_record(action.record_id, sync_status="pending")
        result.kept += 1
        return []
