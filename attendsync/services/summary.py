"""
Daily summary builder.

A summary is a pure function of one employee-day's records.  ``rebuild``
always writes the full row and flags it pending; when the day has no records
left the row is removed instead.
"""

import logging
from datetime import date
from typing import Iterable

from attendsync.db.store import LocalStore
from attendsync.schemas.attendance import AttendanceRecord, DailySummary
from attendsync.services.time_calculator import (
    SESSIONS,
    SessionSchedule,
    is_late,
    round_hours,
)

logger = logging.getLogger(__name__)


def build_summary(
    employee_id: int,
    day: date,
    records: Iterable[AttendanceRecord],
    schedule: SessionSchedule,
) -> DailySummary | None:
    records = sorted(records, key=lambda r: (r.clock_time, r.id))
    if not records:
        return None

    values: dict = {"employee_id": employee_id, "date": day}

    for session in SESSIONS:
        ins = [r.clock_time for r in records if r.clock_type == f"{session}_in"]
        outs = [r.clock_time for r in records if r.clock_type == f"{session}_out"]
        values[f"{session}_in"] = min(ins) if ins else None
        values[f"{session}_out"] = max(outs) if outs else None

    all_ins = [r.clock_time for r in records if r.is_clock_in]
    all_outs = [r.clock_time for r in records if not r.is_clock_in]
    values["first_clock_in"] = min(all_ins) if all_ins else None
    values["last_clock_out"] = max(all_outs) if all_outs else None

    outs = [r for r in records if not r.is_clock_in]
    regular = round_hours(sum(r.regular_hours or 0.0 for r in outs))
    overtime = round_hours(sum(r.overtime_hours or 0.0 for r in outs))
    values["regular_hours"] = regular
    values["overtime_hours"] = overtime
    values["total_hours"] = round_hours(regular + overtime)

    # A session stays open while any of its clock-ins has no later clock-out;
    # repeated scans of the same clock-in do not leave it open
    opened: set[str] = set()
    open_sessions: set[str] = set()
    for session in SESSIONS:
        ins = [r.clock_time for r in records if r.clock_type == f"{session}_in"]
        if not ins:
            continue
        opened.add(session)
        last_out = values[f"{session}_out"]
        if last_out is None or max(ins) > last_out:
            open_sessions.add(session)
    completed = opened - open_sessions

    values["total_sessions"] = len(opened)
    values["completed_sessions"] = len(completed)
    values["pending_sessions"] = len(open_sessions)
    values["is_incomplete"] = bool(open_sessions)

    values["has_late_entry"] = any(
        values[f"{session}_in"] is not None
        and is_late(session, values[f"{session}_in"], schedule)
        for session in SESSIONS
    )
    values["sync_status"] = "pending"
    return DailySummary(**values)


class SummaryBuilder:
    def __init__(self, store: LocalStore, schedule: SessionSchedule | None = None) -> None:
        self.store = store
        self.schedule = schedule or SessionSchedule.from_settings()

    async def rebuild(
        self,
        employee_id: int,
        day: date,
        records: list[AttendanceRecord] | None = None,
    ) -> DailySummary | None:
        if records is None:
            records = (await self.store.list_records_for_days([(employee_id, day)]))[
                (employee_id, day)
            ]

        summary = build_summary(employee_id, day, records, self.schedule)
        if summary is None:
            if await self.store.delete_summary(employee_id, day):
                logger.info("Removed summary for employee %d on %s (no records left)", employee_id, day)
            return None
        return await self.store.upsert_summary(summary)

    async def rebuild_days(self, keys: Iterable[tuple[int, date]]) -> list[DailySummary]:
        """Rebuild each day, logging and skipping the ones that fail."""
        keys = list(dict.fromkeys(keys))
        if not keys:
            return []
        grouped = await self.store.list_records_for_days(keys)

        rebuilt: list[DailySummary] = []
        for employee_id, day in keys:
            try:
                summary = await self.rebuild(employee_id, day, grouped[(employee_id, day)])
            except Exception:
                logger.exception("Failed to rebuild summary for employee %d on %s", employee_id, day)
                continue
            if summary is not None:
                rebuilt.append(summary)
        return rebuilt
