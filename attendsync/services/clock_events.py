"""
Boundary for the external scan producer (barcode, face match, manual entry).

A clock event becomes a plain pending insert; the next upload sweeps it up.
No processing lock is taken here; concurrent scans are serialised by the
recorder itself so each gets its own provisional id.
"""

import asyncio
import logging
from datetime import datetime

from attendsync.core.exceptions import RecordValidationError
from attendsync.db.store import LocalStore
from attendsync.schemas.attendance import AttendanceRecord
from attendsync.services.summary import SummaryBuilder
from attendsync.services.time_calculator import (
    OVERTIME_SESSIONS,
    SessionSchedule,
    expected_hours,
    pair_records,
    session_of,
)

logger = logging.getLogger(__name__)


class ClockEventRecorder:
    def __init__(
        self,
        store: LocalStore,
        summaries: SummaryBuilder,
        schedule: SessionSchedule | None = None,
        apply_8_hour_rule: bool = True,
    ) -> None:
        self.store = store
        self.summaries = summaries
        self.schedule = schedule or SessionSchedule.from_settings()
        self.apply_8_hour_rule = apply_8_hour_rule
        # Serialises the open-session check, id allocation and insert
        self._lock = asyncio.Lock()

    async def submit(
        self,
        employee_id: int,
        clock_type: str,
        timestamp: datetime | None = None,
    ) -> AttendanceRecord:
        async with self._lock:
            return await self._submit(employee_id, clock_type, timestamp)

    async def _submit(
        self,
        employee_id: int,
        clock_type: str,
        timestamp: datetime | None,
    ) -> AttendanceRecord:
        session = session_of(clock_type)
        record = AttendanceRecord(
            id=0,
            employee_id=employee_id,
            clock_type=clock_type,
            clock_time=timestamp or datetime.now(),
            is_overtime_session=session in OVERTIME_SESSIONS,
        )
        key = record.day_key
        day_records = (await self.store.list_records_for_days([key]))[key]

        open_pairs = {p.session: p for p in pair_records(day_records).open_ins}
        if record.is_clock_in and session in open_pairs:
            raise RecordValidationError(
                f"{session} session already open for employee {employee_id}"
            )
        if not record.is_clock_in:
            pair = open_pairs.get(session)
            if pair is None:
                raise RecordValidationError(
                    f"{clock_type} without an open {session}_in for employee {employee_id}"
                )
            if record.clock_time < pair.clock_in.clock_time:
                raise RecordValidationError(f"{clock_type} is earlier than its clock-in")

        record.id = await self.store.next_provisional_id()
        if not record.is_clock_in:
            hours, _ = expected_hours(
                [*day_records, record], self.schedule, self.apply_8_hour_rule
            )
            record.regular_hours = hours[record.id].regular_hours
            record.overtime_hours = hours[record.id].overtime_hours

        stored = await self.store.add_record(record)
        logger.info(
            "Recorded %s for employee %d at %s (provisional id %d)",
            clock_type, employee_id, stored.clock_time.isoformat(timespec="seconds"), stored.id,
        )
        await self.summaries.rebuild(employee_id, stored.date)
        return stored
