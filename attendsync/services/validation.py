"""
Validation & correction engine.

Recomputes regular/overtime hours for every employee-day in scope and
rewrites the records whose stored values drifted.  Rewritten records go back
to ``pending`` so the next upload pushes the corrected values.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date
from typing import Iterable

from attendsync.core.exceptions import RecordValidationError
from attendsync.db.store import LocalStore
from attendsync.schemas.attendance import AttendanceRecord
from attendsync.schemas.sync import Correction, ValidationResult
from attendsync.services.time_calculator import (
    OVERTIME_SESSIONS,
    SessionSchedule,
    expected_hours,
    hours_differ,
    is_late,
)

logger = logging.getLogger(__name__)


class ValidationEngine:
    def __init__(self, store: LocalStore, schedule: SessionSchedule | None = None) -> None:
        self.store = store
        self.schedule = schedule or SessionSchedule.from_settings()

    async def validate(
        self,
        date_from: date | None = None,
        date_to: date | None = None,
        employee_id: int | None = None,
        auto_correct: bool = True,
        apply_8_hour_rule: bool = True,
    ) -> ValidationResult:
        records = await self.store.list_records(
            date_from=date_from, date_to=date_to, employee_id=employee_id
        )
        groups: dict[tuple[int, date], list[AttendanceRecord]] = defaultdict(list)
        for record in records:
            groups[record.day_key].append(record)

        logger.info(
            "Validating %d records in %d employee-days (auto_correct=%s)",
            len(records), len(groups), auto_correct,
        )
        return await self._validate_groups(groups, auto_correct, apply_8_hour_rule)

    async def validate_days(
        self,
        keys: Iterable[tuple[int, date]],
        auto_correct: bool = True,
        apply_8_hour_rule: bool = True,
    ) -> ValidationResult:
        groups = await self.store.list_records_for_days(keys)
        return await self._validate_groups(groups, auto_correct, apply_8_hour_rule)

    async def validate_unsynced(self, apply_8_hour_rule: bool = True) -> ValidationResult:
        """Validate every employee-day that still has a pending record."""
        keys = await self.store.pending_employee_days()
        return await self.validate_days(keys, apply_8_hour_rule=apply_8_hour_rule)

    async def _validate_groups(
        self,
        groups: dict[tuple[int, date], list[AttendanceRecord]],
        auto_correct: bool,
        apply_8_hour_rule: bool,
    ) -> ValidationResult:
        result = ValidationResult()
        for key, records in groups.items():
            if not records:
                continue
            result.merge(
                await self._validate_day(key, records, auto_correct, apply_8_hour_rule)
            )

        if result.corrected_records or result.error_records:
            logger.info(
                "Validation finished: total=%d valid=%d corrected=%d errors=%d late=%d",
                result.total_records, result.valid_records, result.corrected_records,
                result.error_records, result.late_entries,
            )
        return result

    async def _validate_day(
        self,
        key: tuple[int, date],
        records: list[AttendanceRecord],
        auto_correct: bool,
        apply_8_hour_rule: bool,
    ) -> ValidationResult:
        employee_id, day = key
        result = ValidationResult(total_records=len(records))

        try:
            expected, pairing = expected_hours(records, self.schedule, apply_8_hour_rule)
        except ValueError as exc:
            # Unknown clock type somewhere in the day; nothing here can be trusted
            logger.warning("Skipping employee %d on %s: %s", employee_id, day, exc)
            result.error_records = len(records)
            return result

        orphan_ids = {p.clock_out.id for p in pairing.orphan_outs}
        for record_id in orphan_ids:
            logger.warning(
                "Clock-out #%d for employee %d on %s has no matching clock-in",
                record_id, employee_id, day,
            )

        # Lateness is judged on the first clock-in of each session only
        seen_sessions: set[str] = set()
        opened = [p for p in pairing.pairs if p.clock_in is not None]
        for pair in sorted(opened, key=lambda p: p.clock_in.clock_time):
            if pair.session in seen_sessions:
                continue
            seen_sessions.add(pair.session)
            if is_late(pair.session, pair.clock_in.clock_time, self.schedule):
                result.late_entries += 1

        for record in records:
            if record.id in orphan_ids:
                result.error_records += 1
                continue

            target = expected[record.id]
            overtime_flag = record.session in OVERTIME_SESSIONS
            if not hours_differ(record, target) and record.is_overtime_session == overtime_flag:
                result.valid_records += 1
                continue

            correction = Correction(
                record_id=record.id,
                employee_id=employee_id,
                date=day,
                clock_type=record.clock_type,
                original_regular=record.regular_hours,
                original_overtime=record.overtime_hours,
                corrected_regular=target.regular_hours,
                corrected_overtime=target.overtime_hours,
            )
            if not auto_correct:
                result.corrections.append(correction)
                result.corrected_records += 1
                continue

            try:
                updated = await self.store.update_record(
                    record.id,
                    regular_hours=target.regular_hours,
                    overtime_hours=target.overtime_hours,
                    is_overtime_session=overtime_flag,
                    sync_status="pending",
                )
                if not updated:
                    raise RecordValidationError("record vanished during validation", record.id)
            except Exception:
                logger.exception("Failed to correct record #%d, skipping", record.id)
                result.error_records += 1
                continue

            result.corrections.append(correction)
            result.corrected_records += 1
            if key not in result.affected_days:
                result.affected_days.append(key)

        return result
