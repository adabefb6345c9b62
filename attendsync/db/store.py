"""
Local record store.

Durable keyed storage for attendance records, daily summaries and the sync
log.  Pure CRUD: every method opens its own short transaction and returns
detached pydantic schemas, so callers never hold an ORM session across a
network call.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Iterable, Literal

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from attendsync.db.models import AttendanceRecord as AttendanceRow
from attendsync.db.models import DailySummary as SummaryRow
from attendsync.db.models import SyncLog
from attendsync.schemas.attendance import AttendanceRecord, DailySummary

logger = logging.getLogger(__name__)

RecordKind = Literal["attendance", "summary"]

_RECORD_FIELDS = (
    "employee_id",
    "clock_type",
    "clock_time",
    "date",
    "regular_hours",
    "overtime_hours",
    "is_overtime_session",
    "sync_status",
    "source",
)

_SUMMARY_FIELDS = tuple(f for f in DailySummary.model_fields if f not in ("employee_id", "date"))


def _record_values(record: AttendanceRecord) -> dict[str, Any]:
    values = record.model_dump(include=set(_RECORD_FIELDS))
    values["date"] = record.clock_time.date()
    return values


class LocalStore:
    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker

    # ------------------------------------------------------------------
    # Attendance records
    # ------------------------------------------------------------------

    async def next_provisional_id(self) -> int:
        async with self._sessionmaker() as session:
            lowest = await session.scalar(select(func.min(AttendanceRow.id)))
        return min(lowest or 0, 0) - 1

    async def add_record(self, record: AttendanceRecord) -> AttendanceRecord:
        async with self._sessionmaker() as session:
            row = AttendanceRow(id=record.id, **_record_values(record))
            session.add(row)
            await session.commit()
            await session.refresh(row)
            return AttendanceRecord.model_validate(row)

    async def get_record(self, record_id: int) -> AttendanceRecord | None:
        async with self._sessionmaker() as session:
            row = await session.get(AttendanceRow, record_id)
            return AttendanceRecord.model_validate(row) if row else None

    async def list_records(
        self,
        date_from: date | None = None,
        date_to: date | None = None,
        employee_id: int | None = None,
        sync_status: str | None = None,
    ) -> list[AttendanceRecord]:
        stmt = select(AttendanceRow)
        if date_from is not None:
            stmt = stmt.where(AttendanceRow.date >= date_from)
        if date_to is not None:
            stmt = stmt.where(AttendanceRow.date <= date_to)
        if employee_id is not None:
            stmt = stmt.where(AttendanceRow.employee_id == employee_id)
        if sync_status is not None:
            stmt = stmt.where(AttendanceRow.sync_status == sync_status)
        stmt = stmt.order_by(AttendanceRow.employee_id, AttendanceRow.date, AttendanceRow.clock_time)

        async with self._sessionmaker() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [AttendanceRecord.model_validate(r) for r in rows]

    async def list_records_for_days(
        self, keys: Iterable[tuple[int, date]]
    ) -> dict[tuple[int, date], list[AttendanceRecord]]:
        keys = list(dict.fromkeys(keys))
        result: dict[tuple[int, date], list[AttendanceRecord]] = {k: [] for k in keys}
        if not keys:
            return result

        stmt = (
            select(AttendanceRow)
            .where(
                or_(
                    *[
                        and_(AttendanceRow.employee_id == emp, AttendanceRow.date == day)
                        for emp, day in keys
                    ]
                )
            )
            .order_by(AttendanceRow.clock_time)
        )
        async with self._sessionmaker() as session:
            rows = (await session.execute(stmt)).scalars().all()
        for row in rows:
            result[(row.employee_id, row.date)].append(AttendanceRecord.model_validate(row))
        return result

    async def upsert_record(self, record: AttendanceRecord) -> tuple[bool, AttendanceRecord | None]:
        """
        Full-field overwrite by id, inserting when the id is unknown.

        Returns (changed, previous) where ``previous`` is the row before the
        write (None on insert).  Writing identical values reports no change.
        """
        values = _record_values(record)
        async with self._sessionmaker() as session:
            row = await session.get(AttendanceRow, record.id)
            if row is None:
                session.add(AttendanceRow(id=record.id, **values))
                await session.commit()
                return True, None

            previous = AttendanceRecord.model_validate(row)
            changed = False
            for field, value in values.items():
                if getattr(row, field) != value:
                    setattr(row, field, value)
                    changed = True
            if changed:
                await session.commit()
            return changed, previous

    async def update_record(self, record_id: int, **fields: Any) -> bool:
        async with self._sessionmaker() as session:
            result = await session.execute(
                update(AttendanceRow).where(AttendanceRow.id == record_id).values(**fields)
            )
            await session.commit()
            return result.rowcount > 0

    async def delete_record(self, record_id: int) -> AttendanceRecord | None:
        async with self._sessionmaker() as session:
            row = await session.get(AttendanceRow, record_id)
            if row is None:
                return None
            previous = AttendanceRecord.model_validate(row)
            await session.delete(row)
            await session.commit()
            return previous

    async def pending_employee_days(self) -> list[tuple[int, date]]:
        stmt = (
            select(AttendanceRow.employee_id, AttendanceRow.date)
            .where(AttendanceRow.sync_status == "pending")
            .distinct()
            .order_by(AttendanceRow.employee_id, AttendanceRow.date)
        )
        async with self._sessionmaker() as session:
            rows = (await session.execute(stmt)).all()
        return [(emp, day) for emp, day in rows]

    async def remap_ids(self, id_map: dict[int, int]) -> int:
        """Replace provisional local ids with the ids the server assigned."""
        remapped = 0
        for local_id, server_id in id_map.items():
            if local_id == server_id:
                continue
            async with self._sessionmaker() as session:
                try:
                    result = await session.execute(
                        update(AttendanceRow)
                        .where(AttendanceRow.id == local_id)
                        .values(id=server_id)
                    )
                    await session.commit()
                except IntegrityError:
                    await session.rollback()
                    logger.warning(
                        "Cannot remap provisional id %d: server id %d already exists locally",
                        local_id, server_id,
                    )
                    continue
                remapped += result.rowcount
        if remapped:
            logger.info("Remapped %d provisional ids to server ids", remapped)
        return remapped

    # ------------------------------------------------------------------
    # Daily summaries
    # ------------------------------------------------------------------

    async def get_summary(self, employee_id: int, day: date) -> DailySummary | None:
        async with self._sessionmaker() as session:
            row = await session.scalar(
                select(SummaryRow).where(
                    SummaryRow.employee_id == employee_id, SummaryRow.date == day
                )
            )
            return DailySummary.model_validate(row) if row else None

    async def list_summaries(
        self,
        date_from: date | None = None,
        date_to: date | None = None,
        employee_id: int | None = None,
    ) -> list[DailySummary]:
        stmt = select(SummaryRow)
        if date_from is not None:
            stmt = stmt.where(SummaryRow.date >= date_from)
        if date_to is not None:
            stmt = stmt.where(SummaryRow.date <= date_to)
        if employee_id is not None:
            stmt = stmt.where(SummaryRow.employee_id == employee_id)
        stmt = stmt.order_by(SummaryRow.date.desc(), SummaryRow.employee_id)
        async with self._sessionmaker() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [DailySummary.model_validate(r) for r in rows]

    async def upsert_summary(self, summary: DailySummary) -> DailySummary:
        values = summary.model_dump(include=set(_SUMMARY_FIELDS))
        async with self._sessionmaker() as session:
            row = await session.scalar(
                select(SummaryRow).where(
                    SummaryRow.employee_id == summary.employee_id,
                    SummaryRow.date == summary.date,
                )
            )
            if row is None:
                row = SummaryRow(employee_id=summary.employee_id, date=summary.date, **values)
                session.add(row)
            else:
                for field, value in values.items():
                    setattr(row, field, value)
            await session.commit()
            await session.refresh(row)
            return DailySummary.model_validate(row)

    async def delete_summary(self, employee_id: int, day: date) -> bool:
        async with self._sessionmaker() as session:
            result = await session.execute(
                delete(SummaryRow).where(
                    SummaryRow.employee_id == employee_id, SummaryRow.date == day
                )
            )
            await session.commit()
            return result.rowcount > 0

    # ------------------------------------------------------------------
    # Sync bookkeeping
    # ------------------------------------------------------------------

    async def get_unsynced_count(self, kind: RecordKind) -> int:
        model = AttendanceRow if kind == "attendance" else SummaryRow
        async with self._sessionmaker() as session:
            count = await session.scalar(
                select(func.count()).select_from(model).where(model.sync_status == "pending")
            )
        return int(count or 0)

    async def list_unsynced(self, kind: RecordKind) -> list[AttendanceRecord] | list[DailySummary]:
        if kind == "attendance":
            return await self.list_records(sync_status="pending")
        stmt = (
            select(SummaryRow)
            .where(SummaryRow.sync_status == "pending")
            .order_by(SummaryRow.employee_id, SummaryRow.date)
        )
        async with self._sessionmaker() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [DailySummary.model_validate(r) for r in rows]

    async def mark_synced(self, kind: RecordKind, ids: Iterable[Any]) -> int:
        """
        Flag rows as acknowledged by the remote.

        ``ids`` are record ids for attendance and (employee_id, date) keys for
        summaries.
        """
        ids = list(ids)
        if not ids:
            return 0
        async with self._sessionmaker() as session:
            if kind == "attendance":
                result = await session.execute(
                    update(AttendanceRow)
                    .where(AttendanceRow.id.in_(ids))
                    .values(sync_status="synced")
                )
                marked = result.rowcount
            else:
                marked = 0
                for employee_id, day in ids:
                    result = await session.execute(
                        update(SummaryRow)
                        .where(SummaryRow.employee_id == employee_id, SummaryRow.date == day)
                        .values(sync_status="synced")
                    )
                    marked += result.rowcount
            await session.commit()
        return marked

    async def add_sync_log(
        self,
        pipeline: str,
        started_at: datetime,
        status: str,
        counts: dict[str, int] | None = None,
        errors: list[str] | None = None,
    ) -> None:
        async with self._sessionmaker() as session:
            session.add(
                SyncLog(
                    pipeline=pipeline,
                    started_at=started_at,
                    finished_at=datetime.now(),
                    status=status,
                    counts=counts or None,
                    errors=errors[:100] if errors else None,
                )
            )
            await session.commit()

    async def list_sync_log(self, limit: int = 20) -> list[dict[str, Any]]:
        async with self._sessionmaker() as session:
            rows = (
                await session.execute(select(SyncLog).order_by(SyncLog.id.desc()).limit(limit))
            ).scalars().all()
        return [
            {
                "id": r.id,
                "pipeline": r.pipeline,
                "started_at": r.started_at.isoformat(),
                "finished_at": r.finished_at.isoformat(),
                "status": r.status,
                "counts": r.counts,
                "errors": r.errors,
            }
            for r in rows
        ]
