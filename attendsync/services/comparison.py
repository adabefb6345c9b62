"""
Read-only comparison of the local replica against the server for a date range.

Records are matched by id and classified as server-only, local-only,
different or identical.  Independently of ids, near-simultaneous scans of the
same clock type are reported as duplicate clusters.  Nothing here writes;
the proposed actions are suggestions for a human to pick from.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date, timedelta
from typing import Any, Iterable

from attendsync.db.store import LocalStore
from attendsync.schemas.attendance import AttendanceRecord
from attendsync.schemas.sync import (
    ComparisonResult,
    DifferentRecord,
    DuplicateCluster,
    DuplicateMember,
    FieldDiff,
    ReconciliationAction,
)
from attendsync.services.remote import RemoteClient
from attendsync.services.time_calculator import HOURS_TOLERANCE

logger = logging.getLogger(__name__)

COMPARED_FIELDS: tuple[str, ...] = (
    "employee_id",
    "clock_type",
    "clock_time",
    "date",
    "regular_hours",
    "overtime_hours",
    "is_overtime_session",
)


def _values_differ(local: Any, server: Any) -> bool:
    if isinstance(local, float) or isinstance(server, float):
        return abs((local or 0.0) - (server or 0.0)) > HOURS_TOLERANCE
    return local != server


def diff_records(local: AttendanceRecord, server: AttendanceRecord) -> list[FieldDiff]:
    diffs = []
    for name in COMPARED_FIELDS:
        local_value, server_value = getattr(local, name), getattr(server, name)
        if _values_differ(local_value, server_value):
            diffs.append(FieldDiff(field=name, server=server_value, local=local_value))
    return diffs


def cluster_duplicates(
    members: Iterable[DuplicateMember], tolerance: timedelta
) -> list[DuplicateCluster]:
    """
    Group by (employee, date, clock_type) and cluster by clock_time proximity.

    A cluster is anchored on its earliest member; a record joins while it is
    within ``tolerance`` of that anchor.  Only clusters of two or more records
    are returned.
    """
    groups: dict[tuple[int, date, str], list[DuplicateMember]] = defaultdict(list)
    for member in members:
        r = member.record
        groups[(r.employee_id, r.clock_time.date(), r.clock_type)].append(member)

    clusters: list[DuplicateCluster] = []
    for (employee_id, day, clock_type), group in sorted(groups.items()):
        group.sort(key=lambda m: (m.record.clock_time, m.record.id))

        current: list[DuplicateMember] = []
        for member in group:
            if current and member.record.clock_time - current[0].record.clock_time > tolerance:
                if len(current) > 1:
                    clusters.append(_make_cluster(employee_id, day, clock_type, current))
                current = []
            current.append(member)
        if len(current) > 1:
            clusters.append(_make_cluster(employee_id, day, clock_type, current))

    return clusters


def _make_cluster(
    employee_id: int, day: date, clock_type: str, members: list[DuplicateMember]
) -> DuplicateCluster:
    return DuplicateCluster(
        employee_id=employee_id,
        date=day,
        clock_type=clock_type,
        first_time=members[0].record.clock_time,
        last_time=members[-1].record.clock_time,
        members=members,
    )


def propose_actions(result: ComparisonResult) -> list[ReconciliationAction]:
    actions = [
        ReconciliationAction(type="add_from_server", record_id=r.id, payload=r)
        for r in result.server_only
    ]
    actions += [
        ReconciliationAction(type="update_from_server", record_id=d.record_id, payload=d.server)
        for d in result.different
    ]
    for r in result.local_only:
        # A synced record missing on the server was deleted there; a pending one was never pushed
        kind = "delete_local" if r.sync_status == "synced" else "keep_local"
        actions.append(ReconciliationAction(type=kind, record_id=r.id))
    return actions


class ComparisonEngine:
    def __init__(
        self,
        store: LocalStore,
        remote: RemoteClient,
        duplicate_tolerance: timedelta = timedelta(minutes=5),
    ) -> None:
        self.store = store
        self.remote = remote
        self.duplicate_tolerance = duplicate_tolerance

    async def compare(self, start_date: date, end_date: date) -> ComparisonResult:
        if end_date < start_date:
            raise ValueError("end_date must not be before start_date")

        local_records = await self.store.list_records(date_from=start_date, date_to=end_date)
        remote_range = await self.remote.pull_full_range(start_date, end_date)
        server_records = [
            r for r in remote_range.attendance if start_date <= r.clock_time.date() <= end_date
        ]

        local_by_id = {r.id: r for r in local_records}
        server_by_id = {r.id: r for r in server_records}
        result = ComparisonResult(start_date=start_date, end_date=end_date)

        for record_id, server in sorted(server_by_id.items()):
            local = local_by_id.get(record_id)
            if local is None:
                result.server_only.append(server)
                continue
            diffs = diff_records(local, server)
            if diffs:
                result.different.append(
                    DifferentRecord(record_id=record_id, local=local, server=server, diffs=diffs)
                )
            else:
                result.identical.append(local)

        result.local_only = [r for rid, r in sorted(local_by_id.items()) if rid not in server_by_id]

        members = [DuplicateMember(record=r, side="local") for r in local_records]
        members += [
            DuplicateMember(record=r, side="server")
            for r in server_records
            if r.id not in local_by_id
        ]
        result.duplicates = cluster_duplicates(members, self.duplicate_tolerance)
        result.proposed_actions = propose_actions(result)

        logger.info(
            "Compared %s..%s: %d server-only, %d local-only, %d different, %d identical, %d duplicate clusters",
            start_date, end_date,
            len(result.server_only), len(result.local_only),
            len(result.different), len(result.identical), len(result.duplicates),
        )
        return result
