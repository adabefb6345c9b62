"""
Local duplicate-scan cleanup.

Keeps the earliest record of each cluster.  Only pending, locally-created
copies are removed; a synced duplicate already exists on the server and has to
go through reconciliation instead.
"""

import logging
from datetime import date, timedelta

from attendsync.db.store import LocalStore
from attendsync.schemas.sync import CleanupResult, DuplicateCluster, DuplicateMember
from attendsync.services.comparison import cluster_duplicates
from attendsync.services.summary import SummaryBuilder

logger = logging.getLogger(__name__)


async def preview_duplicates(
    store: LocalStore,
    tolerance: timedelta = timedelta(minutes=5),
    date_from: date | None = None,
    date_to: date | None = None,
    employee_id: int | None = None,
) -> list[DuplicateCluster]:
    records = await store.list_records(date_from=date_from, date_to=date_to, employee_id=employee_id)
    return cluster_duplicates([DuplicateMember(record=r, side="local") for r in records], tolerance)


async def remove_duplicates(
    store: LocalStore,
    summaries: SummaryBuilder,
    tolerance: timedelta = timedelta(minutes=5),
    date_from: date | None = None,
    date_to: date | None = None,
    dry_run: bool = False,
) -> CleanupResult:
    clusters = await preview_duplicates(store, tolerance, date_from, date_to)
    result = CleanupResult(clusters=len(clusters))
    touched: list[tuple[int, date]] = []

    for cluster in clusters:
        for member in cluster.members[1:]:
            record = member.record
            if record.sync_status != "pending" or record.source != "local":
                result.skipped_synced += 1
                continue
            if dry_run:
                result.deleted += 1
                continue
            if await store.delete_record(record.id) is not None:
                result.deleted += 1
                touched.append(record.day_key)

    if touched:
        rebuilt = await summaries.rebuild_days(touched)
        result.summaries_rebuilt = len(rebuilt)

    logger.info(
        "Duplicate cleanup: %d clusters, %d removed, %d synced copies left for reconciliation",
        result.clusters, result.deleted, result.skipped_synced,
    )
    return result
