"""
Remove duplicate scans from the local replica.

Keeps the earliest record of each cluster and deletes the pending local
copies.  Without --apply only the clusters are listed.

Usage (same env as the service):
    python -m attendsync.db.cleanup_duplicates [--apply] [--tolerance 5]
"""

import argparse
import asyncio
from datetime import timedelta

from attendsync.core.config import settings
from attendsync.db.session import AsyncSessionLocal
from attendsync.db.store import LocalStore
from attendsync.services.duplicates import preview_duplicates, remove_duplicates
from attendsync.services.summary import SummaryBuilder


async def main(apply: bool, tolerance_minutes: int) -> None:
    store = LocalStore(AsyncSessionLocal)
    tolerance = timedelta(minutes=tolerance_minutes)

    clusters = await preview_duplicates(store, tolerance)
    if not clusters:
        print("No duplicate scans found.")
        return

    for cluster in clusters:
        ids = ", ".join(str(m.record.id) for m in cluster.members)
        print(
            f"employee {cluster.employee_id} {cluster.date} {cluster.clock_type}: "
            f"{len(cluster.members)} scans between {cluster.first_time:%H:%M:%S} "
            f"and {cluster.last_time:%H:%M:%S} (ids {ids})"
        )

    if not apply:
        print(f"{len(clusters)} clusters found. Re-run with --apply to remove the extra scans.")
        return

    result = await remove_duplicates(store, SummaryBuilder(store), tolerance)
    print(
        f"Removed {result.deleted} duplicates, rebuilt {result.summaries_rebuilt} summaries; "
        f"{result.skipped_synced} synced copies left for reconciliation."
    )


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--apply", action="store_true", help="delete the extra scans")
    parser.add_argument(
        "--tolerance",
        type=int,
        default=settings.DUPLICATE_TOLERANCE_MINUTES,
        help="cluster window in minutes",
    )
    args = parser.parse_args()
    asyncio.run(main(args.apply, args.tolerance))
