"""In-process sync bookkeeping.  Rebuilt from the store on start-up, never persisted."""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from attendsync.db.store import LocalStore

logger = logging.getLogger(__name__)


@dataclass
class SyncCursor:
    last_push: dict[str, datetime] = field(default_factory=dict)
    last_pull: datetime | None = None
    # "YYYY-MM-DD HH:MM" of the last checkpoint that fired
    last_checkpoint_key: str | None = None
    pending_attendance: int = 0
    pending_summary: int = 0

    def mark_pushed(self, kind: str, at: datetime | None = None) -> None:
        self.last_push[kind] = at or datetime.now()

    async def rebuild(self, store: LocalStore) -> None:
        self.pending_attendance = await store.get_unsynced_count("attendance")
        self.pending_summary = await store.get_unsynced_count("summary")
        logger.info(
            "Sync cursor rebuilt: %d pending attendance, %d pending summaries",
            self.pending_attendance, self.pending_summary,
        )

    def snapshot(self) -> dict[str, Any]:
        data = asdict(self)
        data["last_push"] = {k: v.isoformat() for k, v in self.last_push.items()}
        data["last_pull"] = self.last_pull.isoformat() if self.last_pull else None
        return data
