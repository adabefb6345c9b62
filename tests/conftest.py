"""
conftest.py: shared fixtures for the sync core tests.

Strategy:
- Every test gets its own in-memory SQLite database (StaticPool keeps the
  single connection alive), created straight from the ORM metadata.
- The remote server is replaced by FakeRemoteServer, an in-memory RemoteClient
  that behaves like the real one: it stores what it is sent, drops its own
  summary when a record is edited server-side, and can be switched offline.
- The HTTP client fixture talks to the FastAPI app through ASGITransport with
  a test SyncEngine installed on app.state (lifespan is not run).
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Awaitable, Callable

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from attendsync.core.config import Settings
from attendsync.core.exceptions import NetworkError
from attendsync.db.models import Base
from attendsync.db.store import LocalStore
from attendsync.main import app
from attendsync.schemas.attendance import AttendanceRecord, DailySummary
from attendsync.schemas.sync import FullRange, PushResult, ServerEdits
from attendsync.services.engine import SyncEngine
from attendsync.services.remote import RemoteClient
from attendsync.services.time_calculator import SessionSchedule

# ---------------------------------------------------------------------------
# Fake remote server
# ---------------------------------------------------------------------------


class FakeRemoteServer(RemoteClient):
    def __init__(self) -> None:
        self.attendance: dict[int, AttendanceRecord] = {}
        self.summaries: dict[tuple[int, date], DailySummary] = {}
        self.pending_edits: dict[int, AttendanceRecord] = {}
        self.pending_deletes: list[int] = []

        self.offline = False
        self.reject_summaries = False
        # When set, only these ids are reported as accepted
        self.accept_only: set[int] | None = None
        # When set, provisional (negative) ids get server ids from this counter
        self.next_server_id: int | None = None
        # Awaited inside push_attendance before anything is stored
        self.before_push: Callable[[list[AttendanceRecord]], Awaitable[None]] | None = None

        self.attendance_pushes: list[list[int]] = []
        self.summary_pushes: list[list[tuple[int, date]]] = []
        self.pull_since: list[datetime | None] = []
        self.acknowledged: list[tuple[list[int], list[int]]] = []
        self.closed = False

    def _check_online(self) -> None:
        if self.offline:
            raise NetworkError("Remote server unreachable: offline")

    async def push_attendance(self, records: list[AttendanceRecord]) -> PushResult:
        self._check_online()
        if self.before_push is not None:
            await self.before_push(records)
        self.attendance_pushes.append([r.id for r in records])

        accepted: list[int] = []
        id_map: dict[int, int] = {}
        for record in records:
            if self.accept_only is not None and record.id not in self.accept_only:
                continue
            server_id = record.id
            if self.next_server_id is not None and record.id < 0:
                server_id = self.next_server_id
                self.next_server_id += 1
                id_map[record.id] = server_id
            self.attendance[server_id] = record.model_copy(
                update={"id": server_id, "sync_status": "synced", "source": "server"}
            )
            accepted.append(record.id)

        return PushResult(
            success=True,
            count=len(accepted),
            accepted_ids=accepted if self.accept_only is not None else None,
            id_map=id_map,
        )

    async def push_summary(self, summaries: list[DailySummary]) -> PushResult:
        self._check_online()
        if self.reject_summaries:
            return PushResult(success=False, message="summary table locked")
        self.summary_pushes.append([(s.employee_id, s.date) for s in summaries])
        for summary in summaries:
            self.summaries[(summary.employee_id, summary.date)] = summary.model_copy(
                update={"sync_status": "synced"}
            )
        return PushResult(success=True, count=len(summaries))

    async def pull_server_edits(self, since: datetime | None) -> ServerEdits:
        self._check_online()
        self.pull_since.append(since)
        return ServerEdits(
            updated=list(self.pending_edits.values()),
            deleted_ids=list(self.pending_deletes),
        )

    async def pull_full_range(self, start: date, end: date) -> FullRange:
        self._check_online()
        return FullRange(
            attendance=[r for r in self.attendance.values() if start <= r.date <= end],
            summary=[s for k, s in self.summaries.items() if start <= k[1] <= end],
        )

    async def acknowledge_server_edits(self, edited_ids: list[int], deleted_ids: list[int]) -> None:
        self._check_online()
        self.acknowledged.append((edited_ids, deleted_ids))
        for record_id in edited_ids:
            self.pending_edits.pop(record_id, None)
        self.pending_deletes = [i for i in self.pending_deletes if i not in deleted_ids]

    async def aclose(self) -> None:
        self.closed = True

    # --- server-side operations used by tests ---

    def edit(self, record_id: int, **fields) -> AttendanceRecord:
        """Edit a record the way an admin would on the server."""
        previous = self.attendance[record_id]
        updated = AttendanceRecord.model_validate(
            {**previous.model_dump(), **fields, "sync_status": "synced", "source": "server"}
        )
        self.attendance[record_id] = updated
        self.pending_edits[record_id] = updated
        # The server drops its aggregate as soon as it accepts an edit
        self.summaries.pop(previous.day_key, None)
        self.summaries.pop(updated.day_key, None)
        return updated

    def delete(self, record_id: int) -> None:
        previous = self.attendance.pop(record_id)
        self.pending_deletes.append(record_id)
        self.summaries.pop(previous.day_key, None)


# ---------------------------------------------------------------------------
# Database / store
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def sessionmaker():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def store(sessionmaker) -> LocalStore:
    return LocalStore(sessionmaker)


@pytest.fixture
def remote() -> FakeRemoteServer:
    return FakeRemoteServer()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        SETTLE_DELAY_SEC=0,
        SCHEDULER_ENABLED=False,
        RUN_MIGRATIONS_ON_STARTUP=False,
        GRACE_PERIOD_MINUTES=5,
        MORNING_START="08:00",
        AFTERNOON_START="13:00",
        EVENING_START="17:00",
        REGULAR_HOURS_CAP=8.0,
        APPLY_8_HOUR_RULE=True,
        DUPLICATE_TOLERANCE_MINUTES=5,
    )


@pytest.fixture
def schedule(test_settings: Settings) -> SessionSchedule:
    return SessionSchedule.from_settings(test_settings)


@pytest_asyncio.fixture
async def engine(store: LocalStore, remote: FakeRemoteServer, test_settings: Settings) -> SyncEngine:
    sync_engine = SyncEngine(store, remote, test_settings)
    await sync_engine.start(run_scheduler=False)
    yield sync_engine
    await sync_engine.stop()


# ---------------------------------------------------------------------------
# HTTP client fixture
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def client(engine: SyncEngine) -> AsyncClient:
    """HTTPX async client bound to the app with the test engine installed."""
    app.state.sync_engine = engine
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.state.sync_engine = None

