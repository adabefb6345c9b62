"""
HTTP surface.

Tests:
  - test_health                         : GET /health → {"status": "ok"}
  - test_engine_missing_returns_503     : routes need a running engine
  - TestClockRoutes                     : POST /api/attendance/clock, listing, summaries
  - TestSyncRoutes                      : /api/sync/now, /server-edits, /status, /history, /cancel
  - TestReconcileRoutes                 : /api/reconcile/compare and /apply
  - TestMaintenanceRoutes               : /api/attendance/validate and /duplicates
"""

from __future__ import annotations

from httpx import AsyncClient

from attendsync.main import app
from factories import DAY, EMPLOYEE, full_day, make_record

DAY_PARAMS = {"date_from": DAY.isoformat(), "date_to": DAY.isoformat()}


# ---------------------------------------------------------------------------
# System
# ---------------------------------------------------------------------------


async def test_health(client: AsyncClient):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


async def test_engine_missing_returns_503(client: AsyncClient):
    engine = app.state.sync_engine
    app.state.sync_engine = None
    try:
        resp = await client.get("/api/sync/status")
    finally:
        app.state.sync_engine = engine
    assert resp.status_code == 503


# ---------------------------------------------------------------------------
# Clock events
# ---------------------------------------------------------------------------


class TestClockRoutes:
    async def test_clock_in_is_created(self, client: AsyncClient):
        resp = await client.post(
            "/api/attendance/clock",
            json={"employee_id": EMPLOYEE, "clock_type": "morning_in", "clock_time": "2026-03-02T08:00:00"},
        )
        assert resp.status_code == 201
        body = resp.json()
        assert body["id"] < 0
        assert body["date"] == "2026-03-02"
        assert body["sync_status"] == "pending"

    async def test_duplicate_clock_in_is_rejected(self, client: AsyncClient):
        payload = {"employee_id": EMPLOYEE, "clock_type": "morning_in", "clock_time": "2026-03-02T08:00:00"}
        assert (await client.post("/api/attendance/clock", json=payload)).status_code == 201

        resp = await client.post("/api/attendance/clock", json=payload)
        assert resp.status_code == 422
        assert "already open" in resp.json()["detail"]

    async def test_clock_out_without_in_is_rejected(self, client: AsyncClient):
        resp = await client.post(
            "/api/attendance/clock",
            json={"employee_id": EMPLOYEE, "clock_type": "morning_out", "clock_time": "2026-03-02T12:00:00"},
        )
        assert resp.status_code == 422

    async def test_unknown_clock_type_fails_validation(self, client: AsyncClient):
        resp = await client.post(
            "/api/attendance/clock",
            json={"employee_id": EMPLOYEE, "clock_type": "lunch_in"},
        )
        assert resp.status_code == 422

    async def test_list_records_and_summaries(self, client: AsyncClient, store):
        for record in full_day(-1, step=-1):
            await store.add_record(record)
        await client.post(
            "/api/attendance/clock",
            json={"employee_id": EMPLOYEE, "clock_type": "evening_in", "clock_time": "2026-03-02T18:00:00"},
        )

        records = (await client.get("/api/attendance/", params=DAY_PARAMS)).json()
        assert len(records) == 5

        synced = (await client.get("/api/attendance/", params={"sync_status": "synced"})).json()
        assert synced == []

        summaries = (await client.get("/api/attendance/summary", params={"employee_id": EMPLOYEE})).json()
        assert len(summaries) == 1
        assert summaries[0]["regular_hours"] == 8.0
        assert summaries[0]["pending_sessions"] == 1


# ---------------------------------------------------------------------------
# Sync control
# ---------------------------------------------------------------------------


class TestSyncRoutes:
    async def test_sync_now_uploads(self, client: AsyncClient, store, remote):
        for record in full_day(-1, step=-1):
            await store.add_record(record)

        resp = await client.post("/api/sync/now", json={"silent": True})

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["counts"]["attendance_synced"] == 4
        assert sorted(remote.attendance) == [-4, -3, -2, -1]

    async def test_sync_now_while_locked_returns_409(self, client: AsyncClient, engine):
        async with engine.lock.hold("server-edits"):
            resp = await client.post("/api/sync/now")
        assert resp.status_code == 409

    async def test_sync_now_offline_is_reported_not_raised(self, client: AsyncClient, store, remote):
        await store.add_record(make_record(-1, "morning_in", "08:00"))
        remote.offline = True

        resp = await client.post("/api/sync/now")

        assert resp.status_code == 200
        assert resp.json()["success"] is False
        assert "unreachable" in resp.json()["error"]

    async def test_server_edits_route(self, client: AsyncClient, store, remote):
        record = make_record(1, "morning_in", "08:00", sync_status="synced")
        await store.add_record(record)
        remote.attendance[1] = record
        remote.edit(1, clock_time=record.clock_time.replace(minute=10))

        resp = await client.post("/api/sync/server-edits")

        assert resp.status_code == 200
        assert resp.json()["counts"]["applied"] == 1

    async def test_status_and_history(self, client: AsyncClient, store):
        await store.add_record(make_record(-1, "morning_in", "08:00"))

        status = (await client.get("/api/sync/status")).json()
        assert status["counts"]["pending_attendance"] == 1
        assert status["data"]["lock_active"] is False
        assert status["data"]["checkpoints"] == ["08:30", "12:30", "13:30", "17:30"]

        await client.post("/api/sync/now")
        history = (await client.get("/api/sync/history", params={"limit": 5})).json()
        assert history["data"][0]["pipeline"] == "upload"
        assert history["data"][0]["status"] == "success"

    async def test_cancel_without_running_pipeline(self, client: AsyncClient):
        resp = await client.post("/api/sync/cancel")
        assert resp.json() == {"cancel_requested": False}


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------


class TestReconcileRoutes:
    async def test_compare_and_apply(self, client: AsyncClient, store, remote):
        await store.add_record(make_record(1, "morning_in", "08:00", sync_status="synced"))
        remote.attendance = {
            1: make_record(1, "morning_in", "08:00", sync_status="synced", source="server"),
            2: make_record(2, "morning_out", "12:00", regular_hours=4.0, sync_status="synced"),
        }

        resp = await client.post(
            "/api/reconcile/compare",
            json={"start_date": DAY.isoformat(), "end_date": DAY.isoformat()},
        )
        body = resp.json()
        assert body["counts"]["server_only"] == 1
        assert body["counts"]["identical"] == 1
        actions = body["data"]["proposed_actions"]
        assert [(a["type"], a["record_id"]) for a in actions] == [("add_from_server", 2)]

        resp = await client.post("/api/reconcile/apply", json={"actions": actions})

        assert resp.status_code == 200
        assert resp.json()["counts"]["added"] == 1
        assert (await store.get_record(2)).source == "server"

    async def test_compare_inverted_range(self, client: AsyncClient):
        resp = await client.post(
            "/api/reconcile/compare",
            json={"start_date": "2026-03-05", "end_date": "2026-03-01"},
        )
        assert resp.status_code == 200
        assert resp.json()["success"] is False

    async def test_apply_while_locked_returns_409(self, client: AsyncClient, engine):
        async with engine.lock.hold("upload"):
            resp = await client.post(
                "/api/reconcile/apply",
                json={"actions": [{"type": "delete_local", "record_id": 5}]},
            )
        assert resp.status_code == 409


# ---------------------------------------------------------------------------
# Validation and duplicates
# ---------------------------------------------------------------------------


class TestMaintenanceRoutes:
    async def test_validate_corrects_hours(self, client: AsyncClient, store):
        records = full_day(1, sync_status="synced")
        records[1] = records[1].model_copy(update={"regular_hours": 3.0})
        for record in records:
            await store.add_record(record)

        resp = await client.post("/api/attendance/validate", json={})

        assert resp.status_code == 200
        assert resp.json()["counts"]["corrected_records"] == 1
        fixed = await store.get_record(2)
        assert fixed.regular_hours == 4.0
        assert fixed.sync_status == "pending"

    async def test_validate_uses_configured_8_hour_rule(self, client: AsyncClient, engine, store):
        engine.cfg = engine.cfg.model_copy(update={"APPLY_8_HOUR_RULE": False})
        for record in [
            make_record(1, "morning_in", "08:00", sync_status="synced"),
            make_record(2, "morning_out", "12:00", regular_hours=4.0, sync_status="synced"),
            make_record(3, "afternoon_in", "13:00", sync_status="synced"),
            make_record(4, "afternoon_out", "18:00", regular_hours=5.0, sync_status="synced"),
        ]:
            await store.add_record(record)

        resp = await client.post("/api/attendance/validate", json={})
        assert resp.json()["counts"]["corrected_records"] == 0

        resp = await client.post("/api/attendance/validate", json={"apply_8_hour_rule": True})
        assert resp.json()["counts"]["corrected_records"] == 1
        capped = await store.get_record(4)
        assert capped.regular_hours == 4.0
        assert capped.overtime_hours == 1.0

    async def test_validate_report_only_ignores_lock(self, client: AsyncClient, engine):
        async with engine.lock.hold("upload"):
            resp = await client.post("/api/attendance/validate", json={"auto_correct": False})
            locked = await client.post("/api/attendance/validate", json={})
        assert resp.status_code == 200
        assert locked.status_code == 409

    async def test_duplicates_preview_and_cleanup(self, client: AsyncClient, store):
        await store.add_record(make_record(-1, "morning_in", "08:00"))
        await store.add_record(make_record(-2, "morning_in", "08:02"))

        preview = (await client.get("/api/attendance/duplicates", params=DAY_PARAMS)).json()
        assert preview["counts"]["clusters"] == 1
        assert [m["record"]["id"] for m in preview["data"][0]["members"]] == [-1, -2]

        resp = await client.post("/api/attendance/duplicates/cleanup", params={"dry_run": "false"})
        assert resp.json()["counts"]["deleted"] == 1
        assert [r.id for r in await store.list_records()] == [-1]
