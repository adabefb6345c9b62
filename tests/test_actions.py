"""
Action executor.

Tests:
  - test_each_action_type                      : add / update / delete / keep
  - test_added_record_past_cap_is_corrected   : re-validation moves excess to overtime
  - test_failures_are_collected_not_fatal      : bad actions reported, good ones applied
  - test_touched_days_rebuilt_and_uploaded     : summaries regenerated and pushed
  - test_upload_failure_keeps_local_changes    : summaries stay pending when offline
  - test_apply_goes_through_lock               : rejected while another pipeline runs
"""

from __future__ import annotations

import pytest

from attendsync.schemas.sync import ReconciliationAction
from factories import DAY, EMPLOYEE, at, make_record


async def _seed(store):
    await store.add_record(make_record(1, "morning_in", "08:00", sync_status="synced"))
    await store.add_record(make_record(2, "morning_out", "12:00", regular_hours=4.0, sync_status="synced"))
    await store.add_record(make_record(5, "evening_in", "18:00", sync_status="synced", is_overtime_session=True))
    await store.add_record(make_record(-1, "afternoon_in", "13:00"))


async def test_each_action_type(engine, store):
    await _seed(store)
    await store.mark_synced("attendance", [-1])
    actions = [
        ReconciliationAction(
            type="add_from_server",
            record_id=3,
            payload=make_record(3, "afternoon_out", "16:30", regular_hours=3.5),
        ),
        ReconciliationAction(
            type="update_from_server",
            record_id=2,
            payload=make_record(2, "morning_out", "12:30", regular_hours=4.5),
        ),
        ReconciliationAction(type="delete_local", record_id=5),
        ReconciliationAction(type="keep_local", record_id=-1),
    ]

    result = await engine.executor.apply(actions)

    assert result.errors == []
    assert (result.added, result.updated, result.deleted, result.kept) == (1, 1, 1, 1)

    added = await store.get_record(3)
    assert added.source == "server" and added.sync_status == "synced"
    assert added.regular_hours == pytest.approx(3.5)
    updated = await store.get_record(2)
    assert updated.clock_time == at("12:30")
    assert updated.regular_hours == pytest.approx(4.5)
    assert await store.get_record(5) is None
    assert (await store.get_record(-1)).sync_status == "pending"


async def test_added_record_past_cap_is_corrected(engine, store):
    await _seed(store)
    await store.update_record(2, regular_hours=4.5, clock_time=at("12:30"))
    result = await engine.executor.apply(
        [
            ReconciliationAction(
                type="add_from_server",
                record_id=3,
                payload=make_record(3, "afternoon_out", "17:00", regular_hours=4.0),
            )
        ]
    )

    assert result.errors == []
    corrected = await store.get_record(3)
    assert corrected.regular_hours == pytest.approx(3.5)
    assert corrected.overtime_hours == pytest.approx(0.5)
    assert corrected.sync_status == "pending"

async def test_failures_are_collected_not_fatal(engine, store):
    await _seed(store)
    actions = [
        ReconciliationAction(
            type="add_from_server",
            record_id=1,
            payload=make_record(1, "morning_in", "08:00"),
        ),
        ReconciliationAction(type="delete_local", record_id=404),
        ReconciliationAction(type="update_from_server", record_id=2),
        ReconciliationAction(type="delete_local", record_id=5),
    ]

    result = await engine.executor.apply(actions)

    assert result.deleted == 1
    assert len(result.errors) == 3
    assert result.errors[0].startswith("add_from_server #1:")
    assert "delete_local #404" in result.errors[1]
    assert "payload missing" in result.errors[2]


async def test_touched_days_rebuilt_and_uploaded(engine, store, remote):
    await _seed(store)
    result = await engine.executor.apply(
        [
            ReconciliationAction(
                type="add_from_server",
                record_id=3,
                payload=make_record(3, "afternoon_out", "17:00", regular_hours=4.0),
            )
        ]
    )

    assert result.summaries_rebuilt == 1
    assert result.summaries_uploaded == 1
    summary = await store.get_summary(EMPLOYEE, DAY)
    assert summary.afternoon_out == at("17:00")
    assert summary.sync_status == "synced"
    assert remote.summary_pushes == [[(EMPLOYEE, DAY)]]


async def test_upload_failure_keeps_local_changes(engine, store, remote):
    await _seed(store)
    remote.offline = True

    result = await engine.executor.apply(
        [ReconciliationAction(type="delete_local", record_id=5)]
    )

    assert result.success is False
    assert result.deleted == 1
    assert await store.get_record(5) is None
    assert (await store.get_summary(EMPLOYEE, DAY)).sync_status == "pending"


async def test_apply_goes_through_lock(engine, store):
    await _seed(store)
    async with engine.lock.hold("upload"):
        result = await engine.apply_selected_actions(
            [ReconciliationAction(type="delete_local", record_id=5)]
        )
    assert result.success is False
    assert result.error == "processing lock active"
    assert await store.get_record(5) is not None

    result = await engine.apply_selected_actions(
        [ReconciliationAction(type="delete_local", record_id=5)]
    )
    assert result.success is True
    assert result.counts["deleted"] == 1
