"""
Pure time rules.

Tests:
  - TestPairing         : in/out pairing per session, orphans and open sessions
  - TestExpectedHours   : hours on clock-outs, 8-hour rule, uncapped overtime sessions
  - TestLateness        : grace-period boundary at minute granularity
"""

from __future__ import annotations

from datetime import time

import pytest

from attendsync.services.time_calculator import (
    ExpectedHours,
    SessionSchedule,
    expected_hours,
    hours_differ,
    is_late,
    pair_records,
    session_of,
)
from factories import at, make_record


class TestPairing:
    def test_out_closes_matching_in(self):
        records = [
            make_record(1, "morning_in", "08:00"),
            make_record(2, "morning_out", "12:00"),
        ]
        pairing = pair_records(records)
        assert len(pairing.complete) == 1
        assert pairing.complete[0].worked_hours == pytest.approx(4.0)
        assert pairing.open_ins == []
        assert pairing.orphan_outs == []

    def test_out_without_in_is_orphan(self):
        pairing = pair_records([make_record(5, "afternoon_out", "17:00")])
        assert [p.clock_out.id for p in pairing.orphan_outs] == [5]

    def test_unsorted_input_is_walked_in_time_order(self):
        records = [
            make_record(2, "morning_out", "12:00"),
            make_record(1, "morning_in", "08:00"),
        ]
        assert len(pair_records(records).complete) == 1

    def test_open_session_is_reported(self):
        pairing = pair_records([make_record(1, "evening_in", "17:30")])
        assert [p.session for p in pairing.open_ins] == ["evening"]

    def test_unknown_clock_type_raises(self):
        with pytest.raises(ValueError):
            session_of("lunch_in")


class TestExpectedHours:
    def test_hours_live_on_clock_out(self, schedule):
        records = [
            make_record(1, "morning_in", "08:00"),
            make_record(2, "morning_out", "12:30"),
        ]
        expected, _ = expected_hours(records, schedule)
        assert expected[1] == ExpectedHours(0.0, 0.0)
        assert expected[2] == ExpectedHours(4.5, 0.0)

    def test_nine_regular_hours_cap_at_eight(self, schedule):
        records = [
            make_record(1, "morning_in", "08:00"),
            make_record(2, "morning_out", "12:00"),
            make_record(3, "afternoon_in", "13:00"),
            make_record(4, "afternoon_out", "18:00"),
        ]
        expected, _ = expected_hours(records, schedule)
        regular = sum(e.regular_hours for e in expected.values())
        overtime = sum(e.overtime_hours for e in expected.values())
        assert regular == pytest.approx(8.0)
        assert overtime >= 1.0
        assert expected[4] == ExpectedHours(4.0, 1.0)

    def test_rule_disabled_keeps_all_regular(self, schedule):
        records = [
            make_record(1, "morning_in", "08:00"),
            make_record(2, "morning_out", "12:00"),
            make_record(3, "afternoon_in", "13:00"),
            make_record(4, "afternoon_out", "18:00"),
        ]
        expected, _ = expected_hours(records, schedule, apply_8_hour_rule=False)
        assert expected[4] == ExpectedHours(5.0, 0.0)

    def test_evening_session_is_overtime_and_uncapped(self, schedule):
        records = [
            make_record(1, "evening_in", "17:00"),
            make_record(2, "evening_out", "23:00"),
        ]
        expected, _ = expected_hours(records, schedule)
        assert expected[2] == ExpectedHours(0.0, 6.0)

    def test_orphan_out_gets_no_hours(self, schedule):
        expected, pairing = expected_hours([make_record(9, "morning_out", "12:00")], schedule)
        assert expected[9] == ExpectedHours(0.0, 0.0)
        assert len(pairing.orphan_outs) == 1

    def test_hours_differ_tolerance(self):
        record = make_record(2, "morning_out", "12:00", regular_hours=4.005)
        assert not hours_differ(record, ExpectedHours(4.0, 0.0))
        assert hours_differ(record, ExpectedHours(3.9, 0.0))


class TestLateness:
    @pytest.mark.parametrize(
        "hhmm, late",
        [("08:00", False), ("08:05", False), ("08:05:59", False), ("08:06", True), ("09:30", True)],
    )
    def test_grace_boundary(self, schedule, hhmm, late):
        assert is_late("morning", at(hhmm), schedule) is late

    def test_overtime_has_no_scheduled_start(self, schedule):
        assert is_late("overtime", at("23:00"), schedule) is False

    def test_custom_grace(self):
        schedule = SessionSchedule(starts={"morning": time(8, 0)}, grace_minutes=0)
        assert is_late("morning", at("08:01"), schedule) is True
