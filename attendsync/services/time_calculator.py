"""
Pure attendance time rules.

Pairs clock-in/clock-out events per session, computes worked hours, applies
the 8-hour regular cap and the late-entry grace period.  No I/O here; the
validation engine and the summary builder both build on these helpers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, time
from typing import Iterable

from attendsync.core.config import Settings, parse_clock, settings
from attendsync.schemas.attendance import AttendanceRecord

SESSIONS: tuple[str, ...] = ("morning", "afternoon", "evening", "overtime")
REGULAR_SESSIONS: frozenset[str] = frozenset({"morning", "afternoon"})
OVERTIME_SESSIONS: frozenset[str] = frozenset({"evening", "overtime"})

# Allowed rounding drift before a stored value counts as different
HOURS_TOLERANCE = 0.01


def session_of(clock_type: str) -> str:
    session, _, direction = clock_type.rpartition("_")
    if session not in SESSIONS or direction not in ("in", "out"):
        raise ValueError(f"Unknown clock type '{clock_type}'")
    return session


def is_overtime_clock_type(clock_type: str) -> bool:
    return session_of(clock_type) in OVERTIME_SESSIONS


def round_hours(value: float) -> float:
    return round(value, 2)


@dataclass(frozen=True)
class SessionSchedule:
    """Scheduled start per session plus the grace period for lateness."""

    starts: dict[str, time]
    grace_minutes: int = 5
    regular_cap: float = 8.0

    @classmethod
    def from_settings(cls, cfg: Settings | None = None) -> "SessionSchedule":
        cfg = cfg or settings
        return cls(
            starts={
                "morning": parse_clock(cfg.MORNING_START),
                "afternoon": parse_clock(cfg.AFTERNOON_START),
                "evening": parse_clock(cfg.EVENING_START),
            },
            grace_minutes=cfg.GRACE_PERIOD_MINUTES,
            regular_cap=cfg.REGULAR_HOURS_CAP,
        )


def is_late(session: str, clock_in: datetime, schedule: SessionSchedule) -> bool:
    """
    True when a clock-in is past the session's scheduled start plus grace.

    Lateness is minute-granular: with an 08:00 start and 5 minutes grace,
    08:05:59 is on time and 08:06 is late.  Sessions without a scheduled
    start (overtime) are never late.
    """
    start = schedule.starts.get(session)
    if start is None:
        return False
    in_minutes = clock_in.hour * 60 + clock_in.minute
    start_minutes = start.hour * 60 + start.minute
    return in_minutes - start_minutes > schedule.grace_minutes


@dataclass
class SessionPair:
    session: str
    clock_in: AttendanceRecord | None
    clock_out: AttendanceRecord | None

    @property
    def is_complete(self) -> bool:
        return self.clock_in is not None and self.clock_out is not None

    @property
    def worked_hours(self) -> float:
        if not self.is_complete:
            return 0.0
        seconds = (self.clock_out.clock_time - self.clock_in.clock_time).total_seconds()
        return max(seconds, 0.0) / 3600


@dataclass
class DayPairing:
    pairs: list[SessionPair] = field(default_factory=list)

    @property
    def complete(self) -> list[SessionPair]:
        return [p for p in self.pairs if p.is_complete]

    @property
    def open_ins(self) -> list[SessionPair]:
        return [p for p in self.pairs if p.clock_out is None]

    @property
    def orphan_outs(self) -> list[SessionPair]:
        return [p for p in self.pairs if p.clock_in is None]


def pair_records(records: Iterable[AttendanceRecord]) -> DayPairing:
    """
    Pair each ``_in`` with the next unmatched ``_out`` of the same session.

    Records are walked in clock_time order.  A second ``_in`` while a session
    is still open leaves the first one open (it stays unmatched); an ``_out``
    always closes the most recent open ``_in`` of its session.
    """
    pairing = DayPairing()
    open_stack: dict[str, list[SessionPair]] = {s: [] for s in SESSIONS}

    for record in sorted(records, key=lambda r: (r.clock_time, r.id)):
        session = session_of(record.clock_type)
        if record.is_clock_in:
            pair = SessionPair(session=session, clock_in=record, clock_out=None)
            pairing.pairs.append(pair)
            open_stack[session].append(pair)
        elif open_stack[session]:
            pair = open_stack[session].pop()
            pair.clock_out = record
        else:
            pairing.pairs.append(SessionPair(session=session, clock_in=None, clock_out=record))

    return pairing


@dataclass(frozen=True)
class ExpectedHours:
    regular_hours: float
    overtime_hours: float


def expected_hours(
    records: Iterable[AttendanceRecord],
    schedule: SessionSchedule,
    apply_8_hour_rule: bool = True,
) -> tuple[dict[int, ExpectedHours], DayPairing]:
    """
    Expected regular/overtime hours per record id for one employee-day.

    Hours live on the ``_out`` record of each complete pair; ``_in`` records
    and unmatched records carry zero.  Regular-session time is accumulated in
    chronological order and, with the 8-hour rule on, anything past the cap
    is moved to the overtime of the pair that crossed it.  Evening and
    overtime sessions are overtime from the start and never capped.
    """
    records = list(records)
    pairing = pair_records(records)
    result: dict[int, ExpectedHours] = {r.id: ExpectedHours(0.0, 0.0) for r in records}

    regular_so_far = 0.0
    for pair in sorted(pairing.complete, key=lambda p: p.clock_out.clock_time):
        worked = pair.worked_hours
        if pair.session in OVERTIME_SESSIONS:
            regular, overtime = 0.0, worked
        elif apply_8_hour_rule:
            room = max(schedule.regular_cap - regular_so_far, 0.0)
            regular = min(worked, room)
            overtime = worked - regular
            regular_so_far += regular
        else:
            regular, overtime = worked, 0.0
            regular_so_far += worked

        result[pair.clock_out.id] = ExpectedHours(round_hours(regular), round_hours(overtime))

    return result, pairing


def hours_differ(record: AttendanceRecord, expected: ExpectedHours) -> bool:
    return (
        abs((record.regular_hours or 0.0) - expected.regular_hours) > HOURS_TOLERANCE
        or abs((record.overtime_hours or 0.0) - expected.overtime_hours) > HOURS_TOLERANCE
    )
