from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

ClockType = Literal[
    "morning_in",
    "morning_out",
    "afternoon_in",
    "afternoon_out",
    "evening_in",
    "evening_out",
    "overtime_in",
    "overtime_out",
]
SyncStatus = Literal["pending", "synced"]
RecordSource = Literal["local", "server"]

# Alias so the `date` field name does not shadow the type inside class bodies
Day = date


class AttendanceRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    employee_id: int
    clock_type: ClockType
    clock_time: datetime
    date: Day | None = None
    regular_hours: float = 0.0
    overtime_hours: float = 0.0
    is_overtime_session: bool = False
    sync_status: SyncStatus = "pending"
    source: RecordSource = "local"

    @field_validator("clock_time")
    @classmethod
    def local_wall_clock(cls, v: datetime) -> datetime:
        # Stored as naive local time, the way the kiosk clock reads it
        if v.tzinfo is not None:
            return v.astimezone().replace(tzinfo=None)
        return v

    @model_validator(mode="after")
    def derive_date(self) -> "AttendanceRecord":
        # The record's day is always the day of its clock_time
        self.date = self.clock_time.date()
        return self

    @property
    def session(self) -> str:
        return self.clock_type.rsplit("_", 1)[0]

    @property
    def is_clock_in(self) -> bool:
        return self.clock_type.endswith("_in")

    @property
    def day_key(self) -> tuple[int, Day]:
        return (self.employee_id, self.clock_time.date())


class DailySummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    employee_id: int
    date: date
    first_clock_in: datetime | None = None
    last_clock_out: datetime | None = None
    morning_in: datetime | None = None
    morning_out: datetime | None = None
    afternoon_in: datetime | None = None
    afternoon_out: datetime | None = None
    evening_in: datetime | None = None
    evening_out: datetime | None = None
    overtime_in: datetime | None = None
    overtime_out: datetime | None = None
    regular_hours: float = 0.0
    overtime_hours: float = 0.0
    total_hours: float = 0.0
    has_late_entry: bool = False
    is_incomplete: bool = False
    total_sessions: int = 0
    completed_sessions: int = 0
    pending_sessions: int = 0
    sync_status: SyncStatus = "pending"


class ClockEventRequest(BaseModel):
    employee_id: int
    clock_type: ClockType
    clock_time: datetime | None = None
