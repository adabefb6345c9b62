from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from attendsync.schemas.attendance import AttendanceRecord, DailySummary

ActionType = Literal["add_from_server", "update_from_server", "delete_local", "keep_local"]


class OperationResult(BaseModel):
    """Uniform shape returned by every entry point exposed to the UI layer."""

    success: bool
    message: str | None = None
    error: str | None = None
    counts: dict[str, int] = Field(default_factory=dict)
    data: Any = None


# --- Remote client contract ---


class PushResult(BaseModel):
    success: bool
    count: int = 0
    # Set by the server when only part of the batch was stored
    accepted_ids: list[int] | None = None
    # Provisional local id -> server-assigned id
    id_map: dict[int, int] = Field(default_factory=dict)
    message: str | None = None


class ServerEdits(BaseModel):
    updated: list[AttendanceRecord] = Field(default_factory=list)
    deleted_ids: list[int] = Field(default_factory=list)


class FullRange(BaseModel):
    attendance: list[AttendanceRecord] = Field(default_factory=list)
    summary: list[DailySummary] = Field(default_factory=list)


# --- Pipeline results ---


class Correction(BaseModel):
    record_id: int
    employee_id: int
    date: date
    clock_type: str
    original_regular: float
    original_overtime: float
    corrected_regular: float
    corrected_overtime: float


class ValidationResult(BaseModel):
    total_records: int = 0
    valid_records: int = 0
    corrected_records: int = 0
    error_records: int = 0
    late_entries: int = 0
    corrections: list[Correction] = Field(default_factory=list)
    affected_days: list[tuple[int, date]] = Field(default_factory=list)

    def merge(self, other: "ValidationResult") -> None:
        self.total_records += other.total_records
        self.valid_records += other.valid_records
        self.corrected_records += other.corrected_records
        self.error_records += other.error_records
        self.late_entries += other.late_entries
        self.corrections.extend(other.corrections)
        for key in other.affected_days:
            if key not in self.affected_days:
                self.affected_days.append(key)


class UploadResult(BaseModel):
    success: bool = True
    attendance_synced: int = 0
    summary_synced: int = 0
    corrected_records: int = 0
    error: str | None = None


class ServerEditResult(BaseModel):
    success: bool = True
    applied: int = 0
    deleted: int = 0
    corrected: int = 0
    summaries_regenerated: int = 0
    summaries_uploaded: int = 0
    errors: list[str] = Field(default_factory=list)
    error: str | None = None


class ReconciliationAction(BaseModel):
    type: ActionType
    record_id: int
    payload: AttendanceRecord | None = None


class FieldDiff(BaseModel):
    field: str
    server: Any
    local: Any


class DifferentRecord(BaseModel):
    record_id: int
    local: AttendanceRecord
    server: AttendanceRecord
    diffs: list[FieldDiff]


class DuplicateMember(BaseModel):
    record: AttendanceRecord
    side: Literal["local", "server"]


class DuplicateCluster(BaseModel):
    employee_id: int
    date: date
    clock_type: str
    first_time: datetime
    last_time: datetime
    members: list[DuplicateMember]


class ComparisonResult(BaseModel):
    start_date: date
    end_date: date
    server_only: list[AttendanceRecord] = Field(default_factory=list)
    local_only: list[AttendanceRecord] = Field(default_factory=list)
    different: list[DifferentRecord] = Field(default_factory=list)
    identical: list[AttendanceRecord] = Field(default_factory=list)
    duplicates: list[DuplicateCluster] = Field(default_factory=list)
    proposed_actions: list[ReconciliationAction] = Field(default_factory=list)


class ActionResult(BaseModel):
    success: bool = True
    added: int = 0
    updated: int = 0
    deleted: int = 0
    kept: int = 0
    summaries_rebuilt: int = 0
    summaries_uploaded: int = 0
    errors: list[str] = Field(default_factory=list)
    error: str | None = None


class CleanupResult(BaseModel):
    clusters: int = 0
    deleted: int = 0
    skipped_synced: int = 0
    summaries_rebuilt: int = 0


# --- Request bodies for the HTTP surface ---


class SyncRequest(BaseModel):
    silent: bool = False
    show_progress: bool = False


class CompareRequest(BaseModel):
    start_date: date
    end_date: date


class ApplyActionsRequest(BaseModel):
    actions: list[ReconciliationAction]
    silent: bool = False


class ValidateRequest(BaseModel):
    date_from: date | None = None
    date_to: date | None = None
    employee_id: int | None = None
    auto_correct: bool = True
    apply_8_hour_rule: bool | None = None
