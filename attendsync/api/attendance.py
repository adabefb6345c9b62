import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status

from attendsync.core.exceptions import RecordValidationError
from attendsync.core.middleware import get_sync_engine, raise_if_locked
from attendsync.schemas.attendance import AttendanceRecord, ClockEventRequest, DailySummary, SyncStatus
from attendsync.schemas.sync import OperationResult, ValidateRequest
from attendsync.services.engine import SyncEngine

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/clock",
    response_model=AttendanceRecord,
    status_code=status.HTTP_201_CREATED,
    summary="Record a clock-in or clock-out",
)
async def clock_event(
    body: ClockEventRequest,
    engine: SyncEngine = Depends(get_sync_engine),
) -> AttendanceRecord:
    try:
        return await engine.record_clock_event(body.employee_id, body.clock_type, body.clock_time)
    except RecordValidationError as exc:
        logger.warning("Rejected %s for employee %d: %s", body.clock_type, body.employee_id, exc)
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(exc),
        )


@router.get("/", response_model=list[AttendanceRecord], summary="List local attendance records")
async def list_attendance(
    date_from: date | None = Query(default=None, description="ISO date YYYY-MM-DD"),
    date_to: date | None = Query(default=None, description="ISO date YYYY-MM-DD"),
    employee_id: int | None = Query(default=None),
    sync_status: SyncStatus | None = Query(default=None),
    engine: SyncEngine = Depends(get_sync_engine),
) -> list[AttendanceRecord]:
    return await engine.store.list_records(date_from, date_to, employee_id, sync_status)


@router.get("/summary", response_model=list[DailySummary], summary="List daily summaries")
async def list_summaries(
    date_from: date | None = Query(default=None, description="ISO date YYYY-MM-DD"),
    date_to: date | None = Query(default=None, description="ISO date YYYY-MM-DD"),
    employee_id: int | None = Query(default=None),
    engine: SyncEngine = Depends(get_sync_engine),
) -> list[DailySummary]:
    return await engine.store.list_summaries(date_from, date_to, employee_id)


@router.post(
    "/validate",
    response_model=OperationResult,
    summary="Recompute hours and correct drifted records",
)
async def validate(
    body: ValidateRequest,
    engine: SyncEngine = Depends(get_sync_engine),
) -> OperationResult:
    result = await engine.validate(
        body.date_from,
        body.date_to,
        body.employee_id,
        auto_correct=body.auto_correct,
        apply_8_hour_rule=body.apply_8_hour_rule,
    )
    return raise_if_locked(result)


@router.get(
    "/duplicates",
    response_model=OperationResult,
    summary="List suspected duplicate scans",
)
async def list_duplicates(
    date_from: date | None = Query(default=None, description="ISO date YYYY-MM-DD"),
    date_to: date | None = Query(default=None, description="ISO date YYYY-MM-DD"),
    employee_id: int | None = Query(default=None),
    engine: SyncEngine = Depends(get_sync_engine),
) -> OperationResult:
    return await engine.duplicates(date_from, date_to, employee_id)


@router.post(
    "/duplicates/cleanup",
    response_model=OperationResult,
    summary="Remove pending duplicate scans, keeping the earliest",
)
async def cleanup_duplicates(
    date_from: date | None = Query(default=None, description="ISO date YYYY-MM-DD"),
    date_to: date | None = Query(default=None, description="ISO date YYYY-MM-DD"),
    dry_run: bool = Query(default=False),
    engine: SyncEngine = Depends(get_sync_engine),
) -> OperationResult:
    result = await engine.cleanup_duplicates(date_from, date_to, dry_run=dry_run)
    return raise_if_locked(result)
