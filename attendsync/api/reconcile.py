from fastapi import APIRouter, Depends

from attendsync.core.middleware import get_sync_engine, raise_if_locked
from attendsync.schemas.sync import ApplyActionsRequest, CompareRequest, OperationResult
from attendsync.services.engine import SyncEngine

router = APIRouter()


@router.post(
    "/compare",
    response_model=OperationResult,
    summary="Compare local records with the server for a date range",
)
async def compare(
    body: CompareRequest,
    engine: SyncEngine = Depends(get_sync_engine),
) -> OperationResult:
    return await engine.compare(body.start_date, body.end_date)


@router.post(
    "/apply",
    response_model=OperationResult,
    summary="Apply reconciliation actions chosen by the operator",
)
async def apply_actions(
    body: ApplyActionsRequest,
    engine: SyncEngine = Depends(get_sync_engine),
) -> OperationResult:
    result = await engine.apply_selected_actions(body.actions, silent=body.silent)
    return raise_if_locked(result)
