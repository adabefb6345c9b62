from fastapi import HTTPException, Request, status

from attendsync.schemas.sync import OperationResult
from attendsync.services.engine import SyncEngine


def get_sync_engine(request: Request) -> SyncEngine:
    engine = getattr(request.app.state, "sync_engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Sync engine is not running",
        )
    return engine


def raise_if_locked(result: OperationResult) -> OperationResult:
    """Map a lock rejection to 409 so the UI can tell 'busy' from 'failed'."""
    if not result.success and result.error == "processing lock active":
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=result.message or result.error,
        )
    return result
