"""
Sync control routes: manual triggers, status, history and the event stream.
"""

import asyncio
import logging

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse

from attendsync.core.middleware import get_sync_engine, raise_if_locked
from attendsync.schemas.sync import OperationResult, SyncRequest
from attendsync.services.engine import SyncEngine

logger = logging.getLogger(__name__)

router = APIRouter()

_KEEPALIVE_SEC = 15.0


@router.post("/now", response_model=OperationResult, summary="Upload pending records now")
async def sync_now(
    body: SyncRequest | None = None,
    engine: SyncEngine = Depends(get_sync_engine),
) -> OperationResult:
    body = body or SyncRequest()
    result = await engine.sync_now(silent=body.silent, show_progress=body.show_progress)
    return raise_if_locked(result)


@router.post(
    "/server-edits",
    response_model=OperationResult,
    summary="Download and apply server-side edits now",
)
async def check_server_edits(
    body: SyncRequest | None = None,
    engine: SyncEngine = Depends(get_sync_engine),
) -> OperationResult:
    body = body or SyncRequest()
    return raise_if_locked(await engine.check_server_edits_now(silent=body.silent))


@router.post("/cancel", summary="Ask the running pipeline to stop at its next step")
async def cancel(engine: SyncEngine = Depends(get_sync_engine)) -> dict:
    return {"cancel_requested": engine.cancel()}


@router.get("/status", response_model=OperationResult, summary="Pending counts and lock state")
async def sync_status(engine: SyncEngine = Depends(get_sync_engine)) -> OperationResult:
    return await engine.status()


@router.get("/history", response_model=OperationResult, summary="Recent pipeline runs")
async def sync_history(
    limit: int = Query(default=20, ge=1, le=200),
    engine: SyncEngine = Depends(get_sync_engine),
) -> OperationResult:
    return await engine.history(limit)


@router.get("/events", summary="Pipeline events as server-sent events")
async def sync_events(request: Request, engine: SyncEngine = Depends(get_sync_engine)):
    queue = engine.bus.subscribe()

    async def stream():
        try:
            while not await request.is_disconnected():
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=_KEEPALIVE_SEC)
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
                    continue
                yield f"event: {event.kind}\ndata: {event.model_dump_json()}\n\n"
        finally:
            engine.bus.unsubscribe(queue)
            logger.debug("Event stream subscriber left")

    return StreamingResponse(stream(), media_type="text/event-stream")
