import logging
import subprocess
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from attendsync.api.attendance import router as attendance_router
from attendsync.api.reconcile import router as reconcile_router
from attendsync.api.sync import router as sync_router
from attendsync.core.config import settings
from attendsync.services.engine import build_sync_engine

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent


def run_migrations() -> None:
    logger.info("Running Alembic migrations...")
    try:
        result = subprocess.run(
            ["alembic", "upgrade", "head"],
            capture_output=True,
            text=True,
            cwd=PROJECT_ROOT,
        )
        if result.returncode != 0:
            logger.error("Alembic migration failed:\n%s", result.stderr)
        else:
            logger.info("Migrations applied successfully:\n%s", result.stdout)
    except Exception as exc:
        logger.exception("Failed to run migrations: %s", exc)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Apply migrations, then start the sync engine and its checkpoint scheduler."""
    if settings.RUN_MIGRATIONS_ON_STARTUP:
        run_migrations()

    engine = build_sync_engine(settings)
    app.state.sync_engine = engine
    await engine.start(run_scheduler=settings.SCHEDULER_ENABLED)

    yield

    logger.info("Shutting down attendance sync service.")
    await engine.stop()
    app.state.sync_engine = None


app = FastAPI(
    title="AttendSync API",
    description="Offline-first attendance sync and reconciliation for kiosk replicas.",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(sync_router, prefix="/api/sync", tags=["Sync"])
app.include_router(reconcile_router, prefix="/api/reconcile", tags=["Reconcile"])
app.include_router(attendance_router, prefix="/api/attendance", tags=["Attendance"])


@app.get("/health", tags=["System"])
async def health_check() -> dict:
    return {"status": "ok"}
