from datetime import time

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Embedded local replica; the authoritative copy lives on the remote server
    DATABASE_URL: str = "sqlite+aiosqlite:///./attendance.db"
    RUN_MIGRATIONS_ON_STARTUP: bool = True

    REMOTE_BASE_URL: str = "http://localhost:8000"
    REMOTE_TIMEOUT_SEC: float = 30.0
    REMOTE_EDIT_LIMIT: int = 1000

    SYNC_CHECKPOINTS: str = "08:30,12:30,13:30,17:30"
    SCHEDULER_ENABLED: bool = True
    SCHEDULER_TICK_SEC: float = 1.0
    SETTLE_DELAY_SEC: float = 2.0

    GRACE_PERIOD_MINUTES: int = 5
    MORNING_START: str = "08:00"
    AFTERNOON_START: str = "13:00"
    EVENING_START: str = "17:00"

    REGULAR_HOURS_CAP: float = 8.0
    APPLY_8_HOUR_RULE: bool = True

    DUPLICATE_TOLERANCE_MINUTES: int = 5

    CORS_ORIGINS: str = "http://localhost:5173,http://localhost:3000"


def parse_clock(value: str) -> time:
    """Parse an "HH:MM" or "HH:MM:SS" string into a time."""
    parts = [int(p) for p in value.strip().split(":")]
    if len(parts) == 2:
        parts.append(0)
    if len(parts) != 3:
        raise ValueError(f"Invalid clock value '{value}', expected HH:MM")
    return time(parts[0], parts[1], parts[2])


def parse_checkpoints(value: str) -> list[time]:
    """Parse a comma-separated checkpoint list, sorted and de-duplicated."""
    return sorted({parse_clock(item) for item in value.split(",") if item.strip()})


settings = Settings()
