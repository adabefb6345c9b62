from datetime import date, datetime

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Enum,
    Float,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

CLOCK_TYPES = (
    "morning_in",
    "morning_out",
    "afternoon_in",
    "afternoon_out",
    "evening_in",
    "evening_out",
    "overtime_in",
    "overtime_out",
)


class Base(DeclarativeBase):
    pass


class AttendanceRecord(Base):
    __tablename__ = "attendance"

    __table_args__ = (
        Index("ix_attendance_employee_date", "employee_id", "date"),
        Index("ix_attendance_sync_status", "sync_status"),
        Index("ix_attendance_date", "date"),
    )

    # Positive ids come from the server; negative ids are provisional local ids
    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    employee_id: Mapped[int] = mapped_column(Integer, nullable=False)
    clock_type: Mapped[str] = mapped_column(
        Enum(*CLOCK_TYPES, name="clock_type_enum"), nullable=False
    )
    clock_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    regular_hours: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    overtime_hours: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    is_overtime_session: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sync_status: Mapped[str] = mapped_column(
        Enum("pending", "synced", name="sync_status_enum"),
        nullable=False,
        default="pending",
    )
    source: Mapped[str] = mapped_column(
        Enum("local", "server", name="record_source_enum"),
        nullable=False,
        default="local",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return (
            f"<AttendanceRecord id={self.id} employee_id={self.employee_id} "
            f"clock_type={self.clock_type} clock_time={self.clock_time} "
            f"sync_status={self.sync_status}>"
        )


class DailySummary(Base):
    __tablename__ = "daily_attendance_summary"

    __table_args__ = (
        UniqueConstraint("employee_id", "date", name="uq_daily_summary_employee_date"),
        Index("ix_daily_summary_sync_status", "sync_status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    employee_id: Mapped[int] = mapped_column(Integer, nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)

    first_clock_in: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    last_clock_out: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    morning_in: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    morning_out: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    afternoon_in: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    afternoon_out: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    evening_in: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    evening_out: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    overtime_in: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    overtime_out: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    regular_hours: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    overtime_hours: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total_hours: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    has_late_entry: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_incomplete: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    total_sessions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed_sessions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pending_sessions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    sync_status: Mapped[str] = mapped_column(
        Enum("pending", "synced", name="sync_status_enum"),
        nullable=False,
        default="pending",
    )
    last_updated: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return (
            f"<DailySummary employee_id={self.employee_id} date={self.date} "
            f"total_hours={self.total_hours} sync_status={self.sync_status}>"
        )


class SyncLog(Base):
    __tablename__ = "sync_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    pipeline: Mapped[str] = mapped_column(String(50), nullable=False)
    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    finished_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )
    status: Mapped[str] = mapped_column(
        Enum("success", "failed", "rejected", name="sync_log_status_enum"), nullable=False
    )
    counts: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    errors: Mapped[list | None] = mapped_column(JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<SyncLog id={self.id} pipeline={self.pipeline} status={self.status}>"
