from __future__ import annotations

import enum
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class ShiftName(str, enum.Enum):
    MORNING = "Morning"
    EVENING = "Evening"
    NIGHT = "Night"
    GENERAL = "General"


class Weekday(str, enum.Enum):
    # Declaration order matches date.weekday(): Monday == 0.
    MONDAY = "Monday"
    TUESDAY = "Tuesday"
    WEDNESDAY = "Wednesday"
    THURSDAY = "Thursday"
    FRIDAY = "Friday"
    SATURDAY = "Saturday"
    SUNDAY = "Sunday"


class EmployeeSource(str, enum.Enum):
    MANUAL = "manual"
    ROSTER = "roster"


class ScanOutcome(str, enum.Enum):
    GATE_IN = "GATE_IN"
    GATE_OUT = "GATE_OUT"
    DUPLICATE_SCAN = "DUPLICATE_SCAN"
    WEEK_OFF_CONFIRMATION_REQUIRED = "WEEK_OFF_CONFIRMATION_REQUIRED"


class DayStatus(str, enum.Enum):
    PRESENT = "P"
    WEEK_OFF = "WO"
    ABSENT = "A"


class AuditActorType(str, enum.Enum):
    ADMIN = "ADMIN"
    SYSTEM = "SYSTEM"


class Employee(Base):
    __tablename__ = "employees"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    badge_code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    employee_code: Mapped[str] = mapped_column(String(64), nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    gender: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    department: Mapped[str] = mapped_column(String(255), nullable=False, default="", index=True)
    designation: Mapped[str] = mapped_column(String(255), nullable=False, default="Associate")
    date_of_joining: Mapped[date | None] = mapped_column(Date, nullable=True)
    added_via: Mapped[EmployeeSource] = mapped_column(
        Enum(
            EmployeeSource,
            name="employee_source",
            native_enum=False,
            length=16,
            values_callable=_enum_values,
        ),
        nullable=False,
        default=EmployeeSource.MANUAL,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    roster: Mapped[RosterAssignment | None] = relationship(back_populates="employee", uselist=False)
    sessions: Mapped[list[AttendanceSession]] = relationship(back_populates="employee")


class RosterAssignment(Base):
    __tablename__ = "roster_assignments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_id: Mapped[int] = mapped_column(
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    shift_name: Mapped[ShiftName] = mapped_column(
        Enum(
            ShiftName,
            name="shift_name",
            native_enum=False,
            length=16,
            values_callable=_enum_values,
        ),
        nullable=False,
        default=ShiftName.GENERAL,
    )
    week_off: Mapped[Weekday] = mapped_column(
        Enum(
            Weekday,
            name="weekday_name",
            native_enum=False,
            length=16,
            values_callable=_enum_values,
        ),
        nullable=False,
        default=Weekday.SUNDAY,
    )
    effective_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=_utcnow,
    )

    employee: Mapped[Employee] = relationship(back_populates="roster")


class AttendanceSession(Base):
    __tablename__ = "attendance_sessions"
    __table_args__ = (
        Index("ix_attendance_sessions_employee_work_date", "employee_id", "work_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_id: Mapped[int] = mapped_column(
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    badge_code: Mapped[str] = mapped_column(String(64), nullable=False)
    shift_name: Mapped[str] = mapped_column(String(32), nullable=False)
    department: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    work_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    gate_in_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    gate_out_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_week_off_entry: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )
    is_overtime: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    employee: Mapped[Employee] = relationship(back_populates="sessions")


class OpenSession(Base):
    """Index of currently open sessions; the primary key allows one per employee."""

    __tablename__ = "open_sessions"

    employee_id: Mapped[int] = mapped_column(
        ForeignKey("employees.id", ondelete="CASCADE"),
        primary_key=True,
    )
    session_id: Mapped[int] = mapped_column(
        ForeignKey("attendance_sessions.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    session: Mapped[AttendanceSession] = relationship()


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ts_utc: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        index=True,
    )
    actor_type: Mapped[AuditActorType] = mapped_column(
        Enum(AuditActorType, name="audit_actor_type", native_enum=False, length=16),
        nullable=False,
    )
    actor_id: Mapped[str] = mapped_column(String(255), nullable=False)
    action: Mapped[str] = mapped_column(String(255), nullable=False)
    entity_type: Mapped[str | None] = mapped_column(String(255), nullable=True)
    entity_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    ip: Mapped[str | None] = mapped_column(String(128), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
    details: Mapped[dict[str, Any]] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
    )
