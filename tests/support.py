from __future__ import annotations

from collections.abc import Generator
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app import models  # noqa: F401
from app.db import Base
from app.models import Employee, EmployeeSource, RosterAssignment, ShiftName, Weekday

IST_OFFSET = timedelta(hours=5, minutes=30)


def make_session_factory(database_url: str | None = None) -> sessionmaker:
    if database_url is None:
        engine = create_engine(
            "sqlite+pysqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        # File-backed: every session gets its own connection.
        engine = create_engine(database_url, connect_args={"check_same_thread": False, "timeout": 30})

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _record):  # type: ignore[no-untyped-def]
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def override_get_db(factory: sessionmaker):
    def _override() -> Generator[Session, None, None]:
        db = factory()
        try:
            yield db
        finally:
            db.close()

    return _override


def ist(year: int, month: int, day: int, hour: int = 0, minute: int = 0, second: int = 0) -> datetime:
    """UTC instant for a wall-clock time in the Asia/Kolkata attendance timezone."""
    local = datetime(year, month, day, hour, minute, second)
    return (local - IST_OFFSET).replace(tzinfo=timezone.utc)


def add_employee(
    db: Session,
    badge_code: str,
    *,
    full_name: str | None = None,
    department: str = "Inbound",
    shift_name: ShiftName | None = ShiftName.MORNING,
    week_off: Weekday = Weekday.SUNDAY,
    is_active: bool = True,
    added_via: EmployeeSource = EmployeeSource.MANUAL,
    date_of_joining: date | None = date(2023, 1, 15),
) -> Employee:
    employee = Employee(
        badge_code=badge_code,
        employee_code=badge_code.replace("SLP", "EMP"),
        full_name=full_name or f"Employee {badge_code}",
        gender="Male",
        department=department,
        designation="Associate",
        date_of_joining=date_of_joining,
        added_via=added_via,
        is_active=is_active,
    )
    if shift_name is not None:
        employee.roster = RosterAssignment(
            shift_name=shift_name,
            week_off=week_off,
            effective_date=date(2024, 1, 1),
        )
    db.add(employee)
    db.commit()
    return employee
