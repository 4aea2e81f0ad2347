from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Union

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, selectinload

from app.db import storage_transaction
from app.errors import ConflictError, NotFoundError, ValidationError
from app.models import (
    AttendanceSession,
    Employee,
    EmployeeSource,
    OpenSession,
    RosterAssignment,
    ShiftName,
    Weekday,
)
from app.schemas import (
    EmployeeCreate,
    EmployeeUpdate,
    RosterBatchResult,
    RosterImportRow,
    RosterRead,
    RosterUpdate,
    WipeResponse,
)
from app.services.local_time import local_date, parse_weekday, weekday_of

logger = logging.getLogger("app.roster")

DEFAULT_SHIFT = ShiftName.GENERAL
DEFAULT_WEEK_OFF = Weekday.SUNDAY
DEFAULT_DESIGNATION = "Associate"
DEFAULT_IMPORT_GENDER = "Male"
DEFAULT_IMPORT_DEPARTMENT = "Inbound"


@dataclass(frozen=True, slots=True)
class AbsentRosterAssignment:
    """Stand-in for an employee that has no roster row."""

    employee_id: int


RosterLookup = Union[RosterAssignment, AbsentRosterAssignment]


def normalize_badge_code(raw: str | None) -> str:
    return (raw or "").strip().upper()


def parse_shift_name(raw: str | ShiftName | None) -> ShiftName | None:
    if raw is None:
        return None
    if isinstance(raw, ShiftName):
        return raw
    normalized = raw.strip().lower()
    for shift in ShiftName:
        if shift.value.lower() == normalized:
            return shift
    return None


def effective_shift_name(roster: RosterLookup) -> str:
    if isinstance(roster, RosterAssignment):
        return ShiftName(roster.shift_name).value
    return DEFAULT_SHIFT.value


def week_off_label(roster: RosterLookup) -> str:
    if isinstance(roster, RosterAssignment):
        return Weekday(roster.week_off).value
    return ""


def is_week_off(roster: RosterLookup, day: date) -> bool:
    if not isinstance(roster, RosterAssignment):
        return False
    return parse_weekday(roster.week_off) == weekday_of(day)


def get_roster_for_employee(db: Session, employee_id: int) -> RosterLookup:
    roster = db.scalar(select(RosterAssignment).where(RosterAssignment.employee_id == employee_id))
    if roster is None:
        return AbsentRosterAssignment(employee_id=employee_id)
    return roster


def load_roster_map(db: Session, employee_ids: Iterable[int] | None = None) -> dict[int, RosterAssignment]:
    stmt = select(RosterAssignment)
    if employee_ids is not None:
        ids = list(employee_ids)
        if not ids:
            return {}
        stmt = stmt.where(RosterAssignment.employee_id.in_(ids))
    return {roster.employee_id: roster for roster in db.scalars(stmt).all()}


def roster_from_map(roster_map: dict[int, RosterAssignment], employee_id: int) -> RosterLookup:
    roster = roster_map.get(employee_id)
    if roster is None:
        return AbsentRosterAssignment(employee_id=employee_id)
    return roster


def find_employee_by_badge(db: Session, badge_code: str) -> Employee | None:
    return db.scalar(select(Employee).where(Employee.badge_code == normalize_badge_code(badge_code)))


def list_employees(
    db: Session,
    *,
    include_inactive: bool = True,
    department: str | None = None,
) -> list[Employee]:
    stmt = select(Employee).order_by(Employee.created_at.desc(), Employee.id.desc())
    if not include_inactive:
        stmt = stmt.where(Employee.is_active.is_(True))
    if department:
        stmt = stmt.where(Employee.department == department)
    return list(db.scalars(stmt).all())


def create_employee(db: Session, payload: EmployeeCreate, *, now_utc: datetime | None = None) -> Employee:
    badge_code = normalize_badge_code(payload.badge_code)
    if not badge_code:
        raise ValidationError("Badge code is required.", code="BADGE_CODE_REQUIRED")
    if find_employee_by_badge(db, badge_code) is not None:
        raise ConflictError("Employee with this badge code already exists.", code="BADGE_CODE_EXISTS")

    today = local_date(now_utc or datetime.now(timezone.utc))
    employee = Employee(
        badge_code=badge_code,
        employee_code=normalize_badge_code(payload.employee_code) or badge_code,
        full_name=payload.full_name.strip(),
        gender=payload.gender.strip(),
        department=payload.department.strip(),
        designation=(payload.designation or "").strip() or DEFAULT_DESIGNATION,
        date_of_joining=payload.date_of_joining or today,
        added_via=EmployeeSource.MANUAL,
        is_active=payload.is_active,
    )
    employee.roster = RosterAssignment(
        shift_name=payload.shift_name,
        week_off=payload.week_off,
        effective_date=today,
    )
    with storage_transaction(db):
        db.add(employee)
    return employee


def update_employee(db: Session, employee_id: int, payload: EmployeeUpdate) -> Employee:
    employee = db.get(Employee, employee_id)
    if employee is None:
        raise NotFoundError("Employee not found.", code="EMPLOYEE_NOT_FOUND")

    with storage_transaction(db):
        if payload.full_name is not None:
            employee.full_name = payload.full_name.strip()
        if payload.gender is not None:
            employee.gender = payload.gender.strip()
        if payload.department is not None:
            employee.department = payload.department.strip()
        if payload.designation is not None:
            employee.designation = payload.designation.strip() or DEFAULT_DESIGNATION
        if payload.is_active is not None:
            employee.is_active = payload.is_active
    return employee


def _to_roster_read(roster: RosterAssignment) -> RosterRead:
    employee = roster.employee
    return RosterRead(
        id=roster.id,
        employee_id=roster.employee_id,
        badge_code=employee.badge_code,
        employee_name=employee.full_name,
        gender=employee.gender,
        department=employee.department,
        designation=employee.designation,
        shift_name=roster.shift_name,
        week_off=roster.week_off,
        effective_date=roster.effective_date,
        updated_at=roster.updated_at,
    )


def list_rosters(db: Session) -> list[RosterRead]:
    rosters = db.scalars(
        select(RosterAssignment)
        .join(Employee, Employee.id == RosterAssignment.employee_id)
        .options(selectinload(RosterAssignment.employee))
        .order_by(Employee.badge_code.asc())
    ).all()
    return [_to_roster_read(roster) for roster in rosters]


def update_roster(db: Session, roster_id: int, payload: RosterUpdate) -> RosterRead:
    roster = db.get(RosterAssignment, roster_id)
    if roster is None:
        raise NotFoundError("Roster not found.", code="ROSTER_NOT_FOUND")

    with storage_transaction(db):
        if payload.shift_name is not None:
            roster.shift_name = payload.shift_name
        if payload.week_off is not None:
            roster.week_off = payload.week_off
    return _to_roster_read(roster)


@dataclass(frozen=True, slots=True)
class _NormalizedImportRow:
    badge_code: str
    full_name: str
    employee_code: str | None
    gender: str | None
    department: str | None
    designation: str | None
    shift_name: ShiftName | None
    week_off: Weekday | None
    date_of_joining: date | None


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def _normalize_import_rows(rows: list[RosterImportRow]) -> tuple[list[_NormalizedImportRow], int]:
    normalized: list[_NormalizedImportRow] = []
    skipped = 0
    for index, row in enumerate(rows, start=1):
        badge_code = normalize_badge_code(row.badge_code)
        full_name = (row.full_name or "").strip()
        if not badge_code or not full_name:
            skipped += 1
            continue

        raw_shift = _clean(row.shift_name)
        shift_name = parse_shift_name(raw_shift) if raw_shift else None
        if raw_shift and shift_name is None:
            raise ValidationError(
                f"Row {index} ({badge_code}): unknown shift '{raw_shift}'.",
                code="INVALID_SHIFT_NAME",
            )

        raw_week_off = _clean(row.week_off)
        week_off = parse_weekday(raw_week_off) if raw_week_off else None
        if raw_week_off and week_off is None:
            raise ValidationError(
                f"Row {index} ({badge_code}): unknown week off '{raw_week_off}'.",
                code="INVALID_WEEK_OFF",
            )

        employee_code = _clean(row.employee_code)
        normalized.append(
            _NormalizedImportRow(
                badge_code=badge_code,
                full_name=full_name,
                employee_code=employee_code.upper() if employee_code else None,
                gender=_clean(row.gender),
                department=_clean(row.department),
                designation=_clean(row.designation),
                shift_name=shift_name,
                week_off=week_off,
                date_of_joining=row.date_of_joining,
            )
        )
    return normalized, skipped


def upsert_roster_batch(
    db: Session,
    rows: list[RosterImportRow],
    *,
    now_utc: datetime | None = None,
) -> RosterBatchResult:
    """Create or update employees and their roster rows, keyed by badge code.

    Every row is validated before anything is written; the whole batch commits
    as one transaction. Rows missing a badge code or a name are skipped.
    """
    if not rows:
        raise ValidationError("Roster batch is empty.", code="EMPTY_ROSTER_BATCH")

    normalized_rows, skipped = _normalize_import_rows(rows)
    today = local_date(now_utc or datetime.now(timezone.utc))
    badge_codes = {row.badge_code for row in normalized_rows}
    existing: dict[str, Employee] = {}
    if badge_codes:
        existing = {
            employee.badge_code: employee
            for employee in db.scalars(
                select(Employee)
                .options(selectinload(Employee.roster))
                .where(Employee.badge_code.in_(badge_codes))
            ).all()
        }

    created = 0
    updated = 0
    with storage_transaction(db):
        for row in normalized_rows:
            employee = existing.get(row.badge_code)
            if employee is None:
                employee = Employee(
                    badge_code=row.badge_code,
                    employee_code=row.employee_code or row.badge_code,
                    full_name=row.full_name,
                    gender=row.gender or DEFAULT_IMPORT_GENDER,
                    department=row.department or DEFAULT_IMPORT_DEPARTMENT,
                    designation=row.designation or DEFAULT_DESIGNATION,
                    date_of_joining=row.date_of_joining or today,
                    added_via=EmployeeSource.ROSTER,
                    is_active=True,
                )
                employee.roster = RosterAssignment(
                    shift_name=row.shift_name or DEFAULT_SHIFT,
                    week_off=row.week_off or DEFAULT_WEEK_OFF,
                    effective_date=today,
                )
                db.add(employee)
                existing[row.badge_code] = employee
                created += 1
                continue

            employee.full_name = row.full_name
            if row.employee_code:
                employee.employee_code = row.employee_code
            if row.gender:
                employee.gender = row.gender
            if row.department:
                employee.department = row.department
            if row.designation:
                employee.designation = row.designation
            if row.date_of_joining:
                employee.date_of_joining = row.date_of_joining

            if employee.roster is None:
                employee.roster = RosterAssignment(
                    shift_name=row.shift_name or DEFAULT_SHIFT,
                    week_off=row.week_off or DEFAULT_WEEK_OFF,
                    effective_date=today,
                )
            else:
                if row.shift_name:
                    employee.roster.shift_name = row.shift_name
                if row.week_off:
                    employee.roster.week_off = row.week_off
            updated += 1

    logger.info(
        "roster_batch_upserted",
        extra={"created_count": created, "updated_count": updated, "skipped_count": skipped, "row_count": len(rows)},
    )
    return RosterBatchResult(created_count=created, updated_count=updated, skipped_count=skipped)


def wipe_all_attendance_data(db: Session) -> WipeResponse:
    with storage_transaction(db):
        db.execute(delete(OpenSession))
        deleted_sessions = db.execute(delete(AttendanceSession)).rowcount
        deleted_rosters = db.execute(delete(RosterAssignment)).rowcount
        deleted_employees = db.execute(delete(Employee)).rowcount
    db.expunge_all()
    logger.warning(
        "attendance_data_wiped",
        extra={
            "deleted_sessions": deleted_sessions,
            "deleted_rosters": deleted_rosters,
            "deleted_employees": deleted_employees,
        },
    )
    return WipeResponse(
        ok=True,
        deleted_sessions=deleted_sessions,
        deleted_rosters=deleted_rosters,
        deleted_employees=deleted_employees,
    )
