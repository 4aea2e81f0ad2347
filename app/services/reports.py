from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from app.errors import ValidationError
from app.models import AttendanceSession, DayStatus, Employee, EmployeeSource, RosterAssignment
from app.schemas import (
    DepartmentHeadcount,
    DetailedSessionRow,
    LiveDashboardResponse,
    NewJoinerRead,
    ReportRow,
    StatusMatrixRow,
)
from app.services.hours import (
    EXPORT_DECIMALS,
    normalize_ts,
    overtime_excess_hours,
    round_hours,
    session_hours,
)
from app.services.ledger import list_open_sessions, sessions_in_range
from app.services.local_time import iter_dates, local_date
from app.services.roster import (
    AbsentRosterAssignment,
    RosterLookup,
    effective_shift_name,
    is_week_off,
    load_roster_map,
    roster_from_map,
    week_off_label,
)

NEW_JOINER_WINDOW_DAYS = 7


@dataclass(frozen=True, slots=True)
class StatusMatrix:
    dates: list[date]
    rows: list[StatusMatrixRow]


def _validate_range(from_date: date, to_date: date) -> None:
    if from_date > to_date:
        raise ValidationError("from_date must be on or before to_date.", code="INVALID_DATE_RANGE")


def classify_day(*, has_session: bool, rest_day: bool) -> DayStatus:
    if has_session:
        return DayStatus.PRESENT
    if rest_day:
        return DayStatus.WEEK_OFF
    return DayStatus.ABSENT


def _load_active_employees(db: Session, *, department: str | None) -> list[Employee]:
    stmt = select(Employee).where(Employee.is_active.is_(True)).order_by(Employee.badge_code.asc())
    if department:
        stmt = stmt.where(Employee.department == department)
    return list(db.scalars(stmt).all())


def _group_sessions(sessions: list[AttendanceSession]) -> dict[tuple[int, date], list[AttendanceSession]]:
    grouped: dict[tuple[int, date], list[AttendanceSession]] = defaultdict(list)
    for session in sessions:
        grouped[(session.employee_id, session.work_date)].append(session)
    for day_sessions in grouped.values():
        day_sessions.sort(key=lambda item: (normalize_ts(item.gate_in_at), item.id))
    return grouped


def _build_row(
    employee: Employee,
    roster: RosterLookup,
    day: date,
    day_sessions: list[AttendanceSession],
) -> ReportRow:
    status = classify_day(has_session=bool(day_sessions), rest_day=is_week_off(roster, day))
    row = ReportRow(
        employee_id=employee.id,
        badge_code=employee.badge_code,
        employee_name=employee.full_name,
        employee_code=employee.employee_code,
        gender=employee.gender,
        department=employee.department,
        designation=employee.designation,
        week_off=week_off_label(roster),
        date_of_joining=employee.date_of_joining,
        date=day,
        status=status,
        shift_name=effective_shift_name(roster),
    )
    if not day_sessions:
        return row

    total_hours = sum(session_hours(item.gate_in_at, item.gate_out_at) for item in day_sessions)
    any_open = any(item.gate_out_at is None for item in day_sessions)
    last_out = None
    if not any_open:
        last_out = max(normalize_ts(item.gate_out_at) for item in day_sessions)

    row.department = day_sessions[0].department
    row.shift_name = day_sessions[0].shift_name
    row.session_count = len(day_sessions)
    row.gate_in_at = normalize_ts(day_sessions[0].gate_in_at)
    row.gate_out_at = last_out
    row.total_hours = round_hours(total_hours, EXPORT_DECIMALS)
    row.overtime_hours = round_hours(overtime_excess_hours(total_hours), EXPORT_DECIMALS)
    return row


def _build_rows(
    employees: list[Employee],
    roster_map: dict[int, RosterAssignment],
    sessions: list[AttendanceSession],
    from_date: date,
    to_date: date,
    *,
    only_absent: bool = False,
) -> list[ReportRow]:
    grouped = _group_sessions(sessions)
    dates = list(iter_dates(from_date, to_date))
    rows: list[ReportRow] = []
    for employee in employees:
        roster = roster_from_map(roster_map, employee.id)
        for day in dates:
            row = _build_row(employee, roster, day, grouped.get((employee.id, day), []))
            if only_absent and row.status != DayStatus.ABSENT:
                continue
            rows.append(row)
    return rows


def build_report(
    db: Session,
    from_date: date,
    to_date: date,
    *,
    department: str | None = None,
    only_absent: bool = False,
) -> list[ReportRow]:
    """Per-employee, per-day attendance rows for active employees.

    Every (employee, date) pair in the inclusive range yields exactly one row
    (P, WO or A) unless ``only_absent`` keeps just the A rows. Rows are ordered
    by badge code, then date.
    """
    _validate_range(from_date, to_date)
    employees = _load_active_employees(db, department=department)
    employee_ids = [employee.id for employee in employees]
    roster_map = load_roster_map(db, employee_ids)
    sessions = sessions_in_range(db, from_date, to_date, employee_ids=employee_ids)
    return _build_rows(employees, roster_map, sessions, from_date, to_date, only_absent=only_absent)


def _matrix_from_rows(
    employees: list[Employee],
    roster_map: dict[int, RosterAssignment],
    rows: list[ReportRow],
    dates: list[date],
) -> StatusMatrix:
    by_employee: dict[int, list[ReportRow]] = defaultdict(list)
    for row in rows:
        by_employee[row.employee_id].append(row)

    matrix_rows: list[StatusMatrixRow] = []
    for employee in employees:
        employee_rows = by_employee.get(employee.id, [])
        if not employee_rows:
            continue
        roster = roster_from_map(roster_map, employee.id)
        statuses = {row.date: row.status for row in employee_rows}
        matrix_rows.append(
            StatusMatrixRow(
                employee_id=employee.id,
                badge_code=employee.badge_code,
                employee_name=employee.full_name,
                employee_code=employee.employee_code,
                gender=employee.gender,
                department=employee.department,
                designation=employee.designation,
                shift_name=effective_shift_name(roster),
                week_off=week_off_label(roster),
                date_of_joining=employee.date_of_joining,
                statuses=statuses,
                total_present=sum(1 for status in statuses.values() if status == DayStatus.PRESENT),
            )
        )
    return StatusMatrix(dates=dates, rows=matrix_rows)


def build_status_matrix(
    db: Session,
    from_date: date,
    to_date: date,
    *,
    department: str | None = None,
) -> StatusMatrix:
    _validate_range(from_date, to_date)
    employees = _load_active_employees(db, department=department)
    employee_ids = [employee.id for employee in employees]
    roster_map = load_roster_map(db, employee_ids)
    sessions = sessions_in_range(db, from_date, to_date, employee_ids=employee_ids)
    rows = _build_rows(employees, roster_map, sessions, from_date, to_date)
    return _matrix_from_rows(employees, roster_map, rows, list(iter_dates(from_date, to_date)))


def build_detailed_rows(
    db: Session,
    from_date: date,
    to_date: date,
    *,
    department: str | None = None,
) -> list[DetailedSessionRow]:
    _validate_range(from_date, to_date)
    sessions = sessions_in_range(db, from_date, to_date, department=department)
    employees = {
        employee.id: employee
        for employee in db.scalars(
            select(Employee).where(Employee.id.in_({session.employee_id for session in sessions}))
        ).all()
    } if sessions else {}

    rows: list[DetailedSessionRow] = []
    for session in sessions:
        employee = employees.get(session.employee_id)
        hours = session_hours(session.gate_in_at, session.gate_out_at)
        rows.append(
            DetailedSessionRow(
                session_id=session.id,
                badge_code=session.badge_code,
                employee_code=employee.employee_code if employee is not None else "-",
                employee_name=employee.full_name if employee is not None else "Unknown",
                department=session.department,
                shift_name=session.shift_name,
                work_date=session.work_date,
                gate_in_at=normalize_ts(session.gate_in_at),
                gate_out_at=normalize_ts(session.gate_out_at) if session.gate_out_at is not None else None,
                is_week_off_entry=session.is_week_off_entry,
                working_hours=round_hours(hours, EXPORT_DECIMALS),
                overtime_hours=round_hours(overtime_excess_hours(hours), EXPORT_DECIMALS),
            )
        )
    rows.sort(key=lambda row: (row.work_date, row.gate_in_at, row.session_id))
    return rows


def build_live_dashboard(db: Session, *, now_utc: datetime | None = None) -> LiveDashboardResponse:
    now = normalize_ts(now_utc)
    today = local_date(now)

    active_employees = list(db.scalars(select(Employee).where(Employee.is_active.is_(True))).all())
    roster_map = load_roster_map(db, [employee.id for employee in active_employees])
    week_off_today = sum(
        1 for employee in active_employees if is_week_off(roster_from_map(roster_map, employee.id), today)
    )

    live_sessions = list_open_sessions(db, now_utc=now)
    department_counts: dict[str, int] = defaultdict(int)
    for item in live_sessions:
        department_counts[item.department or "-"] += 1

    today_entry_count = db.scalar(
        select(func.count(func.distinct(AttendanceSession.employee_id))).where(
            AttendanceSession.work_date == today
        )
    ) or 0

    return LiveDashboardResponse(
        work_date=today,
        active_employees=len(active_employees),
        inside_count=len(live_sessions),
        today_entry_count=int(today_entry_count),
        week_off_today_count=week_off_today,
        by_department=[
            DepartmentHeadcount(department=name, inside_count=count)
            for name, count in sorted(department_counts.items())
        ],
        live_sessions=live_sessions,
    )


def _new_joiner_query(from_date: date, to_date: date | None = None):
    stmt = (
        select(Employee)
        .options(selectinload(Employee.roster))
        .where(
            Employee.is_active.is_(True),
            Employee.added_via == EmployeeSource.MANUAL,
            Employee.date_of_joining >= from_date,
        )
        .order_by(Employee.date_of_joining.desc(), Employee.badge_code.asc())
    )
    if to_date is not None:
        stmt = stmt.where(Employee.date_of_joining <= to_date)
    return stmt


def list_new_joiners(
    db: Session,
    *,
    today: date | None = None,
    days: int = NEW_JOINER_WINDOW_DAYS,
) -> list[NewJoinerRead]:
    reference_day = today or local_date(normalize_ts(None))
    employees = db.scalars(_new_joiner_query(reference_day - timedelta(days=days))).all()
    return [
        NewJoinerRead(
            id=employee.id,
            badge_code=employee.badge_code,
            employee_code=employee.employee_code,
            full_name=employee.full_name,
            gender=employee.gender,
            department=employee.department,
            shift_name=effective_shift_name(employee.roster or AbsentRosterAssignment(employee_id=employee.id)),
            date_of_joining=employee.date_of_joining,
        )
        for employee in employees
    ]


def new_joiner_window(today: date | None = None) -> tuple[date, date]:
    """Export window: the eight days ending yesterday."""
    reference_day = today or local_date(normalize_ts(None))
    return reference_day - timedelta(days=NEW_JOINER_WINDOW_DAYS + 1), reference_day - timedelta(days=1)


def build_new_joiner_matrix(db: Session, *, today: date | None = None) -> StatusMatrix:
    from_date, to_date = new_joiner_window(today)
    employees = list(db.scalars(_new_joiner_query(from_date, to_date)).all())
    employee_ids = [employee.id for employee in employees]
    roster_map = load_roster_map(db, employee_ids)
    sessions = sessions_in_range(db, from_date, to_date, employee_ids=employee_ids)
    rows = _build_rows(employees, roster_map, sessions, from_date, to_date)
    return _matrix_from_rows(employees, roster_map, rows, list(iter_dates(from_date, to_date)))
