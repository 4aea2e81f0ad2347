from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime

from sqlalchemy import select, update
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.orm.attributes import set_committed_value

from app.models import AttendanceSession, Employee, OpenSession
from app.schemas import OpenSessionRead
from app.services.hours import elapsed_hours, is_overtime, normalize_ts, round_hours


def find_open_session(db: Session, employee_id: int) -> AttendanceSession | None:
    return db.scalar(
        select(AttendanceSession)
        .join(OpenSession, OpenSession.session_id == AttendanceSession.id)
        .where(OpenSession.employee_id == employee_id)
        .with_for_update(of=AttendanceSession)
    )


def insert_open_session(
    db: Session,
    *,
    employee: Employee,
    shift_name: str,
    work_date: date,
    gate_in_at: datetime,
    is_week_off_entry: bool,
) -> AttendanceSession:
    session = AttendanceSession(
        employee_id=employee.id,
        badge_code=employee.badge_code,
        shift_name=shift_name,
        department=employee.department,
        work_date=work_date,
        gate_in_at=normalize_ts(gate_in_at),
        gate_out_at=None,
        is_week_off_entry=is_week_off_entry,
        is_overtime=False,
    )
    db.add(session)
    db.flush()
    # Primary key on employee_id rejects a second open session for the same employee.
    db.add(OpenSession(employee_id=employee.id, session_id=session.id))
    db.flush()
    return session


def close_session(db: Session, session: AttendanceSession, *, gate_out_at: datetime) -> float | None:
    """Close ``session`` if it is still open.

    Returns the worked hours, or ``None`` when the row was already closed by
    someone else. Only the conditional update decides; the in-memory state of
    ``session`` is not trusted.
    """
    closed_at = normalize_ts(gate_out_at)
    hours = elapsed_hours(session.gate_in_at, closed_at)
    overtime = is_overtime(hours)

    result = db.execute(
        update(AttendanceSession)
        .where(
            AttendanceSession.id == session.id,
            AttendanceSession.gate_out_at.is_(None),
        )
        .values(gate_out_at=closed_at, is_overtime=overtime)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return None

    index_row = db.get(OpenSession, session.employee_id)
    if index_row is not None:
        db.delete(index_row)
        db.flush()
    set_committed_value(session, "gate_out_at", closed_at)
    set_committed_value(session, "is_overtime", overtime)
    return hours


def list_open_sessions(db: Session, *, now_utc: datetime | None = None) -> list[OpenSessionRead]:
    now = normalize_ts(now_utc)
    sessions = db.scalars(
        select(AttendanceSession)
        .join(OpenSession, OpenSession.session_id == AttendanceSession.id)
        .options(selectinload(AttendanceSession.employee))
        .order_by(AttendanceSession.gate_in_at.desc(), AttendanceSession.id.desc())
    ).all()

    rows: list[OpenSessionRead] = []
    for session in sessions:
        employee = session.employee
        rows.append(
            OpenSessionRead(
                session_id=session.id,
                employee_id=session.employee_id,
                badge_code=session.badge_code,
                employee_name=employee.full_name if employee is not None else "",
                department=session.department,
                shift_name=session.shift_name,
                work_date=session.work_date,
                gate_in_at=normalize_ts(session.gate_in_at),
                elapsed_hours=round_hours(elapsed_hours(session.gate_in_at, now)),
                is_week_off_entry=session.is_week_off_entry,
            )
        )
    return rows


def sessions_in_range(
    db: Session,
    from_date: date,
    to_date: date,
    *,
    employee_ids: Iterable[int] | None = None,
    department: str | None = None,
) -> list[AttendanceSession]:
    stmt = (
        select(AttendanceSession)
        .where(
            AttendanceSession.work_date >= from_date,
            AttendanceSession.work_date <= to_date,
        )
        .order_by(
            AttendanceSession.employee_id.asc(),
            AttendanceSession.work_date.asc(),
            AttendanceSession.gate_in_at.asc(),
            AttendanceSession.id.asc(),
        )
    )
    if employee_ids is not None:
        ids = list(employee_ids)
        if not ids:
            return []
        stmt = stmt.where(AttendanceSession.employee_id.in_(ids))
    if department:
        stmt = stmt.where(AttendanceSession.department == department)
    return list(db.scalars(stmt).all())


def load_sessions_by_ids(db: Session, session_ids: Iterable[int]) -> list[AttendanceSession]:
    ids = sorted(set(session_ids))
    if not ids:
        return []
    return list(
        db.scalars(
            select(AttendanceSession)
            .where(AttendanceSession.id.in_(ids))
            .order_by(AttendanceSession.employee_id.asc(), AttendanceSession.id.asc())
        ).all()
    )
