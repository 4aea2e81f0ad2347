from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Iterator
from contextlib import ExitStack, contextmanager
from datetime import datetime

from sqlalchemy.orm import Session

from app.db import storage_transaction
from app.errors import InactiveEmployeeError, NotFoundError, StorageConflictError, ValidationError
from app.models import Employee, ScanOutcome
from app.schemas import GateScanResponse
from app.services.hours import (
    LIVE_VIEW_DECIMALS,
    elapsed_hours,
    format_hours,
    is_duplicate_window,
    normalize_ts,
)
from app.services.ledger import close_session, find_open_session, insert_open_session, load_sessions_by_ids
from app.services.local_time import local_date
from app.services.roster import (
    effective_shift_name,
    find_employee_by_badge,
    get_roster_for_employee,
    is_week_off,
    normalize_badge_code,
)

logger = logging.getLogger("app.gate")

_LOCKS_GUARD = threading.Lock()
# Never pruned; one lock per employee ever scanned, so bounded by headcount.
_EMPLOYEE_LOCKS: dict[int, threading.Lock] = {}


def _lock_for(employee_id: int) -> threading.Lock:
    with _LOCKS_GUARD:
        lock = _EMPLOYEE_LOCKS.get(employee_id)
        if lock is None:
            lock = threading.Lock()
            _EMPLOYEE_LOCKS[employee_id] = lock
        return lock


@contextmanager
def employee_lock(employee_id: int) -> Iterator[None]:
    lock = _lock_for(employee_id)
    with lock:
        yield


@contextmanager
def employee_locks(employee_ids: Iterable[int]) -> Iterator[None]:
    # Ascending order so two bulk closes never wait on each other in a cycle.
    with ExitStack() as stack:
        for employee_id in sorted(set(employee_ids)):
            stack.enter_context(employee_lock(employee_id))
        yield


def _resolve_gate_employee(db: Session, badge_code: str) -> Employee:
    employee = find_employee_by_badge(db, badge_code)
    if employee is None:
        raise NotFoundError("Employee not found for this badge code.", code="EMPLOYEE_NOT_FOUND")
    if not employee.is_active:
        raise InactiveEmployeeError("Inactive employee cannot pass the gate.")
    return employee


def _decide_and_apply(
    db: Session,
    employee: Employee,
    *,
    allow_week_off: bool,
    now: datetime,
) -> GateScanResponse:
    with storage_transaction(db):
        current = find_open_session(db, employee.id)
        if current is not None:
            hours = elapsed_hours(current.gate_in_at, now)
            if is_duplicate_window(hours):
                return GateScanResponse(
                    outcome=ScanOutcome.DUPLICATE_SCAN,
                    badge_code=employee.badge_code,
                    employee_name=employee.full_name,
                    message="Card already scanned",
                    session_id=current.id,
                    elapsed_hours=hours,
                )

            closed_hours = close_session(db, current, gate_out_at=now)
            if closed_hours is None:
                raise StorageConflictError("Session was closed concurrently.")
            display_hours = format_hours(closed_hours, LIVE_VIEW_DECIMALS)
            return GateScanResponse(
                outcome=ScanOutcome.GATE_OUT,
                badge_code=employee.badge_code,
                employee_name=employee.full_name,
                message=f"Gate Out recorded - {display_hours} hours worked",
                session_id=current.id,
                elapsed_hours=closed_hours,
                hours_worked=display_hours,
                is_overtime=current.is_overtime,
                is_week_off_entry=current.is_week_off_entry,
            )

        roster = get_roster_for_employee(db, employee.id)
        today = local_date(now)
        rest_day = is_week_off(roster, today)
        if rest_day and not allow_week_off:
            return GateScanResponse(
                outcome=ScanOutcome.WEEK_OFF_CONFIRMATION_REQUIRED,
                badge_code=employee.badge_code,
                employee_name=employee.full_name,
                message="Employee is on week off. Confirmation required.",
            )

        session = insert_open_session(
            db,
            employee=employee,
            shift_name=effective_shift_name(roster),
            work_date=today,
            gate_in_at=now,
            is_week_off_entry=rest_day and allow_week_off,
        )
        return GateScanResponse(
            outcome=ScanOutcome.GATE_IN,
            badge_code=employee.badge_code,
            employee_name=employee.full_name,
            message="Gate In recorded successfully",
            session_id=session.id,
            is_overtime=False,
            is_week_off_entry=session.is_week_off_entry,
        )


def scan_gate(
    db: Session,
    badge_code: str,
    *,
    allow_week_off: bool = False,
    now_utc: datetime | None = None,
) -> GateScanResponse:
    """Decide and record what a badge scan means for the employee right now.

    Outcomes are returned, never raised. Unknown, inactive or blank badges raise
    the matching ``ApiError``. A lost race against a concurrent scan of the same
    badge is retried once; the retry observes the winner's session.
    """
    normalized_badge = normalize_badge_code(badge_code)
    if not normalized_badge:
        raise ValidationError("Badge code is required.", code="BADGE_CODE_REQUIRED")

    now = normalize_ts(now_utc)
    employee = _resolve_gate_employee(db, normalized_badge)

    with employee_lock(employee.id):
        try:
            result = _decide_and_apply(db, employee, allow_week_off=allow_week_off, now=now)
        except StorageConflictError:
            logger.warning(
                "gate_scan_conflict_retry",
                extra={"employee_id": employee.id, "badge_code": normalized_badge},
            )
            result = _decide_and_apply(db, employee, allow_week_off=allow_week_off, now=now)

    logger.info(
        "gate_scan_decided",
        extra={
            "employee_id": employee.id,
            "badge_code": normalized_badge,
            "outcome": result.outcome.value,
            "session_id": result.session_id,
            "elapsed_hours": result.elapsed_hours,
            "allow_week_off": allow_week_off,
        },
    )
    return result


def bulk_close_sessions(
    db: Session,
    session_ids: Iterable[int],
    *,
    now_utc: datetime | None = None,
) -> int:
    """Force gate-out for the given sessions; returns how many were actually closed.

    Duplicate ids collapse, unknown ids are skipped and sessions that are already
    closed are not counted. All closures commit together.
    """
    distinct_ids = sorted(set(session_ids or []))
    if not distinct_ids:
        raise ValidationError("At least one session id is required.", code="SESSION_IDS_REQUIRED")

    now = normalize_ts(now_utc)
    sessions = load_sessions_by_ids(db, distinct_ids)

    closed_count = 0
    with employee_locks(session.employee_id for session in sessions):
        with storage_transaction(db):
            for session in sessions:
                if close_session(db, session, gate_out_at=now) is not None:
                    closed_count += 1

    logger.info(
        "bulk_gate_out_completed",
        extra={
            "requested": len(distinct_ids),
            "found": len(sessions),
            "closed_count": closed_count,
        },
    )
    return closed_count
