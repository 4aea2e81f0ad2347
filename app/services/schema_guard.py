from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError


@dataclass(frozen=True, slots=True)
class SchemaGuardResult:
    ok: bool
    checked_at_utc: datetime
    issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "checked_at_utc": self.checked_at_utc.isoformat(),
            "issues": list(self.issues),
            "warnings": list(self.warnings),
            "issue_count": len(self.issues),
            "warning_count": len(self.warnings),
        }


REQUIRED_TABLE_COLUMNS: dict[str, set[str]] = {
    "employees": {"id", "badge_code", "employee_code", "department", "is_active", "added_via"},
    "roster_assignments": {"id", "employee_id", "shift_name", "week_off"},
    "attendance_sessions": {"id", "employee_id", "work_date", "gate_in_at", "gate_out_at", "is_overtime"},
    "open_sessions": {"employee_id", "session_id"},
    "audit_logs": {"id", "action"},
    "alembic_version": {"version_num"},
}

# The open-session index is only a guarantee while employee_id stays its whole primary key.
REQUIRED_PRIMARY_KEYS: dict[str, list[str]] = {
    "open_sessions": ["employee_id"],
}


def _unique_column_sets(inspector: Any, table_name: str) -> set[tuple[str, ...]]:
    unique_sets: set[tuple[str, ...]] = set()
    for constraint in inspector.get_unique_constraints(table_name) or []:
        unique_sets.add(tuple(constraint.get("column_names") or ()))
    for index in inspector.get_indexes(table_name) or []:
        if index.get("unique"):
            unique_sets.add(tuple(index.get("column_names") or ()))
    return unique_sets


def verify_runtime_schema(engine: Engine) -> SchemaGuardResult:
    issues: list[str] = []
    warnings: list[str] = []
    checked_at_utc = datetime.now(timezone.utc)
    inspector = inspect(engine)

    for table_name, required_columns in REQUIRED_TABLE_COLUMNS.items():
        try:
            column_names = {str(item.get("name")) for item in inspector.get_columns(table_name)}
        except SQLAlchemyError as exc:
            issues.append(f"TABLE_UNREADABLE:{table_name}:{exc.__class__.__name__}")
            continue
        if not column_names:
            issues.append(f"MISSING_TABLE:{table_name}")
            continue

        missing_columns = sorted(item for item in required_columns if item not in column_names)
        if missing_columns:
            issues.append(f"MISSING_COLUMNS:{table_name}:{','.join(missing_columns)}")

    for table_name, expected_columns in REQUIRED_PRIMARY_KEYS.items():
        try:
            pk_columns = list(inspector.get_pk_constraint(table_name).get("constrained_columns") or [])
        except SQLAlchemyError as exc:
            warnings.append(f"PK_INSPECTION_FAILED:{table_name}:{exc.__class__.__name__}")
            continue
        if pk_columns != expected_columns:
            issues.append(f"UNEXPECTED_PRIMARY_KEY:{table_name}:{','.join(pk_columns) or '-'}")

    try:
        if ("badge_code",) not in _unique_column_sets(inspector, "employees"):
            issues.append("MISSING_UNIQUE:employees:badge_code")
        if ("session_id",) not in _unique_column_sets(inspector, "open_sessions"):
            issues.append("MISSING_UNIQUE:open_sessions:session_id")
    except SQLAlchemyError as exc:
        warnings.append(f"UNIQUE_INSPECTION_FAILED:{exc.__class__.__name__}")

    try:
        with engine.connect() as connection:
            row = connection.execute(text("SELECT version_num FROM alembic_version LIMIT 1")).scalar()
            version = str(row).strip() if row is not None else ""
            if not version:
                issues.append("ALEMBIC_VERSION_EMPTY")
    except SQLAlchemyError as exc:
        issues.append(f"ALEMBIC_VERSION_CHECK_FAILED:{exc.__class__.__name__}")

    return SchemaGuardResult(
        ok=len(issues) == 0,
        checked_at_utc=checked_at_utc,
        issues=issues,
        warnings=warnings,
    )
