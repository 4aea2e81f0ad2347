#!/usr/bin/env python
from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import create_engine, inspect, text

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from app.settings import get_settings

EXPECTED_HEAD = "0001_initial"
REQUIRED_TABLES = ("employees", "roster_assignments", "attendance_sessions", "open_sessions", "audit_logs")


def run() -> dict:
    database_url = get_settings().database_url
    engine = create_engine(database_url)
    report: dict = {
        "generated_at_utc": datetime.now(timezone.utc).isoformat(),
        "database_url": engine.url.render_as_string(hide_password=True),
        "checks": [],
    }

    def add(name: str, status: str, details: dict) -> None:
        report["checks"].append(
            {
                "name": name,
                "status": status,
                "details": details,
            }
        )

    tables = set(inspect(engine).get_table_names())
    missing_tables = [table for table in REQUIRED_TABLES if table not in tables]
    add("required_tables", "fail" if missing_tables else "ok", {"missing": missing_tables})

    with engine.connect() as conn:
        current_versions: list[str] = []
        if "alembic_version" in tables:
            current_versions = [
                row[0]
                for row in conn.execute(text("select version_num from alembic_version")).fetchall()
            ]
        add("alembic_version", "ok" if current_versions else "fail", {"current": current_versions})
        add(
            "migration_up_to_date",
            "ok" if EXPECTED_HEAD in current_versions else "warn",
            {"expected_head": EXPECTED_HEAD, "current": current_versions},
        )

        if "attendance_sessions" not in tables or "open_sessions" not in tables:
            return report

        multiple_open = conn.execute(
            text(
                """
                select employee_id, count(*)
                from attendance_sessions
                where gate_out_at is null
                group by employee_id
                having count(*) > 1
                """
            )
        ).fetchall()
        add(
            "employees_with_multiple_open_sessions",
            "fail" if multiple_open else "ok",
            {"rows": [list(row) for row in multiple_open]},
        )

        stale_index_rows = conn.execute(
            text(
                """
                select o.employee_id, o.session_id
                from open_sessions o
                left join attendance_sessions s on s.id = o.session_id
                where s.id is null or s.gate_out_at is not null or s.employee_id <> o.employee_id
                limit 20
                """
            )
        ).fetchall()
        add(
            "open_session_index_points_at_closed_session",
            "fail" if stale_index_rows else "ok",
            {"rows": [list(row) for row in stale_index_rows]},
        )

        unindexed_open = conn.execute(
            text(
                """
                select s.id
                from attendance_sessions s
                left join open_sessions o on o.session_id = s.id
                where s.gate_out_at is null and o.session_id is null
                limit 20
                """
            )
        ).fetchall()
        add(
            "open_session_missing_from_index",
            "fail" if unindexed_open else "ok",
            {"sample_ids": [row[0] for row in unindexed_open]},
        )

        negative_duration = conn.execute(
            text(
                """
                select id
                from attendance_sessions
                where gate_out_at is not null and gate_out_at < gate_in_at
                limit 20
                """
            )
        ).fetchall()
        add(
            "session_closed_before_open",
            "fail" if negative_duration else "ok",
            {"sample_ids": [row[0] for row in negative_duration]},
        )

    return report


if __name__ == "__main__":
    print(json.dumps(run(), ensure_ascii=False, indent=2))
