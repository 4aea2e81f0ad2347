#!/usr/bin/env python
from __future__ import annotations

import json
import sys
from datetime import date
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from sqlalchemy import func, select

from app.db import SessionLocal
from app.logging_utils import setup_json_logging
from app.models import Employee, ShiftName, Weekday
from app.schemas import RosterImportRow
from app.services.roster import upsert_roster_batch

DEMO_EMPLOYEES = [
    ("SLP001", "Rahul Kumar", "EMP001", "Male", "Inbound", date(2023, 1, 15)),
    ("SLP002", "Priya Sharma", "EMP002", "Female", "Outbound", date(2023, 2, 20)),
    ("SLP003", "Amit Singh", "EMP003", "Male", "Returns", date(2023, 3, 10)),
    ("SLP004", "Sneha Patel", "EMP004", "Female", "Inventory", date(2023, 4, 5)),
    ("SLP005", "Vikram Yadav", "EMP005", "Male", "VNA", date(2023, 5, 12)),
    ("SLP006", "Anita Desai", "EMP006", "Female", "Inbound", date(2023, 6, 18)),
    ("SLP007", "Rajesh Gupta", "EMP007", "Male", "Outbound", date(2023, 7, 22)),
    ("SLP008", "Kavita Nair", "EMP008", "Female", "Returns", date(2023, 8, 30)),
]
DEMO_SHIFTS = [ShiftName.MORNING, ShiftName.EVENING, ShiftName.NIGHT, ShiftName.GENERAL]
DEMO_WEEK_OFFS = [
    Weekday.SUNDAY,
    Weekday.MONDAY,
    Weekday.TUESDAY,
    Weekday.WEDNESDAY,
    Weekday.THURSDAY,
    Weekday.FRIDAY,
    Weekday.SATURDAY,
]


def demo_rows() -> list[RosterImportRow]:
    return [
        RosterImportRow(
            badge_code=badge_code,
            full_name=full_name,
            employee_code=employee_code,
            gender=gender,
            department=department,
            designation="Associate",
            shift_name=DEMO_SHIFTS[idx % len(DEMO_SHIFTS)].value,
            week_off=DEMO_WEEK_OFFS[idx % len(DEMO_WEEK_OFFS)].value,
            date_of_joining=date_of_joining,
        )
        for idx, (badge_code, full_name, employee_code, gender, department, date_of_joining) in enumerate(
            DEMO_EMPLOYEES
        )
    ]


def run() -> dict:
    with SessionLocal() as db:
        existing = db.scalar(select(func.count(Employee.id))) or 0
        if existing:
            return {"seeded": False, "reason": "employees already present", "employee_count": existing}
        result = upsert_roster_batch(db, demo_rows())
        return {"seeded": True, **result.model_dump()}


if __name__ == "__main__":
    setup_json_logging()
    print(json.dumps(run(), ensure_ascii=False, indent=2))
