from __future__ import annotations

import unittest
from datetime import date

from sqlalchemy import func, select

from app.errors import ConflictError, NotFoundError, ValidationError
from app.models import AttendanceSession, Employee, EmployeeSource, RosterAssignment, ShiftName, Weekday
from app.schemas import EmployeeCreate, EmployeeUpdate, RosterImportRow, RosterUpdate
from app.services.gate import scan_gate
from app.services.roster import (
    create_employee,
    find_employee_by_badge,
    list_employees,
    list_rosters,
    update_employee,
    update_roster,
    upsert_roster_batch,
    wipe_all_attendance_data,
)
from tests.support import add_employee, ist, make_session_factory

NOW = ist(2024, 1, 10, 12, 0)


class RosterBatchTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()

    def tearDown(self) -> None:
        self.db.close()

    def test_creates_new_employees_with_defaults(self) -> None:
        result = upsert_roster_batch(
            self.db,
            [
                RosterImportRow(badge_code="slp201", full_name="Ravi Kumar", shift_name="night", week_off="friday"),
                RosterImportRow(badge_code="SLP202", full_name="Meena Iyer"),
            ],
            now_utc=NOW,
        )

        self.assertEqual((result.created_count, result.updated_count, result.skipped_count), (2, 0, 0))
        ravi = find_employee_by_badge(self.db, "SLP201")
        self.assertIsNotNone(ravi)
        assert ravi is not None
        self.assertEqual(ravi.added_via, EmployeeSource.ROSTER)
        self.assertEqual(ravi.department, "Inbound")
        self.assertEqual(ravi.gender, "Male")
        self.assertEqual(ravi.employee_code, "SLP201")
        self.assertEqual(ravi.date_of_joining, date(2024, 1, 10))
        self.assertEqual(ravi.roster.shift_name, ShiftName.NIGHT)
        self.assertEqual(ravi.roster.week_off, Weekday.FRIDAY)

        meena = find_employee_by_badge(self.db, "SLP202")
        assert meena is not None
        self.assertEqual(meena.roster.shift_name, ShiftName.GENERAL)
        self.assertEqual(meena.roster.week_off, Weekday.SUNDAY)

    def test_updates_existing_employee_and_keeps_missing_fields(self) -> None:
        add_employee(self.db, "SLP001", full_name="Old Name", department="Outbound", week_off=Weekday.MONDAY)

        result = upsert_roster_batch(
            self.db,
            [RosterImportRow(badge_code="SLP001", full_name="New Name", shift_name="Evening")],
            now_utc=NOW,
        )

        self.assertEqual((result.created_count, result.updated_count), (0, 1))
        employee = find_employee_by_badge(self.db, "SLP001")
        assert employee is not None
        self.assertEqual(employee.full_name, "New Name")
        self.assertEqual(employee.department, "Outbound")
        self.assertEqual(employee.added_via, EmployeeSource.MANUAL)
        self.assertEqual(employee.roster.shift_name, ShiftName.EVENING)
        self.assertEqual(employee.roster.week_off, Weekday.MONDAY)

    def test_rows_without_badge_or_name_are_skipped(self) -> None:
        result = upsert_roster_batch(
            self.db,
            [
                RosterImportRow(badge_code="", full_name="No Badge"),
                RosterImportRow(badge_code="SLP203", full_name="  "),
                RosterImportRow(badge_code="SLP204", full_name="Kept"),
            ],
            now_utc=NOW,
        )

        self.assertEqual((result.created_count, result.skipped_count), (1, 2))

    def test_repeated_badge_in_one_batch_updates_the_first(self) -> None:
        result = upsert_roster_batch(
            self.db,
            [
                RosterImportRow(badge_code="SLP205", full_name="First", shift_name="Morning"),
                RosterImportRow(badge_code="SLP205", full_name="Second", shift_name="Night"),
            ],
            now_utc=NOW,
        )

        self.assertEqual((result.created_count, result.updated_count), (1, 1))
        self.assertEqual(self.db.scalar(select(func.count()).select_from(Employee)), 1)
        employee = find_employee_by_badge(self.db, "SLP205")
        assert employee is not None
        self.assertEqual(employee.full_name, "Second")
        self.assertEqual(employee.roster.shift_name, ShiftName.NIGHT)

    def test_invalid_value_rejects_the_whole_batch(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            upsert_roster_batch(
                self.db,
                [
                    RosterImportRow(badge_code="SLP206", full_name="Valid"),
                    RosterImportRow(badge_code="SLP207", full_name="Broken", shift_name="Graveyard"),
                ],
                now_utc=NOW,
            )

        self.assertEqual(ctx.exception.code, "INVALID_SHIFT_NAME")
        self.assertEqual(self.db.scalar(select(func.count()).select_from(Employee)), 0)

        with self.assertRaises(ValidationError) as week_off_ctx:
            upsert_roster_batch(
                self.db,
                [RosterImportRow(badge_code="SLP208", full_name="Broken", week_off="Someday")],
                now_utc=NOW,
            )
        self.assertEqual(week_off_ctx.exception.code, "INVALID_WEEK_OFF")

    def test_empty_batch_is_rejected(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            upsert_roster_batch(self.db, [])

        self.assertEqual(ctx.exception.code, "EMPTY_ROSTER_BATCH")


class EmployeeAdministrationTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()

    def tearDown(self) -> None:
        self.db.close()

    def test_create_employee_attaches_roster(self) -> None:
        employee = create_employee(
            self.db,
            EmployeeCreate(
                badge_code=" slp301 ",
                full_name="Kiran Das",
                department="Returns",
                shift_name=ShiftName.EVENING,
                week_off=Weekday.SATURDAY,
            ),
            now_utc=NOW,
        )

        self.assertEqual(employee.badge_code, "SLP301")
        self.assertEqual(employee.added_via, EmployeeSource.MANUAL)
        self.assertEqual(employee.designation, "Associate")
        self.assertEqual(employee.date_of_joining, date(2024, 1, 10))
        self.assertEqual(employee.roster.shift_name, ShiftName.EVENING)
        self.assertEqual(employee.roster.week_off, Weekday.SATURDAY)

    def test_create_employee_rejects_duplicate_badge(self) -> None:
        add_employee(self.db, "SLP302")

        with self.assertRaises(ConflictError) as ctx:
            create_employee(self.db, EmployeeCreate(badge_code="slp302", full_name="Again"))

        self.assertEqual(ctx.exception.code, "BADGE_CODE_EXISTS")

    def test_update_employee_and_filter_inactive(self) -> None:
        employee = add_employee(self.db, "SLP303")
        add_employee(self.db, "SLP304", department="Outbound")

        update_employee(self.db, employee.id, EmployeeUpdate(is_active=False, department="Returns"))

        active = list_employees(self.db, include_inactive=False)
        self.assertEqual([item.badge_code for item in active], ["SLP304"])
        returns = list_employees(self.db, department="Returns")
        self.assertEqual([item.badge_code for item in returns], ["SLP303"])

        with self.assertRaises(NotFoundError):
            update_employee(self.db, 9999, EmployeeUpdate(full_name="Ghost"))

    def test_update_roster(self) -> None:
        add_employee(self.db, "SLP305")
        (roster,) = list_rosters(self.db)

        updated = update_roster(self.db, roster.id, RosterUpdate(week_off=Weekday.TUESDAY))

        self.assertEqual(updated.week_off, Weekday.TUESDAY)
        self.assertEqual(updated.shift_name, ShiftName.MORNING)
        self.assertEqual(updated.badge_code, "SLP305")

        with self.assertRaises(NotFoundError) as ctx:
            update_roster(self.db, 9999, RosterUpdate(shift_name=ShiftName.NIGHT))
        self.assertEqual(ctx.exception.code, "ROSTER_NOT_FOUND")

    def test_wipe_removes_everything(self) -> None:
        add_employee(self.db, "SLP306")
        add_employee(self.db, "SLP307", shift_name=None)
        scan_gate(self.db, "SLP306", now_utc=NOW)

        result = wipe_all_attendance_data(self.db)

        self.assertTrue(result.ok)
        self.assertEqual(
            (result.deleted_sessions, result.deleted_rosters, result.deleted_employees),
            (1, 1, 2),
        )
        for model in (Employee, RosterAssignment, AttendanceSession):
            self.assertEqual(self.db.scalar(select(func.count()).select_from(model)), 0)


if __name__ == "__main__":
    unittest.main()
