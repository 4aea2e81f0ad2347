from __future__ import annotations

import unittest
from datetime import date, datetime, timezone
from io import BytesIO

from openpyxl import Workbook, load_workbook

from app.errors import ValidationError
from app.models import DayStatus, ShiftName, Weekday
from app.schemas import DetailedSessionRow, ReportRow, RosterRead, StatusMatrixRow
from app.services.exports import (
    DETAILED_HEADERS,
    MATRIX_LEADING_HEADERS,
    ROSTER_TEMPLATE_HEADERS,
    build_absent_xlsx,
    build_detailed_xlsx,
    build_roster_template_xlsx,
    build_roster_xlsx,
    build_status_matrix_xlsx,
    parse_roster_workbook,
)
from app.services.reports import StatusMatrix


def _sheet_rows(payload: bytes) -> list[tuple]:
    wb = load_workbook(BytesIO(payload))
    return list(wb.active.iter_rows(values_only=True))


def _workbook_bytes(rows: list[list[object]]) -> bytes:
    wb = Workbook()
    ws = wb.active
    for row in rows:
        ws.append(row)
    stream = BytesIO()
    wb.save(stream)
    return stream.getvalue()


class RosterWorkbookParsingTests(unittest.TestCase):
    def test_template_round_trips_through_the_parser(self) -> None:
        (row,) = parse_roster_workbook(build_roster_template_xlsx())

        self.assertEqual(row.badge_code, "SLP001")
        self.assertEqual(row.full_name, "John Doe")
        self.assertEqual(row.employee_code, "EMP001")
        self.assertEqual(row.shift_name, "General")
        self.assertEqual(row.week_off, "Sunday")
        self.assertEqual(row.date_of_joining, date(2024, 1, 15))

    def test_header_aliases_and_date_formats(self) -> None:
        payload = _workbook_bytes(
            [
                ["slpid", "NAME", "Shift", "Week Off", "Date of Joining"],
                ["slp010", "Anil", "Night", "Monday", "05/02/2024"],
                ["SLP011", "Bina", None, None, datetime(2024, 2, 6)],
                [None, "No Badge", "Night", "Monday", None],
                [12345, "Numeric Badge", "Morning", "Tuesday", "2024-02-07"],
            ]
        )

        rows = parse_roster_workbook(payload)

        self.assertEqual([row.badge_code for row in rows], ["SLP010", "SLP011", "12345"])
        self.assertEqual(rows[0].date_of_joining, date(2024, 2, 5))
        self.assertEqual(rows[1].date_of_joining, date(2024, 2, 6))
        self.assertIsNone(rows[1].shift_name)
        self.assertEqual(rows[2].date_of_joining, date(2024, 2, 7))

    def test_rejects_unusable_uploads(self) -> None:
        cases = {
            "INVALID_WORKBOOK": b"not an xlsx file",
            "EMPTY_WORKBOOK": _workbook_bytes([ROSTER_TEMPLATE_HEADERS]),
            "MISSING_COLUMNS": _workbook_bytes([["Badge", "Who"], ["SLP001", "Someone"]]),
        }
        for code, payload in cases.items():
            with self.subTest(code=code):
                with self.assertRaises(ValidationError) as ctx:
                    parse_roster_workbook(payload)
                self.assertEqual(ctx.exception.code, code)


class ReportWorkbookTests(unittest.TestCase):
    def test_status_matrix_layout(self) -> None:
        days = [date(2024, 1, 10), date(2024, 1, 11)]
        matrix = StatusMatrix(
            dates=days,
            rows=[
                StatusMatrixRow(
                    employee_id=1,
                    badge_code="SLP001",
                    employee_name="Asha Rao",
                    employee_code="EMP001",
                    gender="Female",
                    department="Inbound",
                    designation="Associate",
                    shift_name="Morning",
                    week_off="Sunday",
                    date_of_joining=date(2023, 1, 15),
                    statuses={days[0]: DayStatus.ABSENT, days[1]: DayStatus.PRESENT},
                    total_present=1,
                )
            ],
        )

        rows = _sheet_rows(build_status_matrix_xlsx(matrix))

        self.assertEqual(list(rows[0]), MATRIX_LEADING_HEADERS + ["2024-01-10", "2024-01-11", "Total Present"])
        self.assertEqual(rows[1][2], "SLP001")
        self.assertEqual(list(rows[1][-3:]), ["A", "P", 1])

    def test_roster_export_lists_every_roster(self) -> None:
        roster = RosterRead(
            id=1,
            employee_id=1,
            badge_code="SLP001",
            employee_name="Asha Rao",
            gender="Female",
            department="Inbound",
            designation="Associate",
            shift_name=ShiftName.NIGHT,
            week_off=Weekday.FRIDAY,
            effective_date=date(2024, 1, 1),
        )

        rows = _sheet_rows(build_roster_xlsx([roster]))

        self.assertEqual(rows[1][0], "SLP001")
        self.assertEqual(rows[1][5:8], ("Night", "Friday", "2024-01-01"))

    def test_detailed_export_uses_local_times(self) -> None:
        row = DetailedSessionRow(
            session_id=1,
            badge_code="SLP001",
            employee_code="EMP001",
            employee_name="Asha Rao",
            department="Inbound",
            shift_name="Morning",
            work_date=date(2024, 1, 10),
            gate_in_at=datetime(2024, 1, 10, 3, 30, tzinfo=timezone.utc),
            gate_out_at=None,
            is_week_off_entry=False,
            working_hours=0.0,
            overtime_hours=0.0,
        )

        rows = _sheet_rows(build_detailed_xlsx([row]))

        self.assertEqual(list(rows[0]), DETAILED_HEADERS)
        self.assertEqual(rows[1][5], "10/01/2024")
        self.assertEqual(rows[1][6], "09:00 AM")

    def test_absent_export_has_one_line_per_row(self) -> None:
        report_row = ReportRow(
            employee_id=1,
            badge_code="SLP001",
            employee_name="Asha Rao",
            employee_code="EMP001",
            gender="Female",
            department="Inbound",
            designation="Associate",
            week_off="Sunday",
            date_of_joining=None,
            date=date(2024, 1, 10),
            status=DayStatus.ABSENT,
            shift_name="Morning",
        )

        rows = _sheet_rows(build_absent_xlsx([report_row, report_row]))

        self.assertEqual(len(rows), 3)
        self.assertEqual(rows[1][-1], "A")


if __name__ == "__main__":
    unittest.main()
