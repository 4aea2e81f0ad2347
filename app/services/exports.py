from __future__ import annotations

import logging
import zipfile
from collections.abc import Iterable, Sequence
from datetime import date, datetime
from io import BytesIO
from typing import Any

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.utils.datetime import from_excel
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.worksheet.worksheet import Worksheet

from app.errors import ValidationError
from app.models import DayStatus
from app.schemas import DetailedSessionRow, ReportRow, RosterImportRow, RosterRead
from app.services.hours import EXPORT_DECIMALS, format_hours, normalize_ts
from app.services.local_time import attendance_timezone
from app.services.reports import StatusMatrix

logger = logging.getLogger("app.exports")

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

ROSTER_EXPORT_HEADERS = [
    "SLPID",
    "Employee Name",
    "Gender",
    "Department",
    "Designation",
    "Shift Name",
    "Week Off",
    "Effective Date",
]
ROSTER_TEMPLATE_HEADERS = [
    "SLPID",
    "Employee Name",
    "Gender",
    "Employee ID",
    "Department",
    "Designation",
    "Date of Joining",
    "Shift Name",
    "Week Off",
]
ROSTER_TEMPLATE_SAMPLE = [
    "SLP001",
    "John Doe",
    "Male",
    "EMP001",
    "Inbound",
    "Associate",
    "2024-01-15",
    "General",
    "Sunday",
]
MATRIX_LEADING_HEADERS = [
    "Name",
    "Gender",
    "SLPID",
    "Employee ID",
    "Department",
    "Designation",
    "Shift",
    "Week Off",
    "Date of Joining",
]
NEW_JOINER_LEADING_HEADERS = [
    "Name",
    "Gender",
    "SLPID",
    "Employee ID",
    "Department",
    "Shift",
    "Date of Joining",
]
ABSENT_HEADERS = [
    "SLPID",
    "Employee Name",
    "Employee ID",
    "Gender",
    "Department",
    "Designation",
    "Date of Joining",
    "Shift",
    "Week Off",
    "Date",
    "Gate In Date",
    "Gate In Time",
    "Gate Out Time",
    "Total Hours",
    "OT Hours",
    "Status",
]
DETAILED_HEADERS = [
    "SLPID",
    "Employee ID",
    "Name",
    "Department",
    "Shift",
    "Gate In Date",
    "Check-In Time",
    "Check-Out Time",
    "Week Off Present (Yes / No)",
    "Working Hours",
    "OT Hours",
]

# Header aliases accepted on upload, matched case-insensitively.
IMPORT_COLUMN_ALIASES: dict[str, tuple[str, ...]] = {
    "badge_code": ("slpid",),
    "full_name": ("name", "employee name"),
    "employee_code": ("employee id",),
    "gender": ("gender",),
    "department": ("department",),
    "designation": ("designation",),
    "shift_name": ("shift name", "shift"),
    "week_off": ("week off",),
    "date_of_joining": ("date of joining",),
}

HEADER_FILL = PatternFill(fill_type="solid", fgColor="0B4F73")
ZEBRA_FILL = PatternFill(fill_type="solid", fgColor="F7FBFE")
ABSENT_FILL = PatternFill(fill_type="solid", fgColor="FDE2E4")
WEEK_OFF_FILL = PatternFill(fill_type="solid", fgColor="FFF3CD")
PRESENT_FILL = PatternFill(fill_type="solid", fgColor="E6F4EA")

HEADER_FONT = Font(bold=True, color="FFFFFF")

THIN_SIDE = Side(style="thin", color="D5E2EC")
THIN_BORDER = Border(left=THIN_SIDE, right=THIN_SIDE, top=THIN_SIDE, bottom=THIN_SIDE)

STATUS_FILLS = {
    DayStatus.PRESENT.value: PRESENT_FILL,
    DayStatus.WEEK_OFF.value: WEEK_OFF_FILL,
    DayStatus.ABSENT.value: ABSENT_FILL,
}


def _style_header(ws: Worksheet, row: int = 1) -> None:
    for cell in ws[row]:
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)
        cell.border = THIN_BORDER


def _auto_width(ws: Worksheet) -> None:
    for column_cells in ws.iter_cols(min_row=1, max_row=ws.max_row, min_col=1, max_col=ws.max_column):
        max_len = 0
        col_letter = get_column_letter(column_cells[0].column)
        for cell in column_cells:
            value = "" if cell.value is None else str(cell.value)
            max_len = max(max_len, len(value))
        ws.column_dimensions[col_letter].width = min(max_len + 2, 45)


def _style_table(ws: Worksheet, *, status_columns: Iterable[int] = ()) -> None:
    status_cols = set(status_columns)
    ws.freeze_panes = "A2"
    if ws.max_row < 2:
        return

    ws.auto_filter.ref = f"A1:{get_column_letter(ws.max_column)}{ws.max_row}"
    for row_idx in range(2, ws.max_row + 1):
        for col_idx in range(1, ws.max_column + 1):
            cell = ws.cell(row=row_idx, column=col_idx)
            cell.border = THIN_BORDER
            if col_idx in status_cols and cell.value in STATUS_FILLS:
                cell.fill = STATUS_FILLS[cell.value]
                cell.alignment = Alignment(horizontal="center", vertical="center")
                continue
            if row_idx % 2 == 0:
                cell.fill = ZEBRA_FILL
            cell.alignment = Alignment(horizontal="left", vertical="center")


def _write_sheet(
    wb: Workbook,
    title: str,
    headers: Sequence[str],
    rows: Iterable[Sequence[Any]],
    *,
    status_columns: Iterable[int] = (),
) -> Worksheet:
    ws = wb.active
    ws.title = title[:31]
    ws.append(list(headers))
    for row in rows:
        ws.append(list(row))
    _style_header(ws)
    _style_table(ws, status_columns=status_columns)
    _auto_width(ws)
    return ws


def _to_bytes(wb: Workbook) -> bytes:
    stream = BytesIO()
    wb.save(stream)
    return stream.getvalue()


def _local(value: datetime) -> datetime:
    return normalize_ts(value).astimezone(attendance_timezone())


def _format_local_date(value: datetime | None) -> str:
    if value is None:
        return "--/--/----"
    return _local(value).strftime("%d/%m/%Y")


def _format_local_time(value: datetime | None, *, empty: str = "") -> str:
    if value is None:
        return empty
    return _local(value).strftime("%I:%M %p")


def _iso(value: date | None) -> str:
    return value.isoformat() if value is not None else ""


def build_roster_xlsx(rosters: list[RosterRead]) -> bytes:
    wb = Workbook()
    _write_sheet(
        wb,
        "Roster",
        ROSTER_EXPORT_HEADERS,
        (
            [
                roster.badge_code,
                roster.employee_name,
                roster.gender,
                roster.department,
                roster.designation,
                roster.shift_name.value,
                roster.week_off.value,
                _iso(roster.effective_date),
            ]
            for roster in rosters
        ),
    )
    return _to_bytes(wb)


def build_roster_template_xlsx() -> bytes:
    wb = Workbook()
    _write_sheet(wb, "Roster Template", ROSTER_TEMPLATE_HEADERS, [ROSTER_TEMPLATE_SAMPLE])
    return _to_bytes(wb)


def _matrix_date_label(day: date, *, day_first: bool) -> str:
    if day_first:
        return day.strftime("%d-%m-%Y")
    return day.isoformat()


def build_status_matrix_xlsx(matrix: StatusMatrix, *, sheet_title: str = "Attendance") -> bytes:
    """Employee x date grid of P / WO / A with a present-day total per employee."""
    dates: list[date] = matrix.dates
    headers = MATRIX_LEADING_HEADERS + [_matrix_date_label(day, day_first=False) for day in dates] + ["Total Present"]
    first_status_col = len(MATRIX_LEADING_HEADERS) + 1

    wb = Workbook()
    _write_sheet(
        wb,
        sheet_title,
        headers,
        (
            [
                row.employee_name,
                row.gender,
                row.badge_code,
                row.employee_code,
                row.department,
                row.designation,
                row.shift_name,
                row.week_off,
                _iso(row.date_of_joining),
                *[row.statuses[day].value for day in dates],
                row.total_present,
            ]
            for row in matrix.rows
        ),
        status_columns=range(first_status_col, first_status_col + len(dates)),
    )
    return _to_bytes(wb)


def build_new_joiner_matrix_xlsx(matrix: StatusMatrix) -> bytes:
    dates: list[date] = matrix.dates
    headers = NEW_JOINER_LEADING_HEADERS + [_matrix_date_label(day, day_first=True) for day in dates]
    first_status_col = len(NEW_JOINER_LEADING_HEADERS) + 1

    wb = Workbook()
    _write_sheet(
        wb,
        "New Joiners P-A Summary",
        headers,
        (
            [
                row.employee_name,
                row.gender,
                row.badge_code,
                row.employee_code,
                row.department,
                row.shift_name,
                _iso(row.date_of_joining),
                *[row.statuses[day].value for day in dates],
            ]
            for row in matrix.rows
        ),
        status_columns=range(first_status_col, first_status_col + len(dates)),
    )
    return _to_bytes(wb)


def build_absent_xlsx(rows: list[ReportRow]) -> bytes:
    wb = Workbook()
    _write_sheet(
        wb,
        "Absents",
        ABSENT_HEADERS,
        (
            [
                row.badge_code,
                row.employee_name,
                row.employee_code,
                row.gender,
                row.department,
                row.designation,
                _iso(row.date_of_joining),
                row.shift_name,
                row.week_off,
                row.date.isoformat(),
                "--/--/----",
                "--:--",
                "--:--",
                format_hours(0.0, EXPORT_DECIMALS),
                format_hours(0.0, EXPORT_DECIMALS),
                row.status.value,
            ]
            for row in rows
            if row.status == DayStatus.ABSENT
        ),
        status_columns=[len(ABSENT_HEADERS)],
    )
    return _to_bytes(wb)


def build_detailed_xlsx(rows: list[DetailedSessionRow]) -> bytes:
    wb = Workbook()
    _write_sheet(
        wb,
        "Detailed Attendance",
        DETAILED_HEADERS,
        (
            [
                row.badge_code,
                row.employee_code,
                row.employee_name,
                row.department or "-",
                row.shift_name or "-",
                _format_local_date(row.gate_in_at),
                _format_local_time(row.gate_in_at),
                _format_local_time(row.gate_out_at),
                "Yes" if row.is_week_off_entry else "No",
                format_hours(row.working_hours, EXPORT_DECIMALS),
                format_hours(row.overtime_hours, EXPORT_DECIMALS),
            ]
            for row in rows
        ),
    )
    return _to_bytes(wb)


def _cell_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


def _parse_joining_date(value: Any) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)):
        converted = from_excel(value)
        if isinstance(converted, datetime):
            return converted.date()
        return converted if isinstance(converted, date) else None

    text = str(value).strip()
    for pattern in ("%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y"):
        try:
            return datetime.strptime(text[:10], pattern).date()
        except ValueError:
            continue
    return None


def _resolve_header_columns(header: Sequence[Any]) -> dict[str, int]:
    normalized = {
        str(value).strip().lower(): idx for idx, value in enumerate(header) if value is not None and str(value).strip()
    }
    columns: dict[str, int] = {}
    for field, aliases in IMPORT_COLUMN_ALIASES.items():
        for alias in aliases:
            if alias in normalized:
                columns[field] = normalized[alias]
                break
    return columns


def parse_roster_workbook(content: bytes) -> list[RosterImportRow]:
    """Read the first sheet of an uploaded roster workbook into import rows.

    Rows without a badge code or a name are dropped here; shift and week-off
    values are passed through untouched so the batch upsert can reject them.
    """
    try:
        wb = load_workbook(BytesIO(content), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as exc:
        raise ValidationError("Uploaded file is not a readable xlsx workbook.", code="INVALID_WORKBOOK") from exc

    try:
        ws = wb.worksheets[0] if wb.worksheets else None
        raw_rows = list(ws.iter_rows(values_only=True)) if ws is not None else []
    finally:
        wb.close()

    if len(raw_rows) < 2:
        raise ValidationError("Excel file is empty.", code="EMPTY_WORKBOOK")

    columns = _resolve_header_columns(raw_rows[0])
    if "badge_code" not in columns or "full_name" not in columns:
        raise ValidationError("Workbook needs SLPID and Employee Name columns.", code="MISSING_COLUMNS")

    def pick(raw: Sequence[Any], field: str) -> Any:
        idx = columns.get(field)
        if idx is None or idx >= len(raw):
            return None
        return raw[idx]

    parsed: list[RosterImportRow] = []
    for raw in raw_rows[1:]:
        badge_code = _cell_text(pick(raw, "badge_code"))
        full_name = _cell_text(pick(raw, "full_name"))
        if not badge_code or not full_name:
            continue
        parsed.append(
            RosterImportRow(
                badge_code=badge_code.upper(),
                full_name=full_name,
                employee_code=_cell_text(pick(raw, "employee_code")),
                gender=_cell_text(pick(raw, "gender")),
                department=_cell_text(pick(raw, "department")),
                designation=_cell_text(pick(raw, "designation")),
                shift_name=_cell_text(pick(raw, "shift_name")),
                week_off=_cell_text(pick(raw, "week_off")),
                date_of_joining=_parse_joining_date(pick(raw, "date_of_joining")),
            )
        )

    if not parsed:
        raise ValidationError("Excel file has no usable roster rows.", code="EMPTY_WORKBOOK")

    logger.info("roster_workbook_parsed", extra={"rows": len(parsed), "raw_rows": len(raw_rows) - 1})
    return parsed
