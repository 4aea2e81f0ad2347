from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field

from app.models import DayStatus, EmployeeSource, ScanOutcome, ShiftName, Weekday


class AdminLoginRequest(BaseModel):
    username: str
    password: str


class AdminAuthResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class AdminMeResponse(BaseModel):
    sub: str
    username: str
    role: str
    permissions: dict[str, dict[str, bool]] = Field(default_factory=dict)
    iat: int
    exp: int


class GateScanRequest(BaseModel):
    badge_code: str = Field(default="", max_length=64)
    allow_week_off: bool = False


class GateScanResponse(BaseModel):
    outcome: ScanOutcome
    badge_code: str
    employee_name: str
    message: str
    session_id: int | None = None
    elapsed_hours: float | None = Field(
        default=None,
        description="Unrounded hours since gate-in; hours_worked holds the 1-decimal display value.",
    )
    hours_worked: str | None = Field(default=None, description="Worked hours rounded to 1 decimal, gate-out only.")
    is_overtime: bool | None = None
    is_week_off_entry: bool = False


class OpenSessionRead(BaseModel):
    session_id: int
    employee_id: int
    badge_code: str
    employee_name: str
    department: str
    shift_name: str
    work_date: date
    gate_in_at: datetime
    elapsed_hours: float
    is_week_off_entry: bool


class BulkGateOutRequest(BaseModel):
    session_ids: list[int] = Field(default_factory=list)


class BulkGateOutResponse(BaseModel):
    closed_count: int
    message: str


class DepartmentHeadcount(BaseModel):
    department: str
    inside_count: int


class LiveDashboardResponse(BaseModel):
    work_date: date
    active_employees: int
    inside_count: int
    today_entry_count: int
    week_off_today_count: int
    by_department: list[DepartmentHeadcount] = Field(default_factory=list)
    live_sessions: list[OpenSessionRead] = Field(default_factory=list)


class EmployeeCreate(BaseModel):
    badge_code: str = Field(min_length=1, max_length=64)
    employee_code: str | None = Field(default=None, max_length=64)
    full_name: str = Field(min_length=1, max_length=255)
    gender: str = Field(default="", max_length=32)
    department: str = Field(default="", max_length=255)
    designation: str | None = Field(default=None, max_length=255)
    date_of_joining: date | None = None
    is_active: bool = True
    shift_name: ShiftName = ShiftName.GENERAL
    week_off: Weekday = Weekday.SUNDAY


class EmployeeUpdate(BaseModel):
    full_name: str | None = Field(default=None, min_length=1, max_length=255)
    gender: str | None = Field(default=None, max_length=32)
    department: str | None = Field(default=None, max_length=255)
    designation: str | None = Field(default=None, max_length=255)
    is_active: bool | None = None


class EmployeeRead(BaseModel):
    id: int
    badge_code: str
    employee_code: str
    full_name: str
    gender: str
    department: str
    designation: str
    date_of_joining: date | None
    added_via: EmployeeSource
    is_active: bool
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class RosterRead(BaseModel):
    id: int
    employee_id: int
    badge_code: str
    employee_name: str
    gender: str
    department: str
    designation: str
    shift_name: ShiftName
    week_off: Weekday
    effective_date: date | None
    updated_at: datetime | None = None


class RosterUpdate(BaseModel):
    shift_name: ShiftName | None = None
    week_off: Weekday | None = None


class RosterImportRow(BaseModel):
    badge_code: str = Field(default="", max_length=64)
    full_name: str = Field(default="", max_length=255)
    employee_code: str | None = Field(default=None, max_length=64)
    gender: str | None = Field(default=None, max_length=32)
    department: str | None = Field(default=None, max_length=255)
    designation: str | None = Field(default=None, max_length=255)
    shift_name: str | None = Field(default=None, max_length=32)
    week_off: str | None = Field(default=None, max_length=16)
    date_of_joining: date | None = None


class RosterBatchRequest(BaseModel):
    rows: list[RosterImportRow] = Field(default_factory=list)


class RosterBatchResult(BaseModel):
    created_count: int
    updated_count: int
    skipped_count: int = 0


class WipeResponse(BaseModel):
    ok: bool
    deleted_sessions: int
    deleted_rosters: int
    deleted_employees: int


class ReportRow(BaseModel):
    employee_id: int
    badge_code: str
    employee_name: str
    employee_code: str
    gender: str
    department: str
    designation: str
    week_off: str
    date_of_joining: date | None
    date: date
    status: DayStatus
    shift_name: str
    session_count: int = 0
    gate_in_at: datetime | None = None
    gate_out_at: datetime | None = None
    total_hours: float = 0.0
    overtime_hours: float = 0.0


class StatusMatrixRow(BaseModel):
    employee_id: int
    badge_code: str
    employee_name: str
    employee_code: str
    gender: str
    department: str
    designation: str
    shift_name: str
    week_off: str
    date_of_joining: date | None
    statuses: dict[date, DayStatus] = Field(default_factory=dict)
    total_present: int = 0


class DetailedSessionRow(BaseModel):
    session_id: int
    badge_code: str
    employee_code: str
    employee_name: str
    department: str
    shift_name: str
    work_date: date
    gate_in_at: datetime
    gate_out_at: datetime | None
    is_week_off_entry: bool
    working_hours: float
    overtime_hours: float


class NewJoinerRead(BaseModel):
    id: int
    badge_code: str
    employee_code: str
    full_name: str
    gender: str
    department: str
    shift_name: str
    date_of_joining: date | None
