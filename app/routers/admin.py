from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, File, Query, Request, Response, UploadFile, status
from sqlalchemy.orm import Session

from app.audit import audit_admin_action, log_audit
from app.db import get_db
from app.errors import ApiError, ValidationError, get_request_id
from app.models import AuditActorType
from app.schemas import (
    AdminAuthResponse,
    AdminLoginRequest,
    AdminMeResponse,
    EmployeeCreate,
    EmployeeRead,
    EmployeeUpdate,
    NewJoinerRead,
    ReportRow,
    RosterBatchRequest,
    RosterBatchResult,
    RosterRead,
    RosterUpdate,
    WipeResponse,
)
from app.security import (
    create_access_token,
    permissions_for_role,
    require_auth,
    require_permission,
    verify_admin_credentials,
)
from app.services.exports import (
    XLSX_MEDIA_TYPE,
    build_absent_xlsx,
    build_detailed_xlsx,
    build_new_joiner_matrix_xlsx,
    build_roster_template_xlsx,
    build_roster_xlsx,
    build_status_matrix_xlsx,
    parse_roster_workbook,
)
from app.services.reports import (
    build_detailed_rows,
    build_new_joiner_matrix,
    build_report,
    build_status_matrix,
    list_new_joiners,
    new_joiner_window,
)
from app.services.roster import (
    create_employee,
    list_employees,
    list_rosters,
    update_employee,
    update_roster,
    upsert_roster_batch,
    wipe_all_attendance_data,
)

router = APIRouter(tags=["admin"])

MAX_UPLOAD_BYTES = 5 * 1024 * 1024


def _client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


def _xlsx_response(payload: bytes, filename: str) -> Response:
    return Response(
        content=payload,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/api/auth/login", response_model=AdminAuthResponse)
def admin_login(
    payload: AdminLoginRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> AdminAuthResponse:
    username = payload.username.strip()
    request.state.actor = "system"
    request.state.actor_id = "system"

    if not verify_admin_credentials(username, payload.password):
        log_audit(
            db,
            actor_type=AuditActorType.SYSTEM,
            actor_id=username or "unknown",
            action="ADMIN_LOGIN_FAIL",
            success=False,
            ip=_client_ip(request),
            user_agent=request.headers.get("user-agent"),
            request_id=get_request_id(request),
        )
        raise ApiError(status_code=401, code="INVALID_CREDENTIALS", message="Invalid credentials.")

    token, expires_in, _claims = create_access_token(sub=username, username=username, role="admin")
    log_audit(
        db,
        actor_type=AuditActorType.ADMIN,
        actor_id=username,
        action="ADMIN_LOGIN_SUCCESS",
        success=True,
        ip=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
        request_id=get_request_id(request),
    )
    return AdminAuthResponse(access_token=token, expires_in=expires_in)


@router.get("/api/auth/me", response_model=AdminMeResponse)
def admin_me(claims: dict[str, Any] = Depends(require_auth)) -> AdminMeResponse:
    return AdminMeResponse(
        sub=str(claims["sub"]),
        username=str(claims.get("username") or claims["sub"]),
        role=str(claims["role"]),
        permissions=permissions_for_role(str(claims["role"])),
        iat=int(claims["iat"]),
        exp=int(claims["exp"]),
    )


@router.get("/api/employees", response_model=list[EmployeeRead])
def employees_list(
    department: str | None = Query(default=None),
    include_inactive: bool = Query(default=True),
    db: Session = Depends(get_db),
    _claims: dict[str, Any] = Depends(require_permission("roster")),
) -> list[EmployeeRead]:
    employees = list_employees(db, include_inactive=include_inactive, department=department)
    return [EmployeeRead.model_validate(item) for item in employees]


@router.post("/api/employees", response_model=EmployeeRead, status_code=status.HTTP_201_CREATED)
def employees_create(
    payload: EmployeeCreate,
    request: Request,
    db: Session = Depends(get_db),
    claims: dict[str, Any] = Depends(require_permission("roster", write=True)),
) -> EmployeeRead:
    employee = create_employee(db, payload)
    result = EmployeeRead.model_validate(employee)
    audit_admin_action(
        db,
        request,
        claims,
        action="EMPLOYEE_CREATED",
        entity_type="employee",
        entity_id=result.id,
        details={"badge_code": result.badge_code},
    )
    return result


@router.put("/api/employees/{employee_id}", response_model=EmployeeRead)
def employees_update(
    employee_id: int,
    payload: EmployeeUpdate,
    request: Request,
    db: Session = Depends(get_db),
    claims: dict[str, Any] = Depends(require_permission("roster", write=True)),
) -> EmployeeRead:
    employee = update_employee(db, employee_id, payload)
    result = EmployeeRead.model_validate(employee)
    audit_admin_action(
        db,
        request,
        claims,
        action="EMPLOYEE_UPDATED",
        entity_type="employee",
        entity_id=employee_id,
        details=payload.model_dump(exclude_none=True),
    )
    return result


@router.get("/api/rosters", response_model=list[RosterRead])
def rosters_list(
    db: Session = Depends(get_db),
    _claims: dict[str, Any] = Depends(require_permission("roster")),
) -> list[RosterRead]:
    return list_rosters(db)


@router.put("/api/rosters/{roster_id}", response_model=RosterRead)
def rosters_update(
    roster_id: int,
    payload: RosterUpdate,
    request: Request,
    db: Session = Depends(get_db),
    claims: dict[str, Any] = Depends(require_permission("roster", write=True)),
) -> RosterRead:
    result = update_roster(db, roster_id, payload)
    audit_admin_action(
        db,
        request,
        claims,
        action="ROSTER_UPDATED",
        entity_type="roster_assignment",
        entity_id=roster_id,
        details=payload.model_dump(mode="json", exclude_none=True),
    )
    return result


@router.post("/api/rosters/batch", response_model=RosterBatchResult)
def rosters_batch(
    payload: RosterBatchRequest,
    request: Request,
    db: Session = Depends(get_db),
    claims: dict[str, Any] = Depends(require_permission("roster", write=True)),
) -> RosterBatchResult:
    result = upsert_roster_batch(db, payload.rows)
    audit_admin_action(
        db,
        request,
        claims,
        action="ROSTER_BATCH_UPSERTED",
        entity_type="roster_assignment",
        details=result.model_dump(),
    )
    return result


@router.post("/api/rosters/upload", response_model=RosterBatchResult)
def rosters_upload(
    request: Request,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    claims: dict[str, Any] = Depends(require_permission("roster", write=True)),
) -> RosterBatchResult:
    content = file.file.read(MAX_UPLOAD_BYTES + 1)
    if not content:
        raise ValidationError("No file uploaded.", code="EMPTY_UPLOAD")
    if len(content) > MAX_UPLOAD_BYTES:
        raise ValidationError("Uploaded file is too large.", code="UPLOAD_TOO_LARGE")

    rows = parse_roster_workbook(content)
    result = upsert_roster_batch(db, rows)
    audit_admin_action(
        db,
        request,
        claims,
        action="ROSTER_UPLOADED",
        entity_type="roster_assignment",
        details={"filename": file.filename, **result.model_dump()},
    )
    return result


@router.get("/api/rosters/download")
def rosters_download(
    db: Session = Depends(get_db),
    _claims: dict[str, Any] = Depends(require_permission("roster", write=True)),
) -> Response:
    return _xlsx_response(build_roster_xlsx(list_rosters(db)), "roster_export.xlsx")


@router.get("/api/rosters/template")
def rosters_template() -> Response:
    return _xlsx_response(build_roster_template_xlsx(), "roster_template.xlsx")


@router.delete("/api/rosters", response_model=WipeResponse)
def rosters_wipe(
    request: Request,
    db: Session = Depends(get_db),
    claims: dict[str, Any] = Depends(require_permission("roster", write=True)),
) -> WipeResponse:
    result = wipe_all_attendance_data(db)
    audit_admin_action(
        db,
        request,
        claims,
        action="ATTENDANCE_DATA_WIPED",
        details=result.model_dump(),
    )
    return result


@router.get("/api/reports", response_model=list[ReportRow])
def reports_list(
    from_date: date = Query(...),
    to_date: date = Query(...),
    department: str | None = Query(default=None),
    only_absent: bool = Query(default=False),
    db: Session = Depends(get_db),
    _claims: dict[str, Any] = Depends(require_permission("reports")),
) -> list[ReportRow]:
    return build_report(db, from_date, to_date, department=department, only_absent=only_absent)


@router.get("/api/reports/new-joiners", response_model=list[NewJoinerRead])
def reports_new_joiners(
    db: Session = Depends(get_db),
    _claims: dict[str, Any] = Depends(require_permission("reports")),
) -> list[NewJoinerRead]:
    return list_new_joiners(db)


@router.get("/api/reports/export")
def reports_export(
    from_date: date = Query(...),
    to_date: date = Query(...),
    department: str | None = Query(default=None),
    only_absent: bool = Query(default=False),
    db: Session = Depends(get_db),
    _claims: dict[str, Any] = Depends(require_permission("reports")),
) -> Response:
    if only_absent:
        rows = build_report(db, from_date, to_date, department=department, only_absent=True)
        return _xlsx_response(build_absent_xlsx(rows), f"absent_report_{from_date}_to_{to_date}.xlsx")

    matrix = build_status_matrix(db, from_date, to_date, department=department)
    return _xlsx_response(build_status_matrix_xlsx(matrix), f"attendance_{from_date}_to_{to_date}.xlsx")


@router.get("/api/reports/export-absent")
def reports_export_absent(
    from_date: date = Query(...),
    to_date: date = Query(...),
    department: str | None = Query(default=None),
    db: Session = Depends(get_db),
    _claims: dict[str, Any] = Depends(require_permission("reports")),
) -> Response:
    rows = build_report(db, from_date, to_date, department=department, only_absent=True)
    return _xlsx_response(build_absent_xlsx(rows), f"absent_report_{from_date}_to_{to_date}.xlsx")


@router.get("/api/reports/export-detailed")
def reports_export_detailed(
    from_date: date = Query(...),
    to_date: date = Query(...),
    department: str | None = Query(default=None),
    db: Session = Depends(get_db),
    _claims: dict[str, Any] = Depends(require_permission("reports")),
) -> Response:
    rows = build_detailed_rows(db, from_date, to_date, department=department)
    return _xlsx_response(build_detailed_xlsx(rows), f"detailed_attendance_{from_date}_to_{to_date}.xlsx")


@router.get("/api/reports/export-new-joiners")
def reports_export_new_joiners(
    db: Session = Depends(get_db),
    _claims: dict[str, Any] = Depends(require_permission("reports")),
) -> Response:
    from_date, to_date = new_joiner_window()
    matrix = build_new_joiner_matrix(db)
    return _xlsx_response(
        build_new_joiner_matrix_xlsx(matrix),
        f"new_joiners_pa_summary_{from_date}_to_{to_date}.xlsx",
    )
