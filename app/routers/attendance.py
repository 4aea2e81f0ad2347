from typing import Any

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.audit import audit_admin_action
from app.db import get_db
from app.schemas import (
    BulkGateOutRequest,
    BulkGateOutResponse,
    GateScanRequest,
    GateScanResponse,
    LiveDashboardResponse,
    OpenSessionRead,
)
from app.security import require_permission
from app.services.gate import bulk_close_sessions, scan_gate
from app.services.ledger import list_open_sessions
from app.services.reports import build_live_dashboard

router = APIRouter(tags=["gate"])


@router.post("/api/gate/scan", response_model=GateScanResponse)
def gate_scan(
    payload: GateScanRequest,
    request: Request,
    db: Session = Depends(get_db),
    _claims: dict[str, Any] = Depends(require_permission("gate", write=True)),
) -> GateScanResponse:
    result = scan_gate(db, payload.badge_code, allow_week_off=payload.allow_week_off)
    request.state.badge_code = result.badge_code
    request.state.scan_outcome = result.outcome.value
    return result


@router.get("/api/gate/present", response_model=list[OpenSessionRead])
def gate_present(
    db: Session = Depends(get_db),
    _claims: dict[str, Any] = Depends(require_permission("gate")),
) -> list[OpenSessionRead]:
    return list_open_sessions(db)


@router.post("/api/gate/bulk-out", response_model=BulkGateOutResponse)
def gate_bulk_out(
    payload: BulkGateOutRequest,
    request: Request,
    db: Session = Depends(get_db),
    claims: dict[str, Any] = Depends(require_permission("gate", write=True)),
) -> BulkGateOutResponse:
    closed_count = bulk_close_sessions(db, payload.session_ids)
    audit_admin_action(
        db,
        request,
        claims,
        action="GATE_BULK_OUT",
        entity_type="attendance_session",
        details={"requested_ids": sorted(set(payload.session_ids)), "closed_count": closed_count},
    )
    return BulkGateOutResponse(
        closed_count=closed_count,
        message=f"{closed_count} employees marked as Gate Out",
    )


@router.get("/api/dashboard/live", response_model=LiveDashboardResponse)
def dashboard_live(
    db: Session = Depends(get_db),
    _claims: dict[str, Any] = Depends(require_permission("gate")),
) -> LiveDashboardResponse:
    return build_live_dashboard(db)
