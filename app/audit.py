from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Mapping

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.errors import get_request_id
from app.models import AuditActorType, AuditLog

logger = logging.getLogger("app.audit")


def log_audit(
    db: Session,
    *,
    actor_type: AuditActorType,
    actor_id: str,
    action: str,
    success: bool = True,
    entity_type: str | None = None,
    entity_id: str | None = None,
    ip: str | None = None,
    user_agent: str | None = None,
    details: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> None:
    """Persist one audit row in its own commit; a failed write is only logged."""
    context = {
        "request_id": request_id,
        "action": action,
        "actor_type": actor_type.value,
        "actor_id": actor_id,
        "entity_type": entity_type,
        "entity_id": entity_id,
        "success": success,
    }
    db.add(
        AuditLog(
            ts_utc=datetime.now(timezone.utc),
            actor_type=actor_type,
            actor_id=actor_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            ip=ip,
            user_agent=user_agent,
            success=success,
            details=details or {},
        )
    )
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("audit_log_write_failed", extra=context)
        return

    logger.info("audit_event", extra={**context, "details": details or {}})


def audit_admin_action(
    db: Session,
    request: Request,
    claims: Mapping[str, Any],
    *,
    action: str,
    entity_type: str | None = None,
    entity_id: str | int | None = None,
    details: dict[str, Any] | None = None,
) -> None:
    log_audit(
        db,
        actor_type=AuditActorType.ADMIN,
        actor_id=str(claims.get("username") or claims.get("sub") or "unknown"),
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
        ip=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
        details={"role": claims.get("role"), **(details or {})},
        request_id=get_request_id(request),
    )
