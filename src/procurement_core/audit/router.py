"""Audit log API router (ADMIN only, secrets masked)."""

from datetime import datetime

from fastapi import APIRouter, Depends, Query

from procurement_core.audit.schemas import AuditLogListResponse, AuditLogResponse
from procurement_core.common.security import RequestContext, get_request_context, require_principal

router = APIRouter(prefix="/audit-logs", tags=["audit"])


def _get_service():
    from procurement_core.deps import get_audit_recorder
    return get_audit_recorder()


def _get_db():
    from procurement_core.deps import get_db
    return get_db()


@router.get("", response_model=AuditLogListResponse)
async def list_audit_logs(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user_id: str | None = Query(None),
    entity_type: str | None = Query(None),
    entity_id: str | None = Query(None),
    action: str | None = Query(None),
    date_from: datetime | None = Query(None),
    date_to: datetime | None = Query(None),
    ctx: RequestContext = Depends(get_request_context),
):
    principal = require_principal(ctx)
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        return await svc.list_entries(
            session, principal, page=page, limit=limit,
            user_id=user_id, entity_type=entity_type, entity_id=entity_id,
            action=action, date_from=date_from, date_to=date_to,
        )


@router.get("/{entry_id}", response_model=AuditLogResponse)
async def get_audit_log(entry_id: str, ctx: RequestContext = Depends(get_request_context)):
    principal = require_principal(ctx)
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        return await svc.get_entry(session, principal, entry_id)
