"""Notification inbox router: every route acts on the caller's own inbox."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from procurement_core.common.security import RequestContext, get_request_context, require_principal
from procurement_core.notifications.schemas import (
    MarkAllReadResponse,
    NotificationListResponse,
    NotificationResponse,
    UnreadCountResponse,
)

router = APIRouter(prefix="/notifications", tags=["notifications"])


def _get_service():
    from procurement_core.deps import get_notification_dispatcher
    return get_notification_dispatcher()


def _get_db():
    from procurement_core.deps import get_db
    return get_db()


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    is_read: Optional[bool] = None,
    ctx: RequestContext = Depends(get_request_context),
):
    principal = require_principal(ctx)
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        data = await svc.list_for_user(session, principal.id, page=page, limit=limit, is_read=is_read)
        data["items"] = [NotificationResponse.model_validate(n) for n in data["items"]]
        return data


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(ctx: RequestContext = Depends(get_request_context)):
    principal = require_principal(ctx)
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        return UnreadCountResponse(unread=await svc.unread_count(session, principal.id))


@router.post("/read-all", response_model=MarkAllReadResponse)
async def mark_all_as_read(ctx: RequestContext = Depends(get_request_context)):
    principal = require_principal(ctx)
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        return MarkAllReadResponse(updated=await svc.mark_all_as_read(session, principal.id))


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_as_read(notification_id: str, ctx: RequestContext = Depends(get_request_context)):
    principal = require_principal(ctx)
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        notification = await svc.mark_as_read(session, notification_id, principal.id)
        return NotificationResponse.model_validate(notification)


@router.delete("/{notification_id}", status_code=204)
async def delete_notification(notification_id: str, ctx: RequestContext = Depends(get_request_context)):
    principal = require_principal(ctx)
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        await svc.delete_notification(session, notification_id, principal.id)
