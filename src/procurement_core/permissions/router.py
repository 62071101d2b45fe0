"""Permission administration router."""

from fastapi import APIRouter, Depends, Query

from procurement_core.common.security import RequestContext, Role, get_request_context
from procurement_core.permissions.schemas import (
    PermissionCreate,
    PermissionListResponse,
    PermissionResponse,
    PermissionUpdate,
)

router = APIRouter(prefix="/permissions", tags=["permissions"])


def _get_service():
    from procurement_core.deps import get_permission_service
    return get_permission_service()


def _get_db():
    from procurement_core.deps import get_db
    return get_db()


@router.get("", response_model=PermissionListResponse)
async def list_permissions(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    role: Role | None = Query(None),
    resource: str | None = Query(None),
    action: str | None = Query(None),
    ctx: RequestContext = Depends(get_request_context),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        return await svc.list_permissions(
            session, ctx, page=page, limit=limit, role=role, resource=resource, action=action,
        )


@router.get("/roles/{role}", response_model=dict[str, dict[str, bool]])
async def role_permissions_map(role: Role, ctx: RequestContext = Depends(get_request_context)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        return await svc.role_permissions_map(session, ctx, role)


@router.post("", response_model=PermissionResponse, status_code=201)
async def create_permission(body: PermissionCreate, ctx: RequestContext = Depends(get_request_context)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        permission = await svc.create_permission(
            session, ctx,
            role=body.role,
            resource=body.resource,
            action=body.action,
            description=body.description,
            is_granted=body.is_granted,
        )
        return PermissionResponse.model_validate(permission)


@router.patch("/{permission_id}", response_model=PermissionResponse)
async def update_permission(
    permission_id: str, body: PermissionUpdate, ctx: RequestContext = Depends(get_request_context),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        permission = await svc.update_permission(
            session, ctx, permission_id, body.model_dump(exclude_none=True),
        )
        return PermissionResponse.model_validate(permission)


@router.delete("/{permission_id}", status_code=204)
async def delete_permission(permission_id: str, ctx: RequestContext = Depends(get_request_context)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        await svc.delete_permission(session, ctx, permission_id)
