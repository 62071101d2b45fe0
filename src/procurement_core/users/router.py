"""User administration router."""

from fastapi import APIRouter, Depends, Query

from procurement_core.common.security import RequestContext, Role, get_request_context, require_principal
from procurement_core.users.schemas import UserCreate, UserListResponse, UserResponse, UserUpdate

router = APIRouter(prefix="/users", tags=["users"])


def _get_service():
    from procurement_core.deps import get_user_service
    return get_user_service()


def _get_db():
    from procurement_core.deps import get_db
    return get_db()


@router.get("", response_model=UserListResponse)
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    role: Role | None = Query(None),
    is_active: bool | None = Query(None),
    search: str | None = Query(None),
    ctx: RequestContext = Depends(get_request_context),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        return await svc.list_users(
            session, ctx, page=page, limit=limit, role=role, is_active=is_active, search=search,
        )


@router.get("/me", response_model=UserResponse)
async def get_me(ctx: RequestContext = Depends(get_request_context)):
    principal = require_principal(ctx)
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        return await svc.get_user(session, ctx, principal.id)


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(user_id: str, ctx: RequestContext = Depends(get_request_context)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        return await svc.get_user(session, ctx, user_id)


@router.post("", response_model=UserResponse, status_code=201)
async def create_user(body: UserCreate, ctx: RequestContext = Depends(get_request_context)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        user = await svc.create_user(
            session, ctx,
            email=body.email,
            first_name=body.first_name,
            last_name=body.last_name,
            role=body.role,
            department=body.department,
        )
        return UserResponse.model_validate(user)


@router.patch("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str, body: UserUpdate, ctx: RequestContext = Depends(get_request_context),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        user = await svc.update_user(session, ctx, user_id, body.model_dump(exclude_none=True))
        return UserResponse.model_validate(user)
