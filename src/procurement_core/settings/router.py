"""System settings router."""

from fastapi import APIRouter, Depends, Query

from procurement_core.common.security import RequestContext, get_request_context
from procurement_core.settings.schemas import (
    InitializeSystemResponse,
    SystemSettingCreate,
    SystemSettingListResponse,
    SystemSettingResponse,
    SystemSettingUpdate,
)

router = APIRouter(prefix="/system-settings", tags=["system-settings"])


def _get_service():
    from procurement_core.deps import get_system_setting_service
    return get_system_setting_service()


def _get_db():
    from procurement_core.deps import get_db
    return get_db()


@router.get("", response_model=SystemSettingListResponse)
async def list_settings(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: str | None = Query(None),
    public_only: bool = Query(False),
    ctx: RequestContext = Depends(get_request_context),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        return await svc.list_settings(
            session, ctx, page=page, limit=limit, search=search, public_only=public_only,
        )


@router.get("/key/{key}", response_model=SystemSettingResponse)
async def get_setting_by_key(key: str, ctx: RequestContext = Depends(get_request_context)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        return await svc.get_setting(session, ctx, key=key)


@router.get("/{setting_id}", response_model=SystemSettingResponse)
async def get_setting(setting_id: str, ctx: RequestContext = Depends(get_request_context)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        return await svc.get_setting(session, ctx, setting_id=setting_id)


@router.post("", response_model=SystemSettingResponse, status_code=201)
async def create_setting(body: SystemSettingCreate, ctx: RequestContext = Depends(get_request_context)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        setting = await svc.create_setting(
            session, ctx,
            key=body.key,
            value=body.value,
            description=body.description,
            data_type=body.data_type,
            is_public=body.is_public,
        )
        return SystemSettingResponse.model_validate(setting)


@router.post("/initialize", response_model=InitializeSystemResponse)
async def initialize_system(ctx: RequestContext = Depends(get_request_context)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        return InitializeSystemResponse(created=await svc.initialize_system(session, ctx))


@router.patch("/{setting_id}", response_model=SystemSettingResponse)
async def update_setting(
    setting_id: str, body: SystemSettingUpdate, ctx: RequestContext = Depends(get_request_context),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        setting = await svc.update_setting(
            session, ctx, setting_id, body.model_dump(exclude_none=True),
        )
        return SystemSettingResponse.model_validate(setting)


@router.delete("/{setting_id}", status_code=204)
async def delete_setting(setting_id: str, ctx: RequestContext = Depends(get_request_context)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        await svc.delete_setting(session, ctx, setting_id)
