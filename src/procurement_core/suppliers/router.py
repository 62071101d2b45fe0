"""Supplier and category API routers."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from procurement_core.common.security import RequestContext, get_request_context
from procurement_core.suppliers.schemas import (
    CategoryCreate,
    CategoryResponse,
    RejectRequest,
    SupplierCreate,
    SupplierListResponse,
    SupplierRating,
    SupplierResponse,
    SupplierUpdate,
)

router = APIRouter(prefix="/suppliers", tags=["suppliers"])
category_router = APIRouter(prefix="/categories", tags=["categories"])


def _get_service():
    from procurement_core.deps import get_supplier_service
    return get_supplier_service()


def _get_category_service():
    from procurement_core.deps import get_category_service
    return get_category_service()


def _get_db():
    from procurement_core.deps import get_db
    return get_db()


@router.get("", response_model=SupplierListResponse)
async def list_suppliers(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    search: Optional[str] = None,
    status: Optional[str] = None,
    country: Optional[str] = None,
    category_ids: Optional[list[str]] = Query(None),
    ctx: RequestContext = Depends(get_request_context),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        return await svc.list_suppliers(
            session, ctx, page=page, limit=limit, search=search,
            status=status, country=country, category_ids=category_ids,
        )


@router.post("", response_model=SupplierResponse, status_code=201)
async def create_supplier(body: SupplierCreate, ctx: RequestContext = Depends(get_request_context)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        data = body.model_dump(exclude={"category_ids"})
        supplier = await svc.create_supplier(session, ctx, data, category_ids=body.category_ids)
        return await svc.get_supplier(session, ctx, supplier.id)


@router.get("/{supplier_id}", response_model=SupplierResponse)
async def get_supplier(supplier_id: str, ctx: RequestContext = Depends(get_request_context)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        return await svc.get_supplier(session, ctx, supplier_id)


@router.patch("/{supplier_id}", response_model=SupplierResponse)
async def update_supplier(
    supplier_id: str, body: SupplierUpdate, ctx: RequestContext = Depends(get_request_context),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        changes = body.model_dump(exclude_unset=True, exclude={"category_ids"})
        await svc.update_supplier(session, ctx, supplier_id, changes, category_ids=body.category_ids)
        return await svc.get_supplier(session, ctx, supplier_id)


@router.post("/{supplier_id}/approve", response_model=SupplierResponse)
async def approve_supplier(supplier_id: str, ctx: RequestContext = Depends(get_request_context)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        await svc.approve_supplier(session, ctx, supplier_id)
        return await svc.get_supplier(session, ctx, supplier_id)


@router.post("/{supplier_id}/reject", response_model=SupplierResponse)
async def reject_supplier(
    supplier_id: str, body: RejectRequest, ctx: RequestContext = Depends(get_request_context),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        await svc.reject_supplier(session, ctx, supplier_id, body.reason)
        return await svc.get_supplier(session, ctx, supplier_id)


@router.post("/{supplier_id}/rate", response_model=SupplierResponse)
async def rate_supplier(
    supplier_id: str, body: SupplierRating, ctx: RequestContext = Depends(get_request_context),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        await svc.rate_supplier(session, ctx, supplier_id, **body.model_dump())
        return await svc.get_supplier(session, ctx, supplier_id)


@router.delete("/{supplier_id}", status_code=204)
async def delete_supplier(supplier_id: str, ctx: RequestContext = Depends(get_request_context)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        await svc.delete_supplier(session, ctx, supplier_id)


# ── Categories ──

@category_router.get("", response_model=list[CategoryResponse])
async def list_categories(ctx: RequestContext = Depends(get_request_context)):
    svc = _get_category_service()
    db = _get_db()
    async with db.get_session() as session:
        return await svc.list_categories(session, ctx)


@category_router.post("", response_model=CategoryResponse, status_code=201)
async def create_category(body: CategoryCreate, ctx: RequestContext = Depends(get_request_context)):
    svc = _get_category_service()
    db = _get_db()
    async with db.get_session() as session:
        category = await svc.create_category(session, ctx, body.name, body.description)
        return CategoryResponse.model_validate(category)


@category_router.delete("/{category_id}", status_code=204)
async def delete_category(category_id: str, ctx: RequestContext = Depends(get_request_context)):
    svc = _get_category_service()
    db = _get_db()
    async with db.get_session() as session:
        await svc.delete_category(session, ctx, category_id)
