"""Analytics router."""

from fastapi import APIRouter, Depends, Query

from procurement_core.analytics.schemas import (
    AnalyticsSummary,
    CategoryCount,
    ContractStatusBreakdown,
    CountryCount,
    MonthlyAmount,
)
from procurement_core.common.security import RequestContext, get_request_context

router = APIRouter(prefix="/analytics", tags=["analytics"])


def _get_service():
    from procurement_core.deps import get_analytics_service
    return get_analytics_service()


def _get_db():
    from procurement_core.deps import get_db
    return get_db()


@router.get("/summary", response_model=AnalyticsSummary)
async def summary(ctx: RequestContext = Depends(get_request_context)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        return await svc.summary(session, ctx)


@router.get("/suppliers-by-country", response_model=list[CountryCount])
async def suppliers_by_country(ctx: RequestContext = Depends(get_request_context)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        return await svc.suppliers_by_country(session, ctx)


@router.get("/suppliers-by-category", response_model=list[CategoryCount])
async def suppliers_by_category(ctx: RequestContext = Depends(get_request_context)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        return await svc.suppliers_by_category(session, ctx)


@router.get("/contracts-by-status", response_model=list[ContractStatusBreakdown])
async def contracts_by_status(ctx: RequestContext = Depends(get_request_context)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        return await svc.contracts_by_status(session, ctx)


@router.get("/payments-by-month", response_model=list[MonthlyAmount])
async def payments_by_month(
    months: int = Query(6),
    ctx: RequestContext = Depends(get_request_context),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        return await svc.payments_by_month(session, ctx, months=months)
