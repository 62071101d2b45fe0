"""Payment API router."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from procurement_core.common.security import RequestContext, get_request_context
from procurement_core.payments.schemas import (
    MarkPaidRequest,
    PaymentCreate,
    PaymentListResponse,
    PaymentResponse,
    PaymentUpdate,
)
from procurement_core.suppliers.schemas import RejectRequest

router = APIRouter(prefix="/payments", tags=["payments"])


def _get_service():
    from procurement_core.deps import get_payment_service
    return get_payment_service()


def _get_db():
    from procurement_core.deps import get_db
    return get_db()


@router.get("", response_model=PaymentListResponse)
async def list_payments(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    search: Optional[str] = None,
    status: Optional[str] = None,
    supplier_id: Optional[str] = None,
    contract_id: Optional[str] = None,
    min_amount: Optional[int] = None,
    max_amount: Optional[int] = None,
    ctx: RequestContext = Depends(get_request_context),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        return await svc.list_payments(
            session, ctx, page=page, limit=limit, search=search, status=status,
            supplier_id=supplier_id, contract_id=contract_id,
            min_amount=min_amount, max_amount=max_amount,
        )


@router.post("", response_model=PaymentResponse, status_code=201)
async def create_payment(body: PaymentCreate, ctx: RequestContext = Depends(get_request_context)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        payment = await svc.create_payment(session, ctx, body.model_dump())
        return PaymentResponse.model_validate(payment)


@router.get("/{payment_id}", response_model=PaymentResponse)
async def get_payment(payment_id: str, ctx: RequestContext = Depends(get_request_context)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        return await svc.get_payment(session, ctx, payment_id)


@router.patch("/{payment_id}", response_model=PaymentResponse)
async def update_payment(
    payment_id: str, body: PaymentUpdate, ctx: RequestContext = Depends(get_request_context),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        payment = await svc.update_payment(
            session, ctx, payment_id, body.model_dump(exclude_unset=True),
        )
        return PaymentResponse.model_validate(payment)


@router.post("/{payment_id}/approve", response_model=PaymentResponse)
async def approve_payment(payment_id: str, ctx: RequestContext = Depends(get_request_context)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        payment = await svc.approve_payment(session, ctx, payment_id)
        return PaymentResponse.model_validate(payment)


@router.post("/{payment_id}/reject", response_model=PaymentResponse)
async def reject_payment(
    payment_id: str, body: RejectRequest, ctx: RequestContext = Depends(get_request_context),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        payment = await svc.reject_payment(session, ctx, payment_id, body.reason)
        return PaymentResponse.model_validate(payment)


@router.post("/{payment_id}/mark-paid", response_model=PaymentResponse)
async def mark_paid(
    payment_id: str, body: MarkPaidRequest, ctx: RequestContext = Depends(get_request_context),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        payment = await svc.mark_paid(session, ctx, payment_id, body.payment_date)
        return PaymentResponse.model_validate(payment)


@router.delete("/{payment_id}", status_code=204)
async def delete_payment(payment_id: str, ctx: RequestContext = Depends(get_request_context)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        await svc.delete_payment(session, ctx, payment_id)
