"""Contract API router."""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from procurement_core.common.security import RequestContext, get_request_context
from procurement_core.contracts.schemas import (
    ContractCreate,
    ContractListResponse,
    ContractResponse,
    ContractUpdate,
)
from procurement_core.suppliers.schemas import RejectRequest

router = APIRouter(prefix="/contracts", tags=["contracts"])


def _get_service():
    from procurement_core.deps import get_contract_service
    return get_contract_service()


def _get_db():
    from procurement_core.deps import get_db
    return get_db()


@router.get("", response_model=ContractListResponse)
async def list_contracts(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    search: Optional[str] = None,
    status: Optional[str] = None,
    supplier_id: Optional[str] = None,
    start_date_from: Optional[date] = None,
    start_date_to: Optional[date] = None,
    end_date_from: Optional[date] = None,
    end_date_to: Optional[date] = None,
    min_value: Optional[int] = None,
    max_value: Optional[int] = None,
    ctx: RequestContext = Depends(get_request_context),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        return await svc.list_contracts(
            session, ctx, page=page, limit=limit, search=search, status=status,
            supplier_id=supplier_id,
            start_date_from=start_date_from, start_date_to=start_date_to,
            end_date_from=end_date_from, end_date_to=end_date_to,
            min_value=min_value, max_value=max_value,
        )


@router.post("", response_model=ContractResponse, status_code=201)
async def create_contract(body: ContractCreate, ctx: RequestContext = Depends(get_request_context)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        contract = await svc.create_contract(session, ctx, body.model_dump())
        return ContractResponse.model_validate(contract)


@router.get("/{contract_id}", response_model=ContractResponse)
async def get_contract(contract_id: str, ctx: RequestContext = Depends(get_request_context)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        return await svc.get_contract(session, ctx, contract_id)


@router.patch("/{contract_id}", response_model=ContractResponse)
async def update_contract(
    contract_id: str, body: ContractUpdate, ctx: RequestContext = Depends(get_request_context),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        await svc.update_contract(session, ctx, contract_id, body.model_dump(exclude_unset=True))
        return await svc.get_contract(session, ctx, contract_id)


@router.post("/{contract_id}/approve", response_model=ContractResponse)
async def approve_contract(contract_id: str, ctx: RequestContext = Depends(get_request_context)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        await svc.approve_contract(session, ctx, contract_id)
        return await svc.get_contract(session, ctx, contract_id)


@router.post("/{contract_id}/reject", response_model=ContractResponse)
async def reject_contract(
    contract_id: str, body: RejectRequest, ctx: RequestContext = Depends(get_request_context),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        contract = await svc.reject_contract(session, ctx, contract_id, body.reason)
        return ContractResponse.model_validate(contract)


@router.delete("/{contract_id}", status_code=204)
async def delete_contract(contract_id: str, ctx: RequestContext = Depends(get_request_context)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        await svc.delete_contract(session, ctx, contract_id)
