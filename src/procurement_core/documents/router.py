"""Document API router."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from procurement_core.common.security import RequestContext, get_request_context
from procurement_core.documents.schemas import (
    DocumentCreate,
    DocumentListResponse,
    DocumentResponse,
)

router = APIRouter(prefix="/documents", tags=["documents"])


def _get_service():
    from procurement_core.deps import get_document_service
    return get_document_service()


def _get_db():
    from procurement_core.deps import get_db
    return get_db()


@router.get("", response_model=DocumentListResponse)
async def list_documents(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    supplier_id: Optional[str] = None,
    contract_id: Optional[str] = None,
    payment_id: Optional[str] = None,
    uploaded_by_id: Optional[str] = None,
    ctx: RequestContext = Depends(get_request_context),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        return await svc.list_documents(
            session, ctx, page=page, limit=limit,
            supplier_id=supplier_id, contract_id=contract_id,
            payment_id=payment_id, uploaded_by_id=uploaded_by_id,
        )


@router.post("", response_model=DocumentResponse, status_code=201)
async def upload_document(body: DocumentCreate, ctx: RequestContext = Depends(get_request_context)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        document = await svc.upload_document(session, ctx, body.model_dump(exclude_none=True))
        return DocumentResponse.model_validate(document)


@router.delete("/{document_id}", status_code=204)
async def delete_document(document_id: str, ctx: RequestContext = Depends(get_request_context)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        await svc.delete_document(session, ctx, document_id)
