"""Document attachments for suppliers, contracts and payments."""

import logging
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from procurement_core.audit.service import AuditAction, AuditRecorder
from procurement_core.cache.service import CacheService, entity_key, list_key
from procurement_core.common.exceptions import BadUserInputError, ForbiddenError, NotFoundError
from procurement_core.common.models import to_snapshot
from procurement_core.common.security import RequestContext, Role, require_principal
from procurement_core.contracts.models import ContractModel
from procurement_core.documents.models import DocumentModel
from procurement_core.notifications.models import NotificationType
from procurement_core.notifications.service import NotificationDispatcher
from procurement_core.payments.models import PaymentModel
from procurement_core.suppliers.models import SupplierModel

logger = logging.getLogger(__name__)

DOCUMENT_ENTITY = "DOCUMENT"

# reference field → (model, cache prefix, owner field, label)
REFERENCES: dict[str, tuple[type, str, str, str]] = {
    "supplier_id": (SupplierModel, "supplier", "created_by_id", "Supplier"),
    "contract_id": (ContractModel, "contract", "created_by_id", "Contract"),
    "payment_id": (PaymentModel, "payment", "requested_by_id", "Payment"),
}

DOCUMENT_FIELDS = frozenset({
    "name", "file_name", "file_type", "file_size", "file_path", "description",
    "supplier_id", "contract_id", "payment_id",
})


def _describe(field: str, entity: Any) -> str:
    if field == "supplier_id":
        return f"supplier {entity.name}"
    if field == "contract_id":
        return f"contract {entity.title}"
    return f"payment {entity.invoice_number or entity.id}"


class DocumentService:
    """Upload, list and delete documents."""

    def __init__(
        self,
        audit: AuditRecorder,
        notifier: NotificationDispatcher,
        cache: CacheService,
    ):
        self.audit = audit
        self.notifier = notifier
        self.cache = cache

    async def _invalidate(self, document: DocumentModel) -> None:
        await self.cache.invalidate(entity_key("document", document.id))
        await self.cache.invalidate_by_prefix("documents:*")
        related = [
            entity_key(prefix, getattr(document, field))
            for field, (_, prefix, _, _) in REFERENCES.items()
            if getattr(document, field)
        ]
        await self.cache.invalidate(*related)

    async def list_documents(
        self,
        session: AsyncSession,
        ctx: RequestContext,
        page: int = 1,
        limit: int = 10,
        supplier_id: str | None = None,
        contract_id: str | None = None,
        payment_id: str | None = None,
        uploaded_by_id: str | None = None,
    ) -> dict[str, Any]:
        require_principal(ctx)
        filters = {
            "supplier_id": supplier_id,
            "contract_id": contract_id,
            "payment_id": payment_id,
            "uploaded_by_id": uploaded_by_id,
        }
        key = list_key("documents", page, limit, filters)
        cached = await self.cache.get(key)
        if cached is not None:
            return cached

        conditions = [
            getattr(DocumentModel, name) == value
            for name, value in filters.items()
            if value
        ]
        total = (await session.execute(
            select(func.count()).select_from(DocumentModel).where(*conditions)
        )).scalar_one()
        offset = (page - 1) * limit
        result = await session.execute(
            select(DocumentModel)
            .where(*conditions)
            .order_by(DocumentModel.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        items = [to_snapshot(d) for d in result.scalars().all()]
        data = {
            "items": items,
            "total": total,
            "page": page,
            "limit": limit,
            "has_more": offset + len(items) < total,
        }
        await self.cache.set(key, data, self.cache.list_ttl)
        return data

    async def upload_document(
        self, session: AsyncSession, ctx: RequestContext, data: dict[str, Any],
    ) -> DocumentModel:
        """Attach a document to at least one supplier, contract or payment.

        Owners of the referenced entities (other than the uploader) are
        notified once each.
        """
        principal = require_principal(ctx)
        values = {k: v for k, v in data.items() if k in DOCUMENT_FIELDS}
        if not any(values.get(field) for field in REFERENCES):
            raise BadUserInputError(
                "Document must be attached to a supplier, contract or payment",
            )

        related: list[tuple[str, Any]] = []
        for field, (model, _, _, label) in REFERENCES.items():
            ref_id = values.get(field)
            if not ref_id:
                continue
            entity = await session.get(model, ref_id)
            if entity is None:
                raise NotFoundError(f"{label} not found", entity_id=ref_id)
            related.append((field, entity))

        document = DocumentModel(**values, uploaded_by_id=principal.id)
        session.add(document)
        await session.flush()
        await self.audit.record(
            session, principal.id, AuditAction.UPLOAD, DOCUMENT_ENTITY, document.id,
            new_values=to_snapshot(document),
            ip_address=ctx.ip_address, user_agent=ctx.user_agent,
        )
        await session.commit()

        try:
            message = f'A new document "{document.name}" has been uploaded'
            for field, entity in related:
                message += f" for {_describe(field, entity)}"
            owners = []
            for field, entity in related:
                owner = getattr(entity, REFERENCES[field][2])
                if owner and owner != principal.id and owner not in owners:
                    owners.append(owner)
            for owner in owners:
                await self.notifier.notify(
                    session,
                    type=NotificationType.DOCUMENT_UPLOADED,
                    title="New Document Uploaded",
                    message=message,
                    user_id=owner,
                    entity_type=DOCUMENT_ENTITY,
                    entity_id=document.id,
                )
        finally:
            await self._invalidate(document)
        return document

    async def delete_document(self, session: AsyncSession, ctx: RequestContext, document_id: str) -> bool:
        principal = require_principal(ctx)
        document = await session.get(DocumentModel, document_id)
        if document is None:
            raise NotFoundError("Document not found", entity_id=document_id)
        if principal.role != Role.ADMIN and document.uploaded_by_id != principal.id:
            raise ForbiddenError(
                "You do not have permission to delete this document",
                user_role=principal.role.value,
                entity_id=document_id,
            )

        old_values = to_snapshot(document)
        await session.delete(document)
        await session.flush()
        await self.audit.record(
            session, principal.id, AuditAction.DELETE, DOCUMENT_ENTITY, document_id,
            old_values=old_values,
            ip_address=ctx.ip_address, user_agent=ctx.user_agent,
        )
        try:
            await session.commit()
        finally:
            await self._invalidate(document)
        return True
