"""Payment lifecycle: requests against suppliers and their contracts."""

from datetime import date
from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from procurement_core.audit.service import AuditRecorder
from procurement_core.cache.service import CacheService
from procurement_core.common.config import ProcurementSettings
from procurement_core.common.exceptions import BadUserInputError, NotFoundError
from procurement_core.common.models import json_safe
from procurement_core.common.security import APPROVER_ROLES, RequestContext, require_principal
from procurement_core.contracts.models import ContractModel
from procurement_core.contracts.service import as_date, supplier_name
from procurement_core.lifecycle.descriptor import EntityDescriptor, NotificationTemplate
from procurement_core.lifecycle.engine import LifecycleEngine
from procurement_core.lifecycle.events import PAYMENT_STATUS_UPDATED, EventBus
from procurement_core.notifications.models import NotificationType
from procurement_core.notifications.service import NotificationDispatcher
from procurement_core.payments.models import PaymentModel, PaymentStatus
from procurement_core.permissions.evaluator import PermissionEvaluator
from procurement_core.suppliers.models import SupplierModel

P = PaymentStatus

PAYMENT_TRANSITIONS: dict[str, frozenset[str]] = {
    P.PENDING.value: frozenset({P.APPROVED.value, P.REJECTED.value}),
    P.APPROVED.value: frozenset({P.PAID.value, P.REJECTED.value}),
    P.REJECTED.value: frozenset({P.PENDING.value, P.APPROVED.value, P.REJECTED.value}),
}

UPDATABLE_FIELDS = frozenset({
    "supplier_id", "contract_id", "amount", "currency", "description",
    "invoice_number", "invoice_date", "due_date", "payment_date", "status", "notes",
})

DATE_FIELDS = ("invoice_date", "due_date", "payment_date")


async def payment_template_values(session: AsyncSession, payment: PaymentModel) -> dict[str, Any]:
    return {"supplier_name": await supplier_name(session, payment.supplier_id)}


PAYMENT_DESCRIPTOR = EntityDescriptor(
    model=PaymentModel,
    entity_type="PAYMENT",
    label="payment",
    cache_prefix="payment",
    list_prefix="payments",
    owner_field="requested_by_id",
    notes_field="notes",
    initial_status=P.PENDING.value,
    approved_status=P.APPROVED.value,
    rejected_status=P.REJECTED.value,
    transitions=PAYMENT_TRANSITIONS,
    event_name=PAYMENT_STATUS_UPDATED,
    created=NotificationTemplate(
        NotificationType.PAYMENT_REQUESTED,
        "New Payment Requested",
        "A new payment of {currency} {amount} for {supplier_name} has been requested.",
    ),
    approved=NotificationTemplate(
        NotificationType.PAYMENT_APPROVED,
        "Payment Approved",
        "Your payment request of {currency} {amount} has been approved.",
    ),
    rejected=NotificationTemplate(
        NotificationType.PAYMENT_REJECTED,
        "Payment Rejected",
        "Your payment request of {currency} {amount} has been rejected. Reason: {reason}",
    ),
    status_templates={
        P.APPROVED.value: NotificationTemplate(
            NotificationType.PAYMENT_APPROVED,
            "Payment Approved",
            "Payment of {currency} {amount} has been approved.",
        ),
        P.REJECTED.value: NotificationTemplate(
            NotificationType.PAYMENT_REJECTED,
            "Payment Rejected",
            "Payment of {currency} {amount} has been rejected.",
        ),
    },
    specialist_deletable=frozenset({P.PENDING.value}),
    template_values=payment_template_values,
)


class PaymentService:
    """Payment operations on top of the generic lifecycle engine."""

    def __init__(
        self,
        settings: ProcurementSettings,
        permissions: PermissionEvaluator,
        audit: AuditRecorder,
        notifier: NotificationDispatcher,
        cache: CacheService,
        events: EventBus,
    ):
        self.settings = settings
        self.permissions = permissions
        self.engine = LifecycleEngine(
            settings, PAYMENT_DESCRIPTOR, permissions, audit, notifier, cache, events,
        )

    async def validate_references(
        self, session: AsyncSession, supplier_id: str | None, contract_id: str | None,
    ) -> None:
        """Supplier must exist; a contract, if given, must belong to that supplier."""
        if not supplier_id:
            raise BadUserInputError("Supplier is required", field="supplier_id")
        if await session.get(SupplierModel, supplier_id) is None:
            raise NotFoundError("Supplier not found", entity_id=supplier_id)
        if contract_id:
            contract = await session.get(ContractModel, contract_id)
            if contract is None:
                raise NotFoundError("Contract not found", entity_id=contract_id)
            if contract.supplier_id != supplier_id:
                raise BadUserInputError(
                    "Contract does not belong to the specified supplier",
                    supplier_id=supplier_id,
                    contract_id=contract_id,
                    contract_supplier_id=contract.supplier_id,
                )

    @staticmethod
    def _validate_amount(amount: Any) -> None:
        if amount is None or amount <= 0:
            raise BadUserInputError("Payment amount must be positive", amount=amount)

    # ── Reads ──

    async def get_payment(self, session: AsyncSession, ctx: RequestContext, payment_id: str) -> dict[str, Any]:
        return await self.engine.get(session, ctx, payment_id)

    async def list_payments(
        self,
        session: AsyncSession,
        ctx: RequestContext,
        page: int = 1,
        limit: int | None = None,
        search: str | None = None,
        status: str | None = None,
        supplier_id: str | None = None,
        contract_id: str | None = None,
        min_amount: int | None = None,
        max_amount: int | None = None,
    ) -> dict[str, Any]:
        limit = limit or self.settings.default_page_size
        status = json_safe(status)
        conditions = []
        if search:
            pattern = f"%{search}%"
            conditions.append(or_(
                PaymentModel.invoice_number.ilike(pattern),
                PaymentModel.description.ilike(pattern),
            ))
        if status:
            conditions.append(PaymentModel.status == status)
        if supplier_id:
            conditions.append(PaymentModel.supplier_id == supplier_id)
        if contract_id:
            conditions.append(PaymentModel.contract_id == contract_id)
        if min_amount is not None:
            conditions.append(PaymentModel.amount >= min_amount)
        if max_amount is not None:
            conditions.append(PaymentModel.amount <= max_amount)
        filters = {
            "search": search,
            "status": status,
            "supplier_id": supplier_id,
            "contract_id": contract_id,
            "min_amount": min_amount,
            "max_amount": max_amount,
        }
        return await self.engine.list(session, ctx, page, limit, filters, conditions)

    # ── Mutations ──

    async def create_payment(
        self, session: AsyncSession, ctx: RequestContext, data: dict[str, Any],
    ) -> PaymentModel:
        require_principal(ctx)
        values = {k: v for k, v in data.items() if k in UPDATABLE_FIELDS and k != "status"}
        for field in DATE_FIELDS:
            if values.get(field) is not None:
                values[field] = as_date(values[field], field)
        self._validate_amount(values.get("amount"))
        await self.validate_references(session, values.get("supplier_id"), values.get("contract_id"))
        return await self.engine.create(session, ctx, values)

    async def update_payment(
        self,
        session: AsyncSession,
        ctx: RequestContext,
        payment_id: str,
        changes: dict[str, Any],
    ) -> PaymentModel:
        """Edit a payment. Only approvers may move its status."""
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise BadUserInputError("Unknown payment fields", fields=sorted(unknown))
        changes = dict(changes)
        for field in DATE_FIELDS:
            if changes.get(field) is not None:
                changes[field] = as_date(changes[field], field)

        async def _validate(payment: PaymentModel, pending: dict[str, Any]) -> None:
            if "amount" in pending:
                self._validate_amount(pending["amount"])
            if "supplier_id" in pending or "contract_id" in pending:
                await self.validate_references(
                    session,
                    pending.get("supplier_id", payment.supplier_id),
                    pending.get("contract_id", payment.contract_id),
                )

        return await self.engine.update(session, ctx, payment_id, changes, validate=_validate)

    async def approve_payment(self, session: AsyncSession, ctx: RequestContext, payment_id: str) -> PaymentModel:
        return await self.engine.approve(session, ctx, payment_id)

    async def reject_payment(
        self, session: AsyncSession, ctx: RequestContext, payment_id: str, reason: str,
    ) -> PaymentModel:
        return await self.engine.reject(session, ctx, payment_id, reason)

    async def delete_payment(self, session: AsyncSession, ctx: RequestContext, payment_id: str) -> bool:
        return await self.engine.delete(session, ctx, payment_id)

    async def mark_paid(
        self,
        session: AsyncSession,
        ctx: RequestContext,
        payment_id: str,
        payment_date: date | None = None,
    ) -> PaymentModel:
        """Settle an APPROVED payment."""
        self.permissions.require_role(ctx, APPROVER_ROLES, "mark payments as paid")
        return await self.engine.update(
            session, ctx, payment_id,
            {"status": P.PAID.value, "payment_date": payment_date or date.today()},
        )
