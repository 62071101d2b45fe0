"""Contract lifecycle: dates, approval to ACTIVE, expiry."""

import logging
from datetime import date, timedelta
from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from procurement_core.audit.service import AuditAction, AuditRecorder
from procurement_core.cache.service import CacheService
from procurement_core.common.config import ProcurementSettings
from procurement_core.common.exceptions import BadUserInputError, NotFoundError
from procurement_core.common.models import json_safe, to_snapshot
from procurement_core.common.security import APPROVER_ROLES, RequestContext, require_principal
from procurement_core.contracts.models import ContractModel, ContractStatus
from procurement_core.lifecycle.descriptor import EntityDescriptor, NotificationTemplate
from procurement_core.lifecycle.engine import LifecycleEngine
from procurement_core.lifecycle.events import CONTRACT_STATUS_UPDATED, EventBus
from procurement_core.notifications.models import NotificationType
from procurement_core.notifications.service import NotificationDispatcher
from procurement_core.permissions.evaluator import PermissionEvaluator
from procurement_core.settings.service import CONTRACT_EXPIRY_DAYS, SystemSettingService
from procurement_core.suppliers.models import SupplierModel

logger = logging.getLogger(__name__)

C = ContractStatus

CONTRACT_TRANSITIONS: dict[str, frozenset[str]] = {
    C.DRAFT.value: frozenset({
        C.PENDING_APPROVAL.value, C.APPROVED.value, C.ACTIVE.value,
        C.REJECTED.value, C.TERMINATED.value,
    }),
    C.PENDING_APPROVAL.value: frozenset({
        C.DRAFT.value, C.APPROVED.value, C.ACTIVE.value, C.REJECTED.value,
    }),
    C.APPROVED.value: frozenset({C.ACTIVE.value, C.REJECTED.value, C.TERMINATED.value}),
    C.ACTIVE.value: frozenset({C.EXPIRED.value, C.TERMINATED.value}),
    C.REJECTED.value: frozenset({
        C.DRAFT.value, C.PENDING_APPROVAL.value, C.ACTIVE.value, C.REJECTED.value,
    }),
}

UPDATABLE_FIELDS = frozenset({
    "title", "supplier_id", "contract_number", "description", "start_date",
    "end_date", "value", "currency", "status", "terms", "payment_terms",
    "delivery_terms",
})


def as_date(value: Any, field: str) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise BadUserInputError(
            f"Invalid {field.replace('_', ' ')} format. Use YYYY-MM-DD", field=field,
        ) from None


def validate_dates(start: date, end: date) -> None:
    if end <= start:
        raise BadUserInputError(
            "End date must be after start date",
            start_date=start.isoformat(), end_date=end.isoformat(),
        )


def days_remaining(contract: ContractModel, today: date | None = None) -> int:
    return (contract.end_date - (today or date.today())).days


async def supplier_name(session: AsyncSession, supplier_id: str) -> str:
    result = await session.execute(
        select(SupplierModel.name).where(SupplierModel.id == supplier_id)
    )
    return result.scalar_one_or_none() or "unknown supplier"


async def contract_snapshot(session: AsyncSession, contract: ContractModel) -> dict[str, Any]:
    data = to_snapshot(contract)
    if contract.status == C.ACTIVE.value:
        data["days_remaining"] = days_remaining(contract)
    return data


async def contract_template_values(session: AsyncSession, contract: ContractModel) -> dict[str, Any]:
    return {"supplier_name": await supplier_name(session, contract.supplier_id)}


CONTRACT_DESCRIPTOR = EntityDescriptor(
    model=ContractModel,
    entity_type="CONTRACT",
    label="contract",
    cache_prefix="contract",
    list_prefix="contracts",
    owner_field="created_by_id",
    notes_field="terms",
    initial_status=C.DRAFT.value,
    # approval takes a contract straight into force
    approved_status=C.ACTIVE.value,
    rejected_status=C.REJECTED.value,
    transitions=CONTRACT_TRANSITIONS,
    event_name=CONTRACT_STATUS_UPDATED,
    created=NotificationTemplate(
        NotificationType.CONTRACT_CREATED,
        "New Contract Created",
        'A new contract "{title}" with {supplier_name} has been created and is pending approval.',
    ),
    approved=NotificationTemplate(
        NotificationType.CONTRACT_APPROVED,
        "Contract Approved",
        'Your contract "{title}" with {supplier_name} has been approved.',
    ),
    rejected=NotificationTemplate(
        NotificationType.CONTRACT_REJECTED,
        "Contract Rejected",
        'Your contract "{title}" with {supplier_name} has been rejected. Reason: {reason}',
    ),
    status_templates={
        C.APPROVED.value: NotificationTemplate(
            NotificationType.CONTRACT_APPROVED,
            "Contract Approved",
            'Contract "{title}" has been approved.',
        ),
        C.ACTIVE.value: NotificationTemplate(
            NotificationType.CONTRACT_APPROVED,
            "Contract Approved",
            'Contract "{title}" has been approved.',
        ),
        C.REJECTED.value: NotificationTemplate(
            NotificationType.CONTRACT_REJECTED,
            "Contract Rejected",
            'Contract "{title}" has been rejected.',
        ),
    },
    approval_statuses=frozenset({C.APPROVED.value}),
    serialize=contract_snapshot,
    template_values=contract_template_values,
)

EXPIRING_TEMPLATE = NotificationTemplate(
    NotificationType.CONTRACT_EXPIRING,
    "Contract Expiring Soon",
    'Your contract "{title}" with {supplier_name} expires in {days} day(s) on {end_date}.',
)


class ContractService:
    """Contract operations on top of the generic lifecycle engine."""

    def __init__(
        self,
        settings: ProcurementSettings,
        permissions: PermissionEvaluator,
        audit: AuditRecorder,
        notifier: NotificationDispatcher,
        cache: CacheService,
        events: EventBus,
        system_settings: SystemSettingService | None = None,
    ):
        self.settings = settings
        self.permissions = permissions
        self.notifier = notifier
        self.system_settings = system_settings or SystemSettingService(
            settings, permissions, audit, cache, events,
        )
        self.engine = LifecycleEngine(
            settings, CONTRACT_DESCRIPTOR, permissions, audit, notifier, cache, events,
        )

    async def _require_supplier(self, session: AsyncSession, supplier_id: str | None) -> None:
        if not supplier_id:
            raise BadUserInputError("Supplier is required", field="supplier_id")
        if await session.get(SupplierModel, supplier_id) is None:
            raise NotFoundError("Supplier not found", entity_id=supplier_id)

    async def _require_unique_number(
        self, session: AsyncSession, contract_number: str, exclude_id: str | None = None,
    ) -> None:
        query = select(ContractModel.id).where(ContractModel.contract_number == contract_number)
        if exclude_id:
            query = query.where(ContractModel.id != exclude_id)
        if (await session.execute(query.limit(1))).first() is not None:
            raise BadUserInputError(
                "A contract with this number already exists", contract_number=contract_number,
            )

    # ── Reads ──

    async def get_contract(self, session: AsyncSession, ctx: RequestContext, contract_id: str) -> dict[str, Any]:
        return await self.engine.get(session, ctx, contract_id)

    async def list_contracts(
        self,
        session: AsyncSession,
        ctx: RequestContext,
        page: int = 1,
        limit: int | None = None,
        search: str | None = None,
        status: str | None = None,
        supplier_id: str | None = None,
        start_date_from: date | None = None,
        start_date_to: date | None = None,
        end_date_from: date | None = None,
        end_date_to: date | None = None,
        min_value: int | None = None,
        max_value: int | None = None,
    ) -> dict[str, Any]:
        limit = limit or self.settings.default_page_size
        status = json_safe(status)
        conditions = []
        if search:
            pattern = f"%{search}%"
            conditions.append(or_(
                ContractModel.title.ilike(pattern),
                ContractModel.contract_number.ilike(pattern),
                ContractModel.description.ilike(pattern),
            ))
        if status:
            conditions.append(ContractModel.status == status)
        if supplier_id:
            conditions.append(ContractModel.supplier_id == supplier_id)
        if start_date_from:
            conditions.append(ContractModel.start_date >= start_date_from)
        if start_date_to:
            conditions.append(ContractModel.start_date <= start_date_to)
        if end_date_from:
            conditions.append(ContractModel.end_date >= end_date_from)
        if end_date_to:
            conditions.append(ContractModel.end_date <= end_date_to)
        if min_value is not None:
            conditions.append(ContractModel.value >= min_value)
        if max_value is not None:
            conditions.append(ContractModel.value <= max_value)
        filters = {
            "search": search,
            "status": status,
            "supplier_id": supplier_id,
            "start_date_from": json_safe(start_date_from),
            "start_date_to": json_safe(start_date_to),
            "end_date_from": json_safe(end_date_from),
            "end_date_to": json_safe(end_date_to),
            "min_value": min_value,
            "max_value": max_value,
        }
        return await self.engine.list(session, ctx, page, limit, filters, conditions)

    # ── Mutations ──

    async def create_contract(
        self, session: AsyncSession, ctx: RequestContext, data: dict[str, Any],
    ) -> ContractModel:
        require_principal(ctx)
        values = {k: v for k, v in data.items() if k in UPDATABLE_FIELDS and k != "status"}
        values["start_date"] = as_date(values.get("start_date"), "start_date")
        values["end_date"] = as_date(values.get("end_date"), "end_date")
        validate_dates(values["start_date"], values["end_date"])
        await self._require_supplier(session, values.get("supplier_id"))
        await self._require_unique_number(session, values.get("contract_number"))
        return await self.engine.create(session, ctx, values)

    async def update_contract(
        self,
        session: AsyncSession,
        ctx: RequestContext,
        contract_id: str,
        changes: dict[str, Any],
    ) -> ContractModel:
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise BadUserInputError("Unknown contract fields", fields=sorted(unknown))
        changes = dict(changes)
        for field in ("start_date", "end_date"):
            if changes.get(field) is not None:
                changes[field] = as_date(changes[field], field)

        async def _validate(contract: ContractModel, pending: dict[str, Any]) -> None:
            if pending.get("start_date") or pending.get("end_date"):
                validate_dates(
                    pending.get("start_date") or contract.start_date,
                    pending.get("end_date") or contract.end_date,
                )
            if pending.get("supplier_id") and pending["supplier_id"] != contract.supplier_id:
                await self._require_supplier(session, pending["supplier_id"])
            if pending.get("contract_number") and pending["contract_number"] != contract.contract_number:
                await self._require_unique_number(session, pending["contract_number"], contract.id)

        return await self.engine.update(session, ctx, contract_id, changes, validate=_validate)

    async def approve_contract(self, session: AsyncSession, ctx: RequestContext, contract_id: str) -> ContractModel:
        return await self.engine.approve(session, ctx, contract_id)

    async def reject_contract(
        self, session: AsyncSession, ctx: RequestContext, contract_id: str, reason: str,
    ) -> ContractModel:
        return await self.engine.reject(session, ctx, contract_id, reason)

    async def delete_contract(self, session: AsyncSession, ctx: RequestContext, contract_id: str) -> bool:
        return await self.engine.delete(session, ctx, contract_id)

    # ── Expiry ──

    async def expire_overdue(
        self, session: AsyncSession, ctx: RequestContext, today: date | None = None,
    ) -> list[str]:
        """Move ACTIVE contracts past their end date to EXPIRED."""
        self.permissions.require_role(ctx, APPROVER_ROLES, "expire contracts")
        today = today or date.today()
        result = await session.execute(
            select(ContractModel).where(
                ContractModel.status == C.ACTIVE.value,
                ContractModel.end_date < today,
            )
        )
        expired = []
        for contract in result.scalars().all():
            await self.engine.apply_status(session, ctx, contract, C.EXPIRED.value, AuditAction.EXPIRE)
            expired.append(contract.id)
        if expired:
            logger.info("Expired %d contract(s)", len(expired))
        return expired

    async def notify_expiring(
        self,
        session: AsyncSession,
        ctx: RequestContext,
        within_days: int | None = None,
        today: date | None = None,
    ) -> int:
        """Remind creators of ACTIVE contracts ending within the window.

        The window defaults to the ``contract_expiry_days`` system setting, then
        to ``contract_expiry_warning_days`` from configuration.
        """
        self.permissions.require_role(ctx, APPROVER_ROLES, "send contract expiry reminders")
        today = today or date.today()
        if within_days is None:
            within_days = await self.system_settings.get_int(
                session, CONTRACT_EXPIRY_DAYS, self.settings.contract_expiry_warning_days,
            )
        result = await session.execute(
            select(ContractModel).where(
                ContractModel.status == C.ACTIVE.value,
                ContractModel.end_date >= today,
                ContractModel.end_date <= today + timedelta(days=within_days),
            )
        )
        sent = 0
        for contract in result.scalars().all():
            if contract.created_by_id is None:
                continue
            values = await self.engine.template_values(
                session, contract, days=days_remaining(contract, today),
            )
            title, message = EXPIRING_TEMPLATE.render(values)
            await self.notifier.notify(
                session,
                type=EXPIRING_TEMPLATE.type,
                title=title,
                message=message,
                user_id=contract.created_by_id,
                entity_type=CONTRACT_DESCRIPTOR.entity_type,
                entity_id=contract.id,
            )
            sent += 1
        return sent
