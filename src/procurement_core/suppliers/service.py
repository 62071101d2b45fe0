"""Supplier lifecycle: create, update, approve, reject, rate, delete."""

import math
from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from procurement_core.audit.service import AuditAction, AuditRecorder
from procurement_core.cache.service import CacheService
from procurement_core.common.config import ProcurementSettings
from procurement_core.common.exceptions import BadUserInputError
from procurement_core.common.models import json_safe, to_snapshot
from procurement_core.common.security import ALL_ROLES, RequestContext, require_principal
from procurement_core.lifecycle.descriptor import EntityDescriptor, NotificationTemplate
from procurement_core.lifecycle.engine import LifecycleEngine
from procurement_core.lifecycle.events import SUPPLIER_STATUS_UPDATED, EventBus
from procurement_core.notifications.models import NotificationType
from procurement_core.notifications.service import NotificationDispatcher
from procurement_core.permissions.evaluator import PermissionEvaluator
from procurement_core.suppliers.categories import (
    attach_categories,
    categories_for,
    ensure_categories_exist,
    replace_categories,
)
from procurement_core.suppliers.models import (
    SupplierCategoryMapModel,
    SupplierModel,
    SupplierStatus,
)

S = SupplierStatus

SUPPLIER_TRANSITIONS: dict[str, frozenset[str]] = {
    S.PENDING.value: frozenset({S.APPROVED.value, S.REJECTED.value, S.INACTIVE.value}),
    S.APPROVED.value: frozenset({S.REJECTED.value, S.INACTIVE.value}),
    S.REJECTED.value: frozenset({S.APPROVED.value, S.REJECTED.value, S.PENDING.value}),
    S.INACTIVE.value: frozenset({S.APPROVED.value, S.PENDING.value}),
}

RATING_FIELDS = (
    "financial_stability",
    "quality_rating",
    "delivery_rating",
    "communication_rating",
)

UPDATABLE_FIELDS = frozenset({
    "name", "legal_name", "tax_id", "registration_number", "email", "address",
    "city", "state", "country", "postal_code", "phone_number", "website",
    "status", "notes", "bank_account_info", "contact_person_name",
    "contact_person_email", "contact_person_phone",
})

DUPLICATE_EMAIL = "A supplier with this email already exists"
DUPLICATE_TAX_ID = "A supplier with this tax ID already exists"
DUPLICATE_REGISTRATION = "A supplier with this registration number already exists"


async def supplier_snapshot(session: AsyncSession, supplier: SupplierModel) -> dict[str, Any]:
    data = to_snapshot(supplier)
    data["categories"] = await categories_for(session, supplier.id)
    return data


SUPPLIER_DESCRIPTOR = EntityDescriptor(
    model=SupplierModel,
    entity_type="SUPPLIER",
    label="supplier",
    cache_prefix="supplier",
    list_prefix="suppliers",
    owner_field="created_by_id",
    notes_field="notes",
    initial_status=S.PENDING.value,
    approved_status=S.APPROVED.value,
    rejected_status=S.REJECTED.value,
    transitions=SUPPLIER_TRANSITIONS,
    event_name=SUPPLIER_STATUS_UPDATED,
    created=NotificationTemplate(
        NotificationType.SUPPLIER_CREATED,
        "New Supplier Created",
        'A new supplier "{name}" has been created and is pending approval.',
    ),
    approved=NotificationTemplate(
        NotificationType.SUPPLIER_APPROVED,
        "Supplier Approved",
        'Your supplier "{name}" has been approved.',
    ),
    rejected=NotificationTemplate(
        NotificationType.SUPPLIER_REJECTED,
        "Supplier Rejected",
        'Your supplier "{name}" has been rejected. Reason: {reason}',
    ),
    status_templates={
        S.APPROVED.value: NotificationTemplate(
            NotificationType.SUPPLIER_APPROVED,
            "Supplier Approved",
            'Supplier "{name}" has been approved.',
        ),
        S.REJECTED.value: NotificationTemplate(
            NotificationType.SUPPLIER_REJECTED,
            "Supplier Rejected",
            'Supplier "{name}" has been rejected.',
        ),
    },
    dependents=((SupplierCategoryMapModel, "supplier_id"),),
    serialize=supplier_snapshot,
)

REGISTRATION_TEMPLATE = NotificationTemplate(
    NotificationType.SUPPLIER_CREATED,
    "New Supplier Registration",
    'A new supplier "{name}" has registered and is pending approval.',
)


def overall_from(ratings: dict[str, int]) -> int | None:
    """Half-up rounded mean of the provided component ratings."""
    values = [ratings[f] for f in RATING_FIELDS if ratings.get(f) is not None]
    if not values:
        return None
    return math.floor(sum(values) / len(values) + 0.5)


class SupplierService:
    """Supplier operations on top of the generic lifecycle engine."""

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
            settings, SUPPLIER_DESCRIPTOR, permissions, audit, notifier, cache, events,
        )

    # ── Uniqueness ──

    async def find_duplicate(
        self,
        session: AsyncSession,
        email: str | None = None,
        tax_id: str | None = None,
        registration_number: str | None = None,
        exclude_id: str | None = None,
    ) -> str | None:
        """Message for the first natural key already taken, or None."""
        checks = (
            (SupplierModel.email, email, DUPLICATE_EMAIL),
            (SupplierModel.tax_id, tax_id, DUPLICATE_TAX_ID),
            (SupplierModel.registration_number, registration_number, DUPLICATE_REGISTRATION),
        )
        for column, value, message in checks:
            if not value:
                continue
            query = select(SupplierModel.id).where(column == value)
            if exclude_id:
                query = query.where(SupplierModel.id != exclude_id)
            if (await session.execute(query.limit(1))).first() is not None:
                return message
        return None

    # ── Reads ──

    async def get_supplier(self, session: AsyncSession, ctx: RequestContext, supplier_id: str) -> dict[str, Any]:
        return await self.engine.get(session, ctx, supplier_id)

    async def list_suppliers(
        self,
        session: AsyncSession,
        ctx: RequestContext,
        page: int = 1,
        limit: int | None = None,
        search: str | None = None,
        status: str | None = None,
        country: str | None = None,
        category_ids: list[str] | None = None,
    ) -> dict[str, Any]:
        limit = limit or self.settings.default_page_size
        status = json_safe(status)
        conditions = []
        if search:
            pattern = f"%{search}%"
            conditions.append(or_(
                SupplierModel.name.ilike(pattern),
                SupplierModel.legal_name.ilike(pattern),
                SupplierModel.tax_id.ilike(pattern),
                SupplierModel.email.ilike(pattern),
            ))
        if status:
            conditions.append(SupplierModel.status == status)
        if country:
            conditions.append(SupplierModel.country == country)
        if category_ids:
            conditions.append(SupplierModel.id.in_(
                select(SupplierCategoryMapModel.supplier_id)
                .where(SupplierCategoryMapModel.category_id.in_(category_ids))
            ))
        filters = {
            "search": search,
            "status": status,
            "country": country,
            "category_ids": sorted(category_ids) if category_ids else None,
        }
        return await self.engine.list(session, ctx, page, limit, filters, conditions)

    # ── Mutations ──

    async def create_supplier(
        self,
        session: AsyncSession,
        ctx: RequestContext,
        data: dict[str, Any],
        category_ids: list[str] | None = None,
    ) -> SupplierModel:
        require_principal(ctx)
        duplicate = await self.find_duplicate(
            session,
            tax_id=data.get("tax_id"),
            registration_number=data.get("registration_number"),
        )
        if duplicate:
            raise BadUserInputError(duplicate)
        category_ids = list(category_ids or [])
        await ensure_categories_exist(session, category_ids)

        async def _attach(session: AsyncSession, supplier: SupplierModel) -> None:
            await attach_categories(session, supplier.id, category_ids)

        values = {k: v for k, v in data.items() if k in UPDATABLE_FIELDS and k != "status"}
        return await self.engine.create(session, ctx, values, on_insert=_attach)

    async def update_supplier(
        self,
        session: AsyncSession,
        ctx: RequestContext,
        supplier_id: str,
        changes: dict[str, Any],
        category_ids: list[str] | None = None,
    ) -> SupplierModel:
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise BadUserInputError("Unknown supplier fields", fields=sorted(unknown))

        async def _validate(supplier: SupplierModel, pending: dict[str, Any]) -> None:
            duplicate = await self.find_duplicate(
                session,
                tax_id=pending.get("tax_id"),
                registration_number=pending.get("registration_number"),
                exclude_id=supplier.id,
            )
            if duplicate:
                raise BadUserInputError(duplicate, entity_id=supplier.id)
            if category_ids is not None:
                await ensure_categories_exist(session, category_ids)

        on_apply = None
        if category_ids is not None:
            async def on_apply(session: AsyncSession, supplier: SupplierModel) -> None:
                await replace_categories(session, supplier.id, category_ids)

        return await self.engine.update(
            session, ctx, supplier_id, changes, validate=_validate, on_apply=on_apply,
        )

    async def approve_supplier(self, session: AsyncSession, ctx: RequestContext, supplier_id: str) -> SupplierModel:
        return await self.engine.approve(session, ctx, supplier_id)

    async def reject_supplier(
        self, session: AsyncSession, ctx: RequestContext, supplier_id: str, reason: str,
    ) -> SupplierModel:
        return await self.engine.reject(session, ctx, supplier_id, reason)

    async def delete_supplier(self, session: AsyncSession, ctx: RequestContext, supplier_id: str) -> bool:
        return await self.engine.delete(session, ctx, supplier_id)

    async def rate_supplier(
        self,
        session: AsyncSession,
        ctx: RequestContext,
        supplier_id: str,
        financial_stability: int | None = None,
        quality_rating: int | None = None,
        delivery_rating: int | None = None,
        communication_rating: int | None = None,
        overall_rating: int | None = None,
    ) -> SupplierModel:
        """Record ratings (1-5). Any procurement role may rate any supplier.

        Without an explicit ``overall_rating`` it becomes the rounded mean of
        the provided components.
        """
        engine = self.engine
        principal = self.permissions.require_role(ctx, ALL_ROLES, "rate suppliers")
        ratings = {
            "financial_stability": financial_stability,
            "quality_rating": quality_rating,
            "delivery_rating": delivery_rating,
            "communication_rating": communication_rating,
            "overall_rating": overall_rating,
        }
        ratings = {k: v for k, v in ratings.items() if v is not None}
        for name, value in ratings.items():
            if not 1 <= value <= 5:
                raise BadUserInputError(
                    f"Rating {name} must be between 1 and 5", field=name, value=value,
                )
        if "overall_rating" not in ratings:
            computed = overall_from(ratings)
            if computed is None:
                raise BadUserInputError("At least one rating is required")
            ratings["overall_rating"] = computed

        supplier = await engine.load(session, supplier_id)
        await engine.check_grant(session, principal, "rate")
        old_values = {f: getattr(supplier, f) for f in (*RATING_FIELDS, "overall_rating")}
        for name, value in ratings.items():
            setattr(supplier, name, value)
        supplier.updated_by_id = principal.id
        await engine.flush(session, supplier_id)

        await engine.record_audit(
            session, ctx, AuditAction.RATE, supplier_id,
            old_values=old_values, new_values=ratings,
        )
        try:
            await engine.commit(session, supplier_id)
        finally:
            await engine.invalidate(supplier_id)
        return supplier
