"""Supplier categories and supplier ↔ category mappings."""

import logging
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from procurement_core.audit.service import AuditAction, AuditRecorder
from procurement_core.cache.service import ANALYTICS_PATTERN, CacheService, entity_key
from procurement_core.common.exceptions import BadUserInputError, NotFoundError
from procurement_core.common.models import to_snapshot
from procurement_core.common.security import APPROVER_ROLES, RequestContext, require_principal
from procurement_core.permissions.evaluator import PermissionEvaluator
from procurement_core.suppliers.models import SupplierCategoryMapModel, SupplierCategoryModel

logger = logging.getLogger(__name__)

CATEGORY_ENTITY = "SUPPLIER_CATEGORY"
CATEGORY_LIST_KEY = "categories:all"


async def categories_for(session: AsyncSession, supplier_id: str) -> list[dict[str, Any]]:
    result = await session.execute(
        select(SupplierCategoryModel)
        .join(SupplierCategoryMapModel, SupplierCategoryMapModel.category_id == SupplierCategoryModel.id)
        .where(SupplierCategoryMapModel.supplier_id == supplier_id)
        .order_by(SupplierCategoryModel.name)
    )
    return [
        {"id": c.id, "name": c.name, "description": c.description}
        for c in result.scalars().all()
    ]


async def ensure_categories_exist(session: AsyncSession, category_ids: list[str]) -> None:
    if not category_ids:
        return
    result = await session.execute(
        select(SupplierCategoryModel.id).where(SupplierCategoryModel.id.in_(category_ids))
    )
    found = set(result.scalars().all())
    missing = [cid for cid in category_ids if cid not in found]
    if missing:
        raise NotFoundError("Category not found", category_ids=missing)


async def attach_categories(session: AsyncSession, supplier_id: str, category_ids: list[str]) -> None:
    for category_id in dict.fromkeys(category_ids):
        session.add(SupplierCategoryMapModel(supplier_id=supplier_id, category_id=category_id))


async def replace_categories(session: AsyncSession, supplier_id: str, category_ids: list[str]) -> None:
    await session.execute(
        delete(SupplierCategoryMapModel).where(SupplierCategoryMapModel.supplier_id == supplier_id)
    )
    await attach_categories(session, supplier_id, category_ids)


class CategoryService:
    """Category CRUD; mutations are limited to managers and admins."""

    def __init__(self, audit: AuditRecorder, cache: CacheService):
        self.audit = audit
        self.cache = cache

    async def _invalidate(self, category_id: str | None = None) -> None:
        if category_id:
            await self.cache.invalidate(entity_key("category", category_id))
        await self.cache.invalidate_by_prefix("categories:*")
        # supplier snapshots embed their categories
        await self.cache.invalidate_by_prefix("supplier:*")
        await self.cache.invalidate_by_prefix("suppliers:*")
        await self.cache.invalidate_by_prefix(ANALYTICS_PATTERN)

    async def list_categories(self, session: AsyncSession, ctx: RequestContext) -> list[dict[str, Any]]:
        require_principal(ctx)
        cached = await self.cache.get(CATEGORY_LIST_KEY)
        if cached is not None:
            return cached
        result = await session.execute(
            select(SupplierCategoryModel).order_by(SupplierCategoryModel.name)
        )
        items = [to_snapshot(c) for c in result.scalars().all()]
        await self.cache.set(CATEGORY_LIST_KEY, items, self.cache.list_ttl)
        return items

    async def create_category(
        self,
        session: AsyncSession,
        ctx: RequestContext,
        name: str,
        description: str | None = None,
    ) -> SupplierCategoryModel:
        principal = require_principal(ctx)
        PermissionEvaluator.check_role(principal, APPROVER_ROLES, "create categories")
        name = name.strip()
        existing = await session.execute(
            select(SupplierCategoryModel).where(SupplierCategoryModel.name == name)
        )
        if existing.scalar_one_or_none() is not None:
            raise BadUserInputError("A category with this name already exists", name=name)

        category = SupplierCategoryModel(name=name, description=description)
        session.add(category)
        await session.flush()
        await self.audit.record(
            session, principal.id, AuditAction.CREATE, CATEGORY_ENTITY, category.id,
            new_values=to_snapshot(category),
            ip_address=ctx.ip_address, user_agent=ctx.user_agent,
        )
        await session.commit()
        await self._invalidate()
        return category

    async def delete_category(self, session: AsyncSession, ctx: RequestContext, category_id: str) -> bool:
        principal = require_principal(ctx)
        PermissionEvaluator.check_role(principal, APPROVER_ROLES, "delete categories")
        category = await session.get(SupplierCategoryModel, category_id)
        if category is None:
            raise NotFoundError("Category not found", entity_id=category_id)

        old_values = to_snapshot(category)
        await session.execute(
            delete(SupplierCategoryMapModel).where(SupplierCategoryMapModel.category_id == category_id)
        )
        await session.delete(category)
        await session.flush()
        await self.audit.record(
            session, principal.id, AuditAction.DELETE, CATEGORY_ENTITY, category_id,
            old_values=old_values,
            ip_address=ctx.ip_address, user_agent=ctx.user_agent,
        )
        try:
            await session.commit()
        finally:
            await self._invalidate(category_id)
        return True
