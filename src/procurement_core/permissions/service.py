"""Permission administration: CRUD over role-based grants (ADMIN only)."""

import logging
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from procurement_core.audit.service import AuditAction, AuditRecorder
from procurement_core.cache.service import CacheService, entity_key, list_key
from procurement_core.common.exceptions import BadUserInputError, ForbiddenError, NotFoundError
from procurement_core.common.models import to_snapshot
from procurement_core.common.security import RequestContext, Role, require_principal
from procurement_core.permissions.evaluator import PermissionEvaluator
from procurement_core.permissions.models import PermissionModel
from procurement_core.users.service import coerce_role

logger = logging.getLogger(__name__)

PERMISSION_ENTITY = "PERMISSION"
UPDATABLE_FIELDS = frozenset({"description", "is_granted"})


class PermissionService:
    def __init__(
        self,
        evaluator: PermissionEvaluator,
        audit: AuditRecorder,
        cache: CacheService,
    ):
        self.evaluator = evaluator
        self.audit = audit
        self.cache = cache

    def _require_admin(self, ctx: RequestContext, action_label: str):
        return self.evaluator.require_role(ctx, [Role.ADMIN], action_label)

    async def _invalidate(self, role: str, permission_id: str | None = None) -> None:
        if permission_id:
            await self.cache.invalidate(entity_key("permission", permission_id))
        await self.cache.invalidate_by_prefix("permissions:*")
        await self.evaluator.forget_role(role)

    async def _load(self, session: AsyncSession, permission_id: str) -> PermissionModel:
        permission = await session.get(PermissionModel, permission_id)
        if permission is None:
            raise NotFoundError("Permission not found", entity_id=permission_id)
        return permission

    # ── Reads ──

    async def list_permissions(
        self,
        session: AsyncSession,
        ctx: RequestContext,
        page: int = 1,
        limit: int = 10,
        role: Role | str | None = None,
        resource: str | None = None,
        action: str | None = None,
    ) -> dict[str, Any]:
        self._require_admin(ctx, "view permissions")
        role = coerce_role(role) if role else None
        filters = {"role": role, "resource": resource, "action": action}
        key = list_key("permissions", page, limit, filters)
        cached = await self.cache.get(key)
        if cached is not None:
            return cached

        conditions = [
            getattr(PermissionModel, name) == value
            for name, value in filters.items()
            if value
        ]
        total = (await session.execute(
            select(func.count()).select_from(PermissionModel).where(*conditions)
        )).scalar_one()
        offset = (page - 1) * limit
        result = await session.execute(
            select(PermissionModel)
            .where(*conditions)
            .order_by(PermissionModel.role, PermissionModel.resource, PermissionModel.action)
            .offset(offset)
            .limit(limit)
        )
        items = [to_snapshot(p) for p in result.scalars().all()]
        data = {
            "items": items,
            "total": total,
            "page": page,
            "limit": limit,
            "has_more": offset + len(items) < total,
        }
        await self.cache.set(key, data, self.cache.list_ttl)
        return data

    async def role_permissions_map(
        self, session: AsyncSession, ctx: RequestContext, role: Role | str,
    ) -> dict[str, dict[str, bool]]:
        """Grant map for a role; visible to ADMIN or members of that role."""
        principal = require_principal(ctx)
        role = coerce_role(role)
        if principal.role != Role.ADMIN and principal.role.value != role:
            raise ForbiddenError(
                "You do not have permission to view permissions of another role",
                user_role=principal.role.value,
                role=role,
            )
        return await self.evaluator.get_role_map(session, role)

    # ── Mutations ──

    async def create_permission(
        self,
        session: AsyncSession,
        ctx: RequestContext,
        role: Role | str,
        resource: str,
        action: str,
        description: str | None = None,
        is_granted: bool = True,
    ) -> PermissionModel:
        principal = self._require_admin(ctx, "manage permissions")
        role = coerce_role(role)
        existing = await session.execute(
            select(PermissionModel.id).where(
                PermissionModel.role == role,
                PermissionModel.resource == resource,
                PermissionModel.action == action,
            ).limit(1)
        )
        if existing.first() is not None:
            raise BadUserInputError(
                "Permission already exists for this role, resource and action",
                role=role, resource=resource, action=action,
            )

        permission = PermissionModel(
            role=role, resource=resource, action=action,
            description=description, is_granted=is_granted,
        )
        session.add(permission)
        await session.flush()
        await self.audit.record(
            session, principal.id, AuditAction.CREATE, PERMISSION_ENTITY, permission.id,
            new_values=to_snapshot(permission),
            ip_address=ctx.ip_address, user_agent=ctx.user_agent,
        )
        try:
            await session.commit()
        finally:
            await self._invalidate(role)
        logger.info("Permission %s:%s:%s created", role, resource, action)
        return permission

    async def update_permission(
        self,
        session: AsyncSession,
        ctx: RequestContext,
        permission_id: str,
        changes: dict[str, Any],
    ) -> PermissionModel:
        principal = self._require_admin(ctx, "manage permissions")
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise BadUserInputError("Unknown permission fields", fields=sorted(unknown))
        permission = await self._load(session, permission_id)

        old_values = to_snapshot(permission)
        for field, value in changes.items():
            setattr(permission, field, value)
        await session.flush()
        await self.audit.record(
            session, principal.id, AuditAction.UPDATE, PERMISSION_ENTITY, permission_id,
            old_values=old_values, new_values=to_snapshot(permission),
            ip_address=ctx.ip_address, user_agent=ctx.user_agent,
        )
        try:
            await session.commit()
        finally:
            await self._invalidate(permission.role, permission_id)
        return permission

    async def delete_permission(
        self, session: AsyncSession, ctx: RequestContext, permission_id: str,
    ) -> bool:
        principal = self._require_admin(ctx, "manage permissions")
        permission = await self._load(session, permission_id)
        role = permission.role

        old_values = to_snapshot(permission)
        await session.delete(permission)
        await session.flush()
        await self.audit.record(
            session, principal.id, AuditAction.DELETE, PERMISSION_ENTITY, permission_id,
            old_values=old_values,
            ip_address=ctx.ip_address, user_agent=ctx.user_agent,
        )
        try:
            await session.commit()
        finally:
            await self._invalidate(role, permission_id)
        return True

