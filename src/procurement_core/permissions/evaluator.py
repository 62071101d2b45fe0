"""Permission evaluator: role gates, ownership gates and role-based grants.

Grants live in the ``permissions`` table keyed by (role, resource, action).
Lookups go through two cache tiers: a process-local ``PermissionCache`` and
the shared cache store under ``rolePermissionsMap:{role}``. ADMIN bypasses
both tiers and every grant check.
"""

import logging
from typing import Any, Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from procurement_core.cache.service import CacheService
from procurement_core.common.exceptions import ForbiddenError, NotFoundError
from procurement_core.common.security import Principal, Role, require_principal, RequestContext
from procurement_core.permissions.models import PermissionModel

logger = logging.getLogger(__name__)

RoleMap = dict[str, dict[str, bool]]


def role_map_key(role: str) -> str:
    return f"rolePermissionsMap:{role}"


class PermissionCache:
    """Process-local role → {resource: {action: granted}} map.

    Entries are replaced wholesale per role, never mutated in place.
    """

    def __init__(self) -> None:
        self._maps: dict[str, RoleMap] = {}

    def get(self, role: str) -> RoleMap | None:
        return self._maps.get(role)

    def put(self, role: str, role_map: RoleMap) -> None:
        self._maps[role] = role_map

    def forget(self, role: str) -> None:
        self._maps.pop(role, None)

    def clear(self) -> None:
        self._maps.clear()

    def __contains__(self, role: str) -> bool:
        return role in self._maps


def _role_value(role: Role | str) -> str:
    return role.value if isinstance(role, Role) else role


class PermissionEvaluator:
    """Authorization decisions for principals."""

    def __init__(
        self,
        cache_service: CacheService,
        local_cache: PermissionCache | None = None,
    ):
        self.cache_service = cache_service
        self.local_cache = local_cache if local_cache is not None else PermissionCache()

    # ── Role and ownership gates ──

    @staticmethod
    def check_role(
        principal: Principal,
        allowed_roles: Iterable[Role],
        action_label: str,
    ) -> None:
        """Raise FORBIDDEN unless the principal's role is in ``allowed_roles``.

        ADMIN is not implied: callers list it where admins should act.
        """
        allowed = [_role_value(r) for r in allowed_roles]
        if _role_value(principal.role) not in allowed:
            raise ForbiddenError(
                f"You do not have permission to {action_label}",
                user_role=_role_value(principal.role),
                required_roles=allowed,
            )

    def require_role(
        self, ctx: RequestContext, allowed_roles: Iterable[Role], action_label: str,
    ) -> Principal:
        """Authenticate then role-gate in one step."""
        principal = require_principal(ctx)
        self.check_role(principal, allowed_roles, action_label)
        return principal

    @staticmethod
    def check_ownership(
        entity: Any | None,
        principal: Principal,
        action_label: str,
        owner_field: str = "created_by_id",
    ) -> None:
        """ADMIN and MANAGER pass; a SPECIALIST must own the entity."""
        if entity is None:
            raise NotFoundError("Entity not found")
        if principal.role in (Role.ADMIN, Role.PROCUREMENT_MANAGER):
            return
        if getattr(entity, owner_field, None) != principal.id:
            raise ForbiddenError(
                f"You do not have permission to {action_label} this entity",
                user_role=principal.role.value,
                entity_id=getattr(entity, "id", None),
            )

    # ── Role-based grants ──

    async def load_role_map(self, session: AsyncSession, role: Role | str) -> RoleMap:
        """Build the full grant map for a role from the permissions table."""
        result = await session.execute(
            select(PermissionModel).where(PermissionModel.role == _role_value(role))
        )
        role_map: RoleMap = {}
        for perm in result.scalars().all():
            role_map.setdefault(perm.resource, {})[perm.action] = perm.is_granted
        return role_map

    async def get_role_map(self, session: AsyncSession, role: Role | str) -> RoleMap:
        """Role map through local tier → shared cache → table, populating on the way."""
        role = _role_value(role)
        local = self.local_cache.get(role)
        if local is not None:
            return local

        cached = await self.cache_service.get(role_map_key(role))
        if cached is not None:
            self.local_cache.put(role, cached)
            return cached

        role_map = await self.load_role_map(session, role)
        await self.cache_service.set(
            role_map_key(role), role_map, self.cache_service.permission_ttl
        )
        self.local_cache.put(role, role_map)
        return role_map

    async def has_granted_permission(
        self,
        session: AsyncSession,
        principal: Principal,
        resource: str,
        action: str,
    ) -> bool:
        if principal.role == Role.ADMIN:
            return True
        role_map = await self.get_role_map(session, principal.role)
        return bool(role_map.get(resource, {}).get(action, False))

    async def require_granted_permission(
        self,
        session: AsyncSession,
        principal: Principal,
        resource: str,
        action: str,
        description: str | None = None,
    ) -> None:
        if not await self.has_granted_permission(session, principal, resource, action):
            raise ForbiddenError(
                f"You do not have permission to {description or f'{action} {resource}'}",
                user_role=principal.role.value,
                resource=resource,
                action=action,
            )

    async def forget_role(self, role: Role | str) -> None:
        """Drop both cache tiers for a role after its grants change."""
        role = _role_value(role)
        self.local_cache.forget(role)
        await self.cache_service.invalidate(role_map_key(role))
        logger.info("Permission cache cleared for role %s", role)
