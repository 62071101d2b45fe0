"""User administration and principal resolution."""

import logging
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from procurement_core.audit.service import AuditAction, AuditRecorder
from procurement_core.cache.service import CacheService, entity_key, list_key
from procurement_core.common.exceptions import BadUserInputError, ForbiddenError, NotFoundError
from procurement_core.common.models import json_safe, to_snapshot
from procurement_core.common.security import Principal, RequestContext, Role, require_principal
from procurement_core.permissions.evaluator import PermissionEvaluator
from procurement_core.users.models import UserModel

logger = logging.getLogger(__name__)

USER_ENTITY = "USER"
PROFILE_FIELDS = frozenset({"first_name", "last_name", "department", "email"})
ADMIN_ONLY_FIELDS = frozenset({"role", "is_active"})


def principal_for(user: UserModel) -> Principal:
    return Principal(id=user.id, email=user.email, role=Role(user.role))


def coerce_role(value: Role | str) -> str:
    try:
        return Role(json_safe(value)).value
    except ValueError:
        raise BadUserInputError(f"Unknown role {value!r}", role=str(value)) from None


class UserService:
    def __init__(self, audit: AuditRecorder, cache: CacheService):
        self.audit = audit
        self.cache = cache

    async def _invalidate(self, user_id: str | None = None) -> None:
        if user_id:
            await self.cache.invalidate(entity_key("user", user_id))
        await self.cache.invalidate_by_prefix("users:*")

    async def _require_unique_email(
        self, session: AsyncSession, email: str, exclude_id: str | None = None,
    ) -> None:
        query = select(UserModel.id).where(func.lower(UserModel.email) == email.lower())
        if exclude_id:
            query = query.where(UserModel.id != exclude_id)
        if (await session.execute(query.limit(1))).first() is not None:
            raise BadUserInputError("A user with this email already exists", email=email)

    async def get_by_email(self, session: AsyncSession, email: str) -> UserModel | None:
        result = await session.execute(
            select(UserModel).where(func.lower(UserModel.email) == email.lower())
        )
        return result.scalar_one_or_none()

    async def bootstrap_admin(
        self,
        session: AsyncSession,
        email: str,
        first_name: str = "System",
        last_name: str = "Administrator",
    ) -> UserModel:
        """Create the first ADMIN, or return the existing account for ``email``."""
        existing = await self.get_by_email(session, email)
        if existing is not None:
            return existing
        user = UserModel(
            email=email, first_name=first_name, last_name=last_name,
            role=Role.ADMIN.value, is_active=True,
        )
        session.add(user)
        await session.flush()
        await self.audit.record(
            session, None, AuditAction.CREATE, USER_ENTITY, user.id,
            new_values=to_snapshot(user),
        )
        return user

    # ── Reads ──

    async def get_user(self, session: AsyncSession, ctx: RequestContext, user_id: str) -> dict[str, Any]:
        principal = require_principal(ctx)
        if principal.id != user_id:
            PermissionEvaluator.check_role(
                principal, [Role.ADMIN, Role.PROCUREMENT_MANAGER], "view users",
            )
        key = entity_key("user", user_id)
        cached = await self.cache.get(key)
        if cached is not None:
            return cached
        user = await session.get(UserModel, user_id)
        if user is None:
            raise NotFoundError("User not found", entity_id=user_id)
        data = to_snapshot(user)
        data.pop("password_hash", None)
        await self.cache.set(key, data, self.cache.entity_ttl)
        return data

    async def list_users(
        self,
        session: AsyncSession,
        ctx: RequestContext,
        page: int = 1,
        limit: int = 10,
        role: Role | str | None = None,
        is_active: bool | None = None,
        search: str | None = None,
    ) -> dict[str, Any]:
        principal = require_principal(ctx)
        PermissionEvaluator.check_role(
            principal, [Role.ADMIN, Role.PROCUREMENT_MANAGER], "view users",
        )
        role = json_safe(role)
        filters = {"role": role, "is_active": is_active, "search": search}
        key = list_key("users", page, limit, filters)
        cached = await self.cache.get(key)
        if cached is not None:
            return cached

        conditions = []
        if role:
            conditions.append(UserModel.role == role)
        if is_active is not None:
            conditions.append(UserModel.is_active.is_(is_active))
        if search:
            pattern = f"%{search}%"
            conditions.append(or_(
                UserModel.email.ilike(pattern),
                UserModel.first_name.ilike(pattern),
                UserModel.last_name.ilike(pattern),
            ))
        total = (await session.execute(
            select(func.count()).select_from(UserModel).where(*conditions)
        )).scalar_one()
        offset = (page - 1) * limit
        result = await session.execute(
            select(UserModel)
            .where(*conditions)
            .order_by(UserModel.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        items = []
        for user in result.scalars().all():
            data = to_snapshot(user)
            data.pop("password_hash", None)
            items.append(data)
        data = {
            "items": items,
            "total": total,
            "page": page,
            "limit": limit,
            "has_more": offset + len(items) < total,
        }
        await self.cache.set(key, data, self.cache.list_ttl)
        return data

    # ── Mutations ──

    async def create_user(
        self,
        session: AsyncSession,
        ctx: RequestContext,
        email: str,
        first_name: str,
        last_name: str,
        role: Role | str,
        department: str | None = None,
    ) -> UserModel:
        principal = require_principal(ctx)
        PermissionEvaluator.check_role(principal, [Role.ADMIN], "create users")
        await self._require_unique_email(session, email)
        user = UserModel(
            email=email,
            first_name=first_name,
            last_name=last_name,
            role=coerce_role(role),
            department=department,
            is_active=True,
        )
        session.add(user)
        await session.flush()
        await self.audit.record(
            session, principal.id, AuditAction.CREATE, USER_ENTITY, user.id,
            new_values=to_snapshot(user),
            ip_address=ctx.ip_address, user_agent=ctx.user_agent,
        )
        await session.commit()
        await self._invalidate()
        return user

    async def update_user(
        self,
        session: AsyncSession,
        ctx: RequestContext,
        user_id: str,
        changes: dict[str, Any],
    ) -> UserModel:
        """Profile edits by the user or an admin.

        Role and active status are admin-only and never editable on the
        admin's own account.
        """
        principal = require_principal(ctx)
        unknown = set(changes) - PROFILE_FIELDS - ADMIN_ONLY_FIELDS
        if unknown:
            raise BadUserInputError("Unknown user fields", fields=sorted(unknown))
        is_self = principal.id == user_id
        if not is_self:
            PermissionEvaluator.check_role(principal, [Role.ADMIN], "update other users")
        if ADMIN_ONLY_FIELDS & set(changes):
            PermissionEvaluator.check_role(principal, [Role.ADMIN], "change user role or status")
            if is_self:
                raise ForbiddenError(
                    "You cannot change your own role or active status",
                    user_role=principal.role.value,
                )

        user = await session.get(UserModel, user_id)
        if user is None:
            raise NotFoundError("User not found", entity_id=user_id)
        if changes.get("email") and changes["email"] != user.email:
            await self._require_unique_email(session, changes["email"], exclude_id=user_id)

        old_values = to_snapshot(user)
        for field, value in changes.items():
            if field == "role":
                value = coerce_role(value)
            setattr(user, field, value)
        await session.flush()
        await self.audit.record(
            session, principal.id, AuditAction.UPDATE, USER_ENTITY, user_id,
            old_values=old_values, new_values=to_snapshot(user),
            ip_address=ctx.ip_address, user_agent=ctx.user_agent,
        )
        try:
            await session.commit()
        finally:
            await self._invalidate(user_id)
        return user
