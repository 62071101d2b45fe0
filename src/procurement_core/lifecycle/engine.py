"""Generic lifecycle engine for approval-workflow entities.

Every mutation runs the same sequence: permission gate → load → transition
and business validation → write → audit → commit → status event and
notification → cache invalidation.

The primary write is committed before notifications go out. Audit entries
are written inside a savepoint ahead of that commit and never raise. A
notification failure does propagate, but only after the write is durable,
and cache invalidation runs in ``finally`` so a failed dispatch cannot leave
stale reads behind.
"""

import logging
from typing import Any, Awaitable, Callable, Sequence

from sqlalchemy import ColumnElement, delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from procurement_core.audit.service import AuditAction, AuditRecorder
from procurement_core.cache.service import ANALYTICS_PATTERN, CacheService, list_key
from procurement_core.common.config import ProcurementSettings
from procurement_core.common.exceptions import (
    BadUserInputError,
    ConcurrentUpdateError,
    ForbiddenError,
    InternalError,
    NotFoundError,
)
from procurement_core.common.models import json_safe, to_snapshot, utcnow
from procurement_core.common.security import (
    APPROVER_ROLES,
    Principal,
    RequestContext,
    Role,
    require_principal,
)
from procurement_core.lifecycle.descriptor import EntityDescriptor, NotificationTemplate
from procurement_core.lifecycle.events import EventBus
from procurement_core.notifications.service import NotificationDispatcher
from procurement_core.permissions.evaluator import PermissionEvaluator

logger = logging.getLogger(__name__)

InsertHook = Callable[[AsyncSession, Any], Awaitable[None]]
ChangeValidator = Callable[[Any, dict[str, Any]], Awaitable[None] | None]


class LifecycleEngine:
    """State-machine operations shared by suppliers, contracts and payments."""

    def __init__(
        self,
        settings: ProcurementSettings,
        descriptor: EntityDescriptor,
        permissions: PermissionEvaluator,
        audit: AuditRecorder,
        notifier: NotificationDispatcher,
        cache: CacheService,
        events: EventBus,
    ):
        self.settings = settings
        self.descriptor = descriptor
        self.permissions = permissions
        self.audit = audit
        self.notifier = notifier
        self.cache = cache
        self.events = events

    # ── Helpers ──

    @property
    def _title(self) -> str:
        return self.descriptor.label.capitalize()

    async def load(self, session: AsyncSession, entity_id: str) -> Any:
        entity = await session.get(self.descriptor.model, entity_id)
        if entity is None:
            raise NotFoundError(f"{self._title} not found", entity_id=entity_id)
        return entity

    async def snapshot(self, session: AsyncSession, entity: Any) -> dict[str, Any]:
        if self.descriptor.serialize is not None:
            return await self.descriptor.serialize(session, entity)
        return to_snapshot(entity)

    async def check_grant(self, session: AsyncSession, principal: Principal, action: str) -> None:
        if self.settings.enforce_permission_grants:
            await self.permissions.require_granted_permission(
                session, principal, self.descriptor.resource, action,
                description=f"{action} {self.descriptor.list_prefix}",
            )

    async def flush(self, session: AsyncSession, entity_id: str | None = None) -> None:
        try:
            await session.flush()
        except StaleDataError as exc:
            raise ConcurrentUpdateError(
                entity_type=self.descriptor.entity_type, entity_id=entity_id,
            ) from exc
        except IntegrityError as exc:
            raise BadUserInputError(
                f"{self._title} violates a database constraint",
                entity_type=self.descriptor.entity_type, entity_id=entity_id,
                constraint=str(exc.orig),
            ) from exc
        except SQLAlchemyError as exc:
            raise InternalError(
                f"Failed to write {self.descriptor.label}",
                entity_type=self.descriptor.entity_type, entity_id=entity_id,
            ) from exc

    async def commit(self, session: AsyncSession, entity_id: str) -> None:
        try:
            await session.commit()
        except SQLAlchemyError as exc:
            raise InternalError(
                f"Failed to commit {self.descriptor.label}",
                entity_type=self.descriptor.entity_type, entity_id=entity_id,
            ) from exc

    async def record_audit(
        self,
        session: AsyncSession,
        ctx: RequestContext,
        action: AuditAction,
        entity_id: str,
        old_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None,
    ) -> None:
        await self.audit.record(
            session,
            ctx.principal.id if ctx.principal else None,
            action,
            self.descriptor.entity_type,
            entity_id,
            old_values=old_values,
            new_values=new_values,
            ip_address=ctx.ip_address,
            user_agent=ctx.user_agent,
        )

    async def template_values(self, session: AsyncSession, entity: Any, **extra: Any) -> dict[str, Any]:
        values = to_snapshot(entity)
        if self.descriptor.template_values is not None:
            values.update(await self.descriptor.template_values(session, entity))
        values.update(extra)
        return values

    async def notify_owner(
        self,
        session: AsyncSession,
        entity: Any,
        template: NotificationTemplate,
        **extra: Any,
    ) -> None:
        owner_id = getattr(entity, self.descriptor.owner_field, None)
        if owner_id is None:
            logger.debug("%s %s has no owner to notify", self._title, entity.id)
            return
        title, message = template.render(await self.template_values(session, entity, **extra))
        await self.notifier.notify(
            session,
            type=template.type,
            title=title,
            message=message,
            user_id=owner_id,
            entity_type=self.descriptor.entity_type,
            entity_id=entity.id,
        )

    def publish(self, entity: Any) -> None:
        self.events.publish(self.descriptor.event_name, to_snapshot(entity))

    async def invalidate(self, entity_id: str | None = None) -> None:
        if entity_id is not None:
            await self.cache.invalidate(self.descriptor.entity_key(entity_id))
        await self.cache.invalidate_by_prefix(self.descriptor.list_pattern)
        await self.cache.invalidate_by_prefix(ANALYTICS_PATTERN)

    def _require_transition(self, entity: Any, target: str) -> None:
        if not self.descriptor.can_transition(entity.status, target):
            raise BadUserInputError(
                f"Cannot change {self.descriptor.label} status from {entity.status} to {target}",
                entity_id=entity.id,
                current_status=entity.status,
                target_status=target,
            )

    # ── Reads ──

    async def get(self, session: AsyncSession, ctx: RequestContext, entity_id: str) -> dict[str, Any]:
        """Read-through single entity."""
        require_principal(ctx)
        key = self.descriptor.entity_key(entity_id)
        cached = await self.cache.get(key)
        if cached is not None:
            return cached

        entity = await self.load(session, entity_id)
        data = await self.snapshot(session, entity)
        await self.cache.set(key, data, self.cache.entity_ttl)
        return data

    async def list(
        self,
        session: AsyncSession,
        ctx: RequestContext,
        page: int,
        limit: int,
        filters: dict[str, Any],
        conditions: Sequence[ColumnElement[bool]] = (),
    ) -> dict[str, Any]:
        """Read-through paginated list, newest first.

        ``filters`` only shapes the cache key; ``conditions`` are the SQL
        predicates the caller derived from the same filters.
        """
        require_principal(ctx)
        limit = min(limit, self.settings.max_page_size)
        key = list_key(self.descriptor.list_prefix, page, limit, filters)
        cached = await self.cache.get(key)
        if cached is not None:
            return cached

        model = self.descriptor.model
        total = (await session.execute(
            select(func.count()).select_from(model).where(*conditions)
        )).scalar_one()
        offset = (page - 1) * limit
        result = await session.execute(
            select(model)
            .where(*conditions)
            .order_by(model.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        rows = list(result.scalars().all())
        items = [await self.snapshot(session, row) for row in rows]
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

    async def create(
        self,
        session: AsyncSession,
        ctx: RequestContext,
        values: dict[str, Any],
        *,
        on_insert: InsertHook | None = None,
        template: NotificationTemplate | None = None,
        require_actor: bool = True,
    ) -> Any:
        """Insert in the initial status, owned by the acting principal.

        ``require_actor=False`` is reserved for the public registration path,
        where the row has no owner and the audit entry no actor.
        """
        d = self.descriptor
        principal = require_principal(ctx) if require_actor else ctx.principal
        if principal is not None:
            await self.check_grant(session, principal, "create")

        entity = d.model(**values)
        entity.status = d.initial_status
        if principal is not None:
            setattr(entity, d.owner_field, principal.id)
        session.add(entity)
        await self.flush(session)
        if on_insert is not None:
            await on_insert(session, entity)
            await self.flush(session, entity.id)

        await self.record_audit(session, ctx, AuditAction.CREATE, entity.id, new_values=to_snapshot(entity))
        await self.commit(session, entity.id)
        logger.info("%s %s created", self._title, entity.id)

        try:
            self.publish(entity)
            tpl = template or d.created
            title, message = tpl.render(await self.template_values(session, entity))
            await self.notifier.notify(
                session,
                type=tpl.type,
                title=title,
                message=message,
                role=Role.PROCUREMENT_MANAGER,
                entity_type=d.entity_type,
                entity_id=entity.id,
            )
        finally:
            await self.invalidate()
        return entity

    async def update(
        self,
        session: AsyncSession,
        ctx: RequestContext,
        entity_id: str,
        changes: dict[str, Any],
        *,
        validate: ChangeValidator | None = None,
        on_apply: InsertHook | None = None,
    ) -> Any:
        """Apply field changes; a status change must be a legal transition by an approver.

        ``validate`` sees the entity before the changes land; ``on_apply``
        runs after they are set, before the flush (dependent rows).
        """
        d = self.descriptor
        principal = require_principal(ctx)
        entity = await self.load(session, entity_id)
        self.permissions.check_ownership(entity, principal, "update", d.owner_field)
        await self.check_grant(session, principal, "update")

        changes = dict(changes)
        if changes.get("status") is not None:
            changes["status"] = json_safe(changes["status"])
        old_status = entity.status
        new_status = changes.get("status")
        status_changed = new_status is not None and new_status != old_status
        if status_changed:
            self.permissions.check_role(
                principal, APPROVER_ROLES, f"change {d.label} status"
            )
            self._require_transition(entity, new_status)
        elif "status" in changes:
            changes = {k: v for k, v in changes.items() if k != "status"}

        if validate is not None:
            outcome = validate(entity, changes)
            if outcome is not None:
                await outcome

        old_values = to_snapshot(entity)
        for field_name, value in changes.items():
            setattr(entity, field_name, value)
        if hasattr(entity, "updated_by_id"):
            entity.updated_by_id = principal.id
        if status_changed and d.stamps_approval(new_status):
            entity.approved_by_id = principal.id
            entity.approved_at = utcnow()
        if on_apply is not None:
            await on_apply(session, entity)
        await self.flush(session, entity_id)

        await self.record_audit(
            session, ctx, AuditAction.UPDATE, entity_id,
            old_values=old_values, new_values=to_snapshot(entity),
        )
        await self.commit(session, entity_id)

        try:
            if status_changed:
                self.publish(entity)
                template = d.status_templates.get(new_status)
                if template is not None:
                    await self.notify_owner(session, entity, template)
        finally:
            await self.invalidate(entity_id)
        return entity

    async def approve(self, session: AsyncSession, ctx: RequestContext, entity_id: str) -> Any:
        d = self.descriptor
        principal = self.permissions.require_role(ctx, APPROVER_ROLES, f"approve {d.list_prefix}")
        entity = await self.load(session, entity_id)
        await self.check_grant(session, principal, "approve")
        self._require_transition(entity, d.approved_status)

        old_values = to_snapshot(entity)
        entity.status = d.approved_status
        entity.approved_by_id = principal.id
        entity.approved_at = utcnow()
        if hasattr(entity, "updated_by_id"):
            entity.updated_by_id = principal.id
        await self.flush(session, entity_id)

        await self.record_audit(
            session, ctx, AuditAction.APPROVE, entity_id,
            old_values=old_values, new_values=to_snapshot(entity),
        )
        await self.commit(session, entity_id)
        logger.info("%s %s approved by %s", self._title, entity_id, principal.id)

        try:
            self.publish(entity)
            await self.notify_owner(session, entity, d.approved)
        finally:
            await self.invalidate(entity_id)
        return entity

    async def reject(
        self, session: AsyncSession, ctx: RequestContext, entity_id: str, reason: str,
    ) -> Any:
        """Move to REJECTED and append the timestamped reason to the notes field."""
        d = self.descriptor
        principal = self.permissions.require_role(ctx, APPROVER_ROLES, f"reject {d.list_prefix}")
        reason = (reason or "").strip()
        if not reason:
            raise BadUserInputError("Rejection reason is required", entity_id=entity_id)
        entity = await self.load(session, entity_id)
        await self.check_grant(session, principal, "reject")
        self._require_transition(entity, d.rejected_status)

        old_values = to_snapshot(entity)
        existing = getattr(entity, d.notes_field) or ""
        stamped = f"Rejection reason ({utcnow().isoformat()}): {reason}"
        setattr(entity, d.notes_field, f"{existing}\n\n{stamped}".strip())
        entity.status = d.rejected_status
        if hasattr(entity, "updated_by_id"):
            entity.updated_by_id = principal.id
        await self.flush(session, entity_id)

        new_values = to_snapshot(entity)
        new_values["rejection_reason"] = reason
        await self.record_audit(
            session, ctx, AuditAction.REJECT, entity_id,
            old_values=old_values, new_values=new_values,
        )
        await self.commit(session, entity_id)
        logger.info("%s %s rejected by %s", self._title, entity_id, principal.id)

        try:
            self.publish(entity)
            await self.notify_owner(session, entity, d.rejected, reason=reason)
        finally:
            await self.invalidate(entity_id)
        return entity

    async def delete(self, session: AsyncSession, ctx: RequestContext, entity_id: str) -> bool:
        """Approvers delete anything; specialists only their own rows in deletable statuses."""
        d = self.descriptor
        principal = require_principal(ctx)
        is_approver = principal.role in APPROVER_ROLES
        if not is_approver and not d.specialist_deletable:
            self.permissions.check_role(principal, APPROVER_ROLES, f"delete {d.list_prefix}")

        entity = await self.load(session, entity_id)
        if not is_approver:
            owns = getattr(entity, d.owner_field, None) == principal.id
            if not owns or entity.status not in d.specialist_deletable:
                raise ForbiddenError(
                    f"You can only delete your own {d.list_prefix} in status "
                    f"{', '.join(sorted(d.specialist_deletable))}",
                    user_role=principal.role.value,
                    entity_id=entity_id,
                )
        await self.check_grant(session, principal, "delete")

        old_values = await self.snapshot(session, entity)
        for dependent, fk in d.dependents:
            await session.execute(delete(dependent).where(getattr(dependent, fk) == entity_id))
        await session.delete(entity)
        await self.flush(session, entity_id)

        await self.record_audit(session, ctx, AuditAction.DELETE, entity_id, old_values=old_values)
        try:
            await self.commit(session, entity_id)
            logger.info("%s %s deleted by %s", self._title, entity_id, principal.id)
        finally:
            await self.invalidate(entity_id)
        return True

    async def apply_status(
        self,
        session: AsyncSession,
        ctx: RequestContext,
        entity: Any,
        target: str,
        action: AuditAction,
        extra_changes: dict[str, Any] | None = None,
    ) -> Any:
        """System-driven transition on an already loaded entity (expiry, settlement).

        The caller is responsible for authorization; the transition table
        still applies.
        """
        self._require_transition(entity, target)
        old_values = to_snapshot(entity)
        entity.status = target
        for field_name, value in (extra_changes or {}).items():
            setattr(entity, field_name, value)
        if ctx.principal is not None and hasattr(entity, "updated_by_id"):
            entity.updated_by_id = ctx.principal.id
        await self.flush(session, entity.id)
        await self.record_audit(
            session, ctx, action, entity.id,
            old_values=old_values, new_values=to_snapshot(entity),
        )
        await self.commit(session, entity.id)
        try:
            self.publish(entity)
        finally:
            await self.invalidate(entity.id)
        return entity
