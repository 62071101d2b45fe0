"""Audit recorder: append-only trail of every mutation.

Recording is best-effort: each entry is written inside a SAVEPOINT and any
failure is logged and swallowed, so an audit problem never aborts the
business write that triggered it. Snapshots are stored as written; secrets
are masked by ``sanitize`` on every read path.
"""

import enum
import logging
from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from procurement_core.audit.models import AuditLogModel
from procurement_core.common.exceptions import NotFoundError
from procurement_core.common.models import json_safe, to_snapshot
from procurement_core.common.security import Principal, Role
from procurement_core.permissions.evaluator import PermissionEvaluator

logger = logging.getLogger(__name__)

REDACTED = "[REDACTED]"

SENSITIVE_FIELDS: frozenset[str] = frozenset({
    "passwordHash",
    "password",
    "secret",
    "token",
    "creditCard",
    "bankAccountNumber",
    "iban",
    "ssn",
    # snake_case spellings used by our own snapshots
    "password_hash",
    "credit_card",
    "bank_account_number",
})


class AuditAction(str, enum.Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    RATE = "RATE"
    UPLOAD = "UPLOAD"
    EXPIRE = "EXPIRE"


def _mask(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            k: REDACTED if k in SENSITIVE_FIELDS else _mask(v)
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [_mask(v) for v in value]
    return value


def _serialize(values: Any) -> Any:
    if values is None:
        return None
    if isinstance(values, dict):
        return {k: _serialize(v) for k, v in values.items()}
    if isinstance(values, (list, tuple)):
        return [_serialize(v) for v in values]
    return json_safe(values)


def sanitize(entry: AuditLogModel | dict[str, Any]) -> dict[str, Any]:
    """Dict view of an audit entry with sensitive snapshot fields masked."""
    data = entry if isinstance(entry, dict) else to_snapshot(entry)
    data = dict(data)
    for field in ("old_values", "new_values"):
        if data.get(field) is not None:
            data[field] = _mask(data[field])
    return data


class AuditRecorder:
    """Writes and reads the audit trail."""

    def __init__(self, permission_evaluator: PermissionEvaluator | None = None):
        self.permission_evaluator = permission_evaluator

    # ── Write ──

    async def record(
        self,
        session: AsyncSession,
        actor_id: str | None,
        action: AuditAction | str,
        entity_type: str,
        entity_id: str,
        old_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuditLogModel | None:
        """Append one entry. Returns None instead of raising on failure."""
        try:
            async with session.begin_nested():
                entry = AuditLogModel(
                    user_id=actor_id,
                    action=json_safe(action),
                    entity_type=entity_type,
                    entity_id=entity_id,
                    old_values=_serialize(old_values),
                    new_values=_serialize(new_values),
                    ip_address=ip_address,
                    user_agent=user_agent,
                )
                session.add(entry)
                await session.flush()
            return entry
        except Exception:
            logger.exception(
                "Failed to record audit entry %s %s/%s",
                json_safe(action), entity_type, entity_id,
                extra={"entity_type": entity_type, "entity_id": entity_id, "user_id": actor_id},
            )
            return None

    # ── Read ──

    def _require_admin(self, principal: Principal) -> None:
        PermissionEvaluator.check_role(principal, [Role.ADMIN], "view audit logs")

    async def get_entry(
        self, session: AsyncSession, principal: Principal, entry_id: str,
    ) -> dict[str, Any]:
        self._require_admin(principal)
        entry = await session.get(AuditLogModel, entry_id)
        if entry is None:
            raise NotFoundError("Audit log not found", entity_id=entry_id)
        return sanitize(entry)

    async def list_entries(
        self,
        session: AsyncSession,
        principal: Principal,
        page: int = 1,
        limit: int = 10,
        user_id: str | None = None,
        entity_type: str | None = None,
        entity_id: str | None = None,
        action: str | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
    ) -> dict[str, Any]:
        """Paginated, filtered entries, newest first."""
        self._require_admin(principal)

        conditions = []
        if user_id:
            conditions.append(AuditLogModel.user_id == user_id)
        if entity_type:
            conditions.append(AuditLogModel.entity_type == entity_type)
        if entity_id:
            conditions.append(AuditLogModel.entity_id == entity_id)
        if action:
            conditions.append(AuditLogModel.action == action)
        if date_from:
            conditions.append(AuditLogModel.created_at >= date_from)
        if date_to:
            conditions.append(AuditLogModel.created_at <= date_to)

        total = (await session.execute(
            select(func.count()).select_from(AuditLogModel).where(*conditions)
        )).scalar_one()

        offset = (page - 1) * limit
        result = await session.execute(
            select(AuditLogModel)
            .where(*conditions)
            .order_by(AuditLogModel.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        items = [sanitize(e) for e in result.scalars().all()]
        return {
            "items": items,
            "total": total,
            "page": page,
            "limit": limit,
            "has_more": offset + len(items) < total,
        }

    async def entries_for(
        self, session: AsyncSession, entity_type: str, entity_id: str,
    ) -> list[AuditLogModel]:
        """Raw entries for one entity, oldest first (internal and test use)."""
        result = await session.execute(
            select(AuditLogModel)
            .where(
                AuditLogModel.entity_type == entity_type,
                AuditLogModel.entity_id == entity_id,
            )
            .order_by(AuditLogModel.created_at.asc())
        )
        return list(result.scalars().all())
