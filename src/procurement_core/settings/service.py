"""System settings: ADMIN-managed key/value configuration read at runtime.

Values are stored as strings and parsed according to ``data_type`` when the
application reads them through ``get_value``. Non-admin users only see
public settings.
"""

import json
import logging
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from procurement_core.audit.service import AuditAction, AuditRecorder
from procurement_core.cache.service import CacheService, entity_key, list_key
from procurement_core.common.config import ProcurementSettings
from procurement_core.common.exceptions import BadUserInputError, ForbiddenError, NotFoundError
from procurement_core.common.models import json_safe, to_snapshot
from procurement_core.common.security import RequestContext, Role, require_principal
from procurement_core.lifecycle.events import SYSTEM_SETTING_UPDATED, EventBus
from procurement_core.permissions.evaluator import PermissionEvaluator
from procurement_core.settings.models import SettingDataType, SystemSettingModel

logger = logging.getLogger(__name__)

SETTING_ENTITY = "SYSTEM_SETTING"
UPDATABLE_FIELDS = frozenset({"value", "description", "data_type", "is_public"})
CONTRACT_EXPIRY_DAYS = "contract_expiry_days"

DEFAULT_SETTINGS = (
    {
        "key": "company_name",
        "value": "Supplier Management System",
        "description": "Company name displayed in the UI",
        "data_type": SettingDataType.STRING.value,
        "is_public": True,
    },
    {
        "key": "currency_default",
        "value": "USD",
        "description": "Default currency for financial transactions",
        "data_type": SettingDataType.STRING.value,
        "is_public": True,
    },
    {
        "key": CONTRACT_EXPIRY_DAYS,
        "value": "30",
        "description": "Days before contract expiry to send notifications",
        "data_type": SettingDataType.NUMBER.value,
        "is_public": False,
    },
    {
        "key": "password_min_length",
        "value": "8",
        "description": "Minimum password length for new users",
        "data_type": SettingDataType.NUMBER.value,
        "is_public": False,
    },
    {
        "key": "session_timeout_minutes",
        "value": "60",
        "description": "User session timeout in minutes",
        "data_type": SettingDataType.NUMBER.value,
        "is_public": False,
    },
    {
        "key": "enable_two_factor_auth",
        "value": "false",
        "description": "Enable two-factor authentication for users",
        "data_type": SettingDataType.BOOLEAN.value,
        "is_public": False,
    },
)


def id_cache_key(setting_id: str) -> str:
    return entity_key("systemSetting:id", setting_id)


def key_cache_key(key: str) -> str:
    return entity_key("systemSetting:key", key)


def coerce_value(value: str, data_type: str) -> Any:
    """Parse a stored string as its declared type. Raises ``ValueError``."""
    if data_type == SettingDataType.NUMBER.value:
        number = float(value)
        return int(number) if number.is_integer() else number
    if data_type == SettingDataType.BOOLEAN.value:
        lowered = value.strip().lower()
        if lowered not in ("true", "false"):
            raise ValueError(f"{value!r} is not a boolean")
        return lowered == "true"
    if data_type == SettingDataType.JSON.value:
        return json.loads(value)
    return value


def check_value(value: str, data_type: str) -> None:
    if data_type not in {t.value for t in SettingDataType}:
        raise BadUserInputError(f"Unknown data type {data_type!r}", data_type=data_type)
    try:
        coerce_value(value, data_type)
    except ValueError:
        raise BadUserInputError(
            f"Value does not match data type {data_type}", data_type=data_type,
        ) from None


class SystemSettingService:
    def __init__(
        self,
        settings: ProcurementSettings,
        evaluator: PermissionEvaluator,
        audit: AuditRecorder,
        cache: CacheService,
        events: EventBus,
    ):
        self.settings = settings
        self.evaluator = evaluator
        self.audit = audit
        self.cache = cache
        self.events = events

    def _require_admin(self, ctx: RequestContext, action_label: str):
        return self.evaluator.require_role(ctx, [Role.ADMIN], action_label)

    async def _invalidate(self, key: str, setting_id: str | None = None) -> None:
        keys = [key_cache_key(key)]
        if setting_id:
            keys.append(id_cache_key(setting_id))
        await self.cache.invalidate(*keys)
        await self.cache.invalidate_by_prefix("systemSettings:*")

    async def _load(self, session: AsyncSession, setting_id: str) -> SystemSettingModel:
        setting = await session.get(SystemSettingModel, setting_id)
        if setting is None:
            raise NotFoundError("System setting not found", entity_id=setting_id)
        return setting

    async def _lookup(self, session: AsyncSession, key: str) -> dict[str, Any] | None:
        """Read-through snapshot by key; ``None`` when no such setting exists."""
        cache_key = key_cache_key(key)
        cached = await self.cache.get(cache_key)
        if cached is not None:
            return cached
        result = await session.execute(
            select(SystemSettingModel).where(SystemSettingModel.key == key)
        )
        setting = result.scalar_one_or_none()
        if setting is None:
            return None
        data = to_snapshot(setting)
        await self.cache.set(cache_key, data, self.cache.entity_ttl)
        return data

    async def _record(
        self,
        session: AsyncSession,
        ctx: RequestContext,
        action: AuditAction,
        setting_id: str,
        old_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None,
    ) -> None:
        await self.audit.record(
            session, ctx.principal.id, action, SETTING_ENTITY, setting_id,
            old_values=old_values, new_values=new_values,
            ip_address=ctx.ip_address, user_agent=ctx.user_agent,
        )

    # ── Reads ──

    async def get_setting(
        self,
        session: AsyncSession,
        ctx: RequestContext,
        setting_id: str | None = None,
        key: str | None = None,
    ) -> dict[str, Any]:
        principal = require_principal(ctx)
        if setting_id:
            cache_key = id_cache_key(setting_id)
            data = await self.cache.get(cache_key)
            if data is None:
                data = to_snapshot(await self._load(session, setting_id))
                await self.cache.set(cache_key, data, self.cache.entity_ttl)
        elif key:
            data = await self._lookup(session, key)
            if data is None:
                raise NotFoundError("System setting not found", key=key)
        else:
            raise BadUserInputError("Either id or key must be provided")

        if principal.role != Role.ADMIN and not data["is_public"]:
            raise ForbiddenError(
                "You do not have permission to view this setting",
                user_role=principal.role.value,
                key=data["key"],
            )
        return data

    async def list_settings(
        self,
        session: AsyncSession,
        ctx: RequestContext,
        page: int = 1,
        limit: int | None = None,
        search: str | None = None,
        public_only: bool = False,
    ) -> dict[str, Any]:
        principal = require_principal(ctx)
        if principal.role != Role.ADMIN:
            public_only = True
        limit = min(limit or self.settings.default_page_size, self.settings.max_page_size)
        key = list_key("systemSettings", page, limit, {"search": search, "public_only": public_only})
        cached = await self.cache.get(key)
        if cached is not None:
            return cached

        conditions = []
        if search:
            pattern = f"%{search}%"
            conditions.append(or_(
                SystemSettingModel.key.ilike(pattern),
                SystemSettingModel.value.ilike(pattern),
                SystemSettingModel.description.ilike(pattern),
            ))
        if public_only:
            conditions.append(SystemSettingModel.is_public.is_(True))
        total = (await session.execute(
            select(func.count()).select_from(SystemSettingModel).where(*conditions)
        )).scalar_one()
        offset = (page - 1) * limit
        result = await session.execute(
            select(SystemSettingModel)
            .where(*conditions)
            .order_by(SystemSettingModel.key)
            .offset(offset)
            .limit(limit)
        )
        items = [to_snapshot(s) for s in result.scalars().all()]
        data = {
            "items": items,
            "total": total,
            "page": page,
            "limit": limit,
            "has_more": offset + len(items) < total,
        }
        await self.cache.set(key, data, self.cache.list_ttl)
        return data

    async def get_value(self, session: AsyncSession, key: str, default: Any = None) -> Any:
        """Typed value of a setting for internal callers, or ``default``."""
        data = await self._lookup(session, key)
        if data is None:
            return default
        try:
            return coerce_value(data["value"], data["data_type"])
        except ValueError:
            logger.warning("Setting %s does not parse as %s; using default", key, data["data_type"])
            return default

    async def get_int(self, session: AsyncSession, key: str, default: int) -> int:
        value = await self.get_value(session, key, default)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            logger.warning("Setting %s is not numeric; using default", key)
            return default
        return int(value)

    # ── Mutations ──

    async def create_setting(
        self,
        session: AsyncSession,
        ctx: RequestContext,
        key: str,
        value: str,
        description: str | None = None,
        data_type: SettingDataType | str = SettingDataType.STRING,
        is_public: bool = False,
    ) -> SystemSettingModel:
        principal = self._require_admin(ctx, "create system settings")
        data_type = json_safe(data_type)
        check_value(value, data_type)
        existing = await session.execute(
            select(SystemSettingModel.id).where(SystemSettingModel.key == key).limit(1)
        )
        if existing.first() is not None:
            raise BadUserInputError("A setting with this key already exists", key=key)

        setting = SystemSettingModel(
            key=key, value=value, description=description,
            data_type=data_type, is_public=is_public, updated_by_id=principal.id,
        )
        session.add(setting)
        await session.flush()
        await self._record(session, ctx, AuditAction.CREATE, setting.id, new_values=to_snapshot(setting))
        try:
            await session.commit()
        finally:
            await self._invalidate(key, setting.id)
        self.events.publish(SYSTEM_SETTING_UPDATED, to_snapshot(setting))
        logger.info("System setting %s created", key)
        return setting

    async def update_setting(
        self,
        session: AsyncSession,
        ctx: RequestContext,
        setting_id: str,
        changes: dict[str, Any],
    ) -> SystemSettingModel:
        principal = self._require_admin(ctx, "update system settings")
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise BadUserInputError("Unknown system setting fields", fields=sorted(unknown))
        setting = await self._load(session, setting_id)

        changes = {k: json_safe(v) for k, v in changes.items()}
        check_value(changes.get("value", setting.value), changes.get("data_type", setting.data_type))
        old_values = to_snapshot(setting)
        for field, value in changes.items():
            setattr(setting, field, value)
        setting.updated_by_id = principal.id
        await session.flush()
        await self._record(
            session, ctx, AuditAction.UPDATE, setting_id,
            old_values=old_values, new_values=to_snapshot(setting),
        )
        try:
            await session.commit()
        finally:
            await self._invalidate(setting.key, setting_id)
        self.events.publish(SYSTEM_SETTING_UPDATED, to_snapshot(setting))
        return setting

    async def delete_setting(
        self, session: AsyncSession, ctx: RequestContext, setting_id: str,
    ) -> bool:
        self._require_admin(ctx, "delete system settings")
        setting = await self._load(session, setting_id)
        key = setting.key

        old_values = to_snapshot(setting)
        await session.delete(setting)
        await session.flush()
        await self._record(session, ctx, AuditAction.DELETE, setting_id, old_values=old_values)
        try:
            await session.commit()
        finally:
            await self._invalidate(key, setting_id)
        return True

    async def initialize_system(self, session: AsyncSession, ctx: RequestContext) -> list[str]:
        """Insert the default settings that do not exist yet. Returns the keys created."""
        principal = self._require_admin(ctx, "initialize system")
        result = await session.execute(
            select(SystemSettingModel.key).where(
                SystemSettingModel.key.in_([d["key"] for d in DEFAULT_SETTINGS])
            )
        )
        present = set(result.scalars().all())

        created = []
        for defaults in DEFAULT_SETTINGS:
            if defaults["key"] in present:
                continue
            setting = SystemSettingModel(**defaults, updated_by_id=principal.id)
            session.add(setting)
            await session.flush()
            await self._record(session, ctx, AuditAction.CREATE, setting.id, new_values=to_snapshot(setting))
            created.append(setting.key)
        if not created:
            return created

        try:
            await session.commit()
        finally:
            await self.cache.invalidate(*[key_cache_key(k) for k in created])
            await self.cache.invalidate_by_prefix("systemSettings:*")
        logger.info("Initialized %d default setting(s)", len(created))
        return created
