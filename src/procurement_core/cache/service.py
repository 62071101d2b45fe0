"""Read-through cache service over a ``CacheStore``.

Values are JSON-serialized. Store failures are logged and degrade to a miss
(reads) or a no-op (writes and invalidations): the cache is never the system
of record, so callers always fall back to persistence.
"""

import json
import logging
from typing import Any

from procurement_core.cache.store import CacheStore, MemoryCacheStore
from procurement_core.common.config import ProcurementSettings

logger = logging.getLogger(__name__)


def entity_key(prefix: str, entity_id: str) -> str:
    """Key for a single entity, e.g. ``supplier:<id>``."""
    return f"{prefix}:{entity_id}"


def list_key(prefix: str, page: int, limit: int, filters: dict[str, Any] | None = None) -> str:
    """Key for a paginated, filtered list query.

    Filters are serialized canonically (sorted keys, ``None`` values dropped)
    so identical queries share a slot regardless of argument order.
    """
    cleaned = {k: v for k, v in (filters or {}).items() if v is not None}
    serialized = json.dumps(cleaned, sort_keys=True, separators=(",", ":"), default=str)
    return f"{prefix}:{page}:{limit}:{serialized}"


# Aggregates derived from suppliers, contracts and payments
ANALYTICS_PATTERN = "analytics:*"


class CacheService:
    """JSON cache with TTLs from settings."""

    def __init__(self, settings: ProcurementSettings, store: CacheStore | None = None):
        self.settings = settings
        self.store: CacheStore = store if store is not None else MemoryCacheStore()

    @property
    def entity_ttl(self) -> int:
        return self.settings.entity_cache_ttl

    @property
    def list_ttl(self) -> int:
        return self.settings.list_cache_ttl

    @property
    def permission_ttl(self) -> int:
        return self.settings.permission_cache_ttl

    async def get(self, key: str) -> Any | None:
        try:
            raw = await self.store.get(key)
        except Exception:
            logger.warning("Cache read failed for %s; falling back to persistence", key, exc_info=True)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Discarding undecodable cache entry %s", key)
            await self.invalidate(key)
            return None

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        try:
            await self.store.set(key, json.dumps(value, default=str), ttl)
        except Exception:
            logger.warning("Cache write failed for %s", key, exc_info=True)

    async def invalidate(self, *keys: str) -> None:
        if not keys:
            return
        try:
            await self.store.delete(*keys)
        except Exception:
            logger.warning("Cache invalidation failed for %s", ", ".join(keys), exc_info=True)

    async def invalidate_by_prefix(self, pattern: str) -> None:
        """Delete every key matching a glob pattern such as ``suppliers:*``."""
        try:
            matched = await self.store.keys(pattern)
            if matched:
                await self.store.delete(*matched)
        except Exception:
            logger.warning("Cache pattern invalidation failed for %s", pattern, exc_info=True)
