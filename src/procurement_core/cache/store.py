"""Key/value cache stores.

``CacheStore`` is the contract the cache layer needs from a backing store:
string values, per-key TTL in seconds and glob-style key enumeration.
``MemoryCacheStore`` is the in-process implementation used by default.
"""

import asyncio
import fnmatch
import time
from typing import Callable, Protocol


class CacheStore(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, ttl: int | None = None) -> None: ...

    async def delete(self, *keys: str) -> int: ...

    async def keys(self, pattern: str) -> list[str]: ...


class MemoryCacheStore:
    """Dict-backed store with lazy TTL expiry on a monotonic clock."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._data: dict[str, tuple[str, float | None]] = {}
        self._lock = asyncio.Lock()

    def _alive(self, key: str) -> bool:
        entry = self._data.get(key)
        if entry is None:
            return False
        _, expires_at = entry
        if expires_at is not None and expires_at <= self._clock():
            del self._data[key]
            return False
        return True

    async def get(self, key: str) -> str | None:
        async with self._lock:
            if not self._alive(key):
                return None
            return self._data[key][0]

    async def set(self, key: str, value: str, ttl: int | None = None) -> None:
        expires_at = self._clock() + ttl if ttl else None
        async with self._lock:
            self._data[key] = (value, expires_at)

    async def delete(self, *keys: str) -> int:
        removed = 0
        async with self._lock:
            for key in keys:
                if self._data.pop(key, None) is not None:
                    removed += 1
        return removed

    async def keys(self, pattern: str) -> list[str]:
        async with self._lock:
            return [
                key for key in list(self._data)
                if self._alive(key) and fnmatch.fnmatchcase(key, pattern)
            ]

    async def flush(self) -> None:
        async with self._lock:
            self._data.clear()

    def __len__(self) -> int:
        return len(self._data)
