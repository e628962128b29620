"""
Cache — a local LRU tier with TTL and a fluent read-through builder.

    profiles = (
        cache(lambda uid: f"profile:{uid}", fetch_profile)
        .tier(LocalTier(max_size=256, ttl=300))
        .build()
    )

    match await profiles.get(user_id):
        case Ok(CacheResult(value=user, hit=hit)): ...
        case Error(e): ...

    await profiles.invalidate(user_id)
"""

from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass

from kungfu import Error, LazyCoroResult, Ok, Result


type KeyFn[K] = Callable[[K], str]


# ═══════════════════════════════════════════════════════════════════════════════
# Local Tier — In-Memory LRU
# ═══════════════════════════════════════════════════════════════════════════════

class LocalTier[T]:
    """In-memory LRU. Entries older than `ttl` seconds read as misses."""

    def __init__(
        self,
        max_size: int = 1000,
        ttl: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_size = max_size
        self._ttl = ttl
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, T]] = OrderedDict()

    @property
    def name(self) -> str:
        return "local"

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> T | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self._ttl is not None and self._clock() - stored_at > self._ttl:
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return value

    async def set(self, key: str, value: T) -> None:
        if key in self._entries:
            self._entries.move_to_end(key)
        elif len(self._entries) >= self._max_size:
            self._entries.popitem(last=False)
        self._entries[key] = (self._clock(), value)

    async def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    async def clear(self) -> None:
        self._entries.clear()


@dataclass(frozen=True, slots=True)
class CacheResult[T]:
    value: T
    hit: bool


# ═══════════════════════════════════════════════════════════════════════════════
# Builder
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(slots=True, frozen=True)
class Cache[K, T, E]:
    _key_fn: KeyFn[K]
    _fetch: Callable[[K], LazyCoroResult[T, E]]
    _tiers: tuple[LocalTier[T], ...]

    def tier(self, t: LocalTier[T]) -> Cache[K, T, E]:
        return Cache(self._key_fn, self._fetch, (*self._tiers, t))

    def build(self) -> CacheExecutor[K, T, E]:
        return CacheExecutor(key_fn=self._key_fn, tiers=self._tiers, fetch=self._fetch)


@dataclass(slots=True, frozen=True)
class CacheExecutor[K, T, E]:
    key_fn: KeyFn[K]
    tiers: tuple[LocalTier[T], ...]
    fetch: Callable[[K], LazyCoroResult[T, E]]

    def get(self, key: K) -> LazyCoroResult[CacheResult[T], E]:
        """Tiers in order, then `fetch`. A fetched value populates every tier."""
        cache_key = self.key_fn(key)

        async def execute() -> Result[CacheResult[T], E]:
            for t in self.tiers:
                value = await t.get(cache_key)
                if value is not None:
                    return Ok(CacheResult(value=value, hit=True))

            match await self.fetch(key):
                case Ok(value):
                    for t in self.tiers:
                        await t.set(cache_key, value)
                    return Ok(CacheResult(value=value, hit=False))
                case Error(e):
                    return Error(e)

        return LazyCoroResult(execute)

    async def invalidate(self, key: K) -> bool:
        deleted = False
        for t in self.tiers:
            deleted = await t.delete(self.key_fn(key)) or deleted
        return deleted


def cache[K, T, E](
    key: KeyFn[K],
    fetch: Callable[[K], LazyCoroResult[T, E]],
) -> Cache[K, T, E]:
    return Cache(_key_fn=key, _fetch=fetch, _tiers=())


__all__ = ("LocalTier", "CacheResult", "Cache", "CacheExecutor", "cache")
