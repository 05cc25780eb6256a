"""
Single-slot cache for the processed vehicle list.

One logical key holds the most recent successful result. Entries are never
expired or deleted: once the freshness window has passed a result is "stale" but
stays available as a fallback until the next successful refresh replaces it.

Two interchangeable backings are provided:
- ``MemoryCacheStore`` keeps the snapshot in process memory.
- ``RedisCacheStore`` keeps it in Redis so several workers/instances share it.
"""

from __future__ import annotations

import json
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional, Tuple

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from errors import CacheBackendError
from settings import Settings
from vehicle_records import VehicleRecord

CACHE_KEY = "bus_data"
DEFAULT_FRESHNESS_S = 5.0


@dataclass(frozen=True)
class CachedResult:
    """Immutable snapshot of a processed vehicle list."""
    records: Tuple[VehicleRecord, ...]
    ts: float  # Unix timestamp of capture

    def age(self, now: Optional[float] = None) -> float:
        return (time.time() if now is None else now) - self.ts

    def to_json(self) -> str:
        return json.dumps(
            {"ts": self.ts, "records": [r.to_dict() for r in self.records]},
            separators=(",", ":"),
            ensure_ascii=False,
        )

    @classmethod
    def from_json(cls, raw: str) -> "CachedResult":
        data = json.loads(raw)
        return cls(
            records=tuple(VehicleRecord.from_dict(item) for item in data["records"]),
            ts=float(data["ts"]),
        )


class CacheStore(ABC):
    """
    Capability interface the orchestrator depends on.

    Implementations must replace the slot atomically so a reader never observes a
    half-written snapshot.
    """

    def __init__(
        self,
        freshness_s: float = DEFAULT_FRESHNESS_S,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.freshness_s = freshness_s
        self._clock = clock

    @abstractmethod
    async def read(self) -> Optional[CachedResult]:
        """Return the current snapshot regardless of age, or ``None``."""

    @abstractmethod
    async def write(self, records: Iterable[VehicleRecord]) -> CachedResult:
        """Replace the slot with a new snapshot stamped with the current time."""

    async def is_fresh(self) -> bool:
        current = await self.read()
        return current is not None and self._clock() - current.ts < self.freshness_s

    async def aclose(self) -> None:
        return None

    def describe(self) -> str:
        return type(self).__name__


class MemoryCacheStore(CacheStore):
    def __init__(
        self,
        freshness_s: float = DEFAULT_FRESHNESS_S,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(freshness_s, clock)
        self._slot: Optional[CachedResult] = None

    async def read(self) -> Optional[CachedResult]:
        return self._slot

    async def write(self, records: Iterable[VehicleRecord]) -> CachedResult:
        snapshot = CachedResult(records=tuple(records), ts=self._clock())
        # Single reference swap
        self._slot = snapshot
        return snapshot


class RedisCacheStore(CacheStore):
    """Stores the snapshot as one JSON document with no expiry."""

    def __init__(
        self,
        client: Any,
        freshness_s: float = DEFAULT_FRESHNESS_S,
        key: str = CACHE_KEY,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(freshness_s, clock)
        self._client = client
        self.key = key

    @classmethod
    def from_url(cls, url: str, freshness_s: float = DEFAULT_FRESHNESS_S) -> "RedisCacheStore":
        client = aioredis.from_url(url, decode_responses=True)
        return cls(client, freshness_s=freshness_s)

    async def read(self) -> Optional[CachedResult]:
        try:
            raw = await self._client.get(self.key)
        except (RedisError, OSError) as exc:
            raise CacheBackendError(f"redis GET {self.key} failed: {exc}") from exc
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        try:
            return CachedResult.from_json(raw)
        except (ValueError, KeyError, TypeError) as exc:
            raise CacheBackendError(f"redis value under {self.key} is malformed: {exc}") from exc

    async def write(self, records: Iterable[VehicleRecord]) -> CachedResult:
        snapshot = CachedResult(records=tuple(records), ts=self._clock())
        try:
            await self._client.set(self.key, snapshot.to_json())
        except (RedisError, OSError) as exc:
            raise CacheBackendError(f"redis SET {self.key} failed: {exc}") from exc
        return snapshot

    async def aclose(self) -> None:
        close = getattr(self._client, "aclose", None)
        if close is not None:
            await close()

    def describe(self) -> str:
        return f"RedisCacheStore(key={self.key})"


def build_cache_store(settings: Settings) -> CacheStore:
    if settings.redis_url:
        return RedisCacheStore.from_url(settings.redis_url, freshness_s=settings.cache_duration_s)
    return MemoryCacheStore(freshness_s=settings.cache_duration_s)


__all__ = [
    "CACHE_KEY",
    "CachedResult",
    "CacheStore",
    "MemoryCacheStore",
    "RedisCacheStore",
    "build_cache_store",
]
