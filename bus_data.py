"""
Fetch-transform-cache pipeline behind ``GET /data``.

Every request goes through ``BusDataService.get_data``:

1. Fresh cache -> serve it, no upstream call.
2. Otherwise fetch the DFTrans feed, normalize every vehicle, apply the line
   filter and store the result.
3. If anything in step 2 fails, serve the last stored result however old it is;
   only when nothing was ever stored does the caller see ``UpstreamUnavailable``.

Refresh is lazy (driven by requests); there is no background poller.
"""

from __future__ import annotations

import asyncio
from typing import Any, List, Optional, Protocol, Sequence

from data_cache import CacheStore
from errors import CacheBackendError, UpstreamUnavailable
from vehicle_records import LineFilter, VehicleRecord, normalize_operators


class OperatorsFetcher(Protocol):
    async def fetch_operators(self) -> List[Any]: ...


class BusDataService:
    def __init__(
        self,
        fetcher: OperatorsFetcher,
        cache: CacheStore,
        line_filter: Optional[LineFilter] = None,
        single_flight: bool = True,
    ) -> None:
        self.fetcher = fetcher
        self.cache = cache
        self.line_filter = line_filter or LineFilter(enabled=False)
        self.single_flight = single_flight
        self._lock = asyncio.Lock()
        self._inflight: Optional[asyncio.Task] = None

    async def get_data(self) -> List[VehicleRecord]:
        cached = await self._fresh_records()
        if cached is not None:
            return cached

        print("[cache] miss, fetching from upstream")
        try:
            if self.single_flight:
                return await self._shared_refresh()
            return await self._refresh()
        except Exception as exc:
            return await self._fallback(exc)

    async def _fresh_records(self) -> Optional[List[VehicleRecord]]:
        try:
            if not await self.cache.is_fresh():
                return None
            current = await self.cache.read()
        except CacheBackendError as exc:
            print(f"[cache] freshness check failed, treating as miss: {exc}")
            return None
        if current is None:
            return None
        print("[cache] hit")
        return list(current.records)

    async def _shared_refresh(self) -> List[VehicleRecord]:
        # Singleflight: concurrent misses wait on the same refresh task
        async with self._lock:
            if self._inflight is not None:
                inflight_task = self._inflight
            else:
                inflight_task = asyncio.create_task(self._refresh())
                inflight_task.add_done_callback(self._clear_inflight)
                self._inflight = inflight_task

        return list(await asyncio.shield(inflight_task))

    def _clear_inflight(self, task: asyncio.Task) -> None:
        if self._inflight is task:
            self._inflight = None

    async def _refresh(self) -> List[VehicleRecord]:
        payload = await self.fetcher.fetch_operators()
        records = self.line_filter.apply(normalize_operators(payload))
        try:
            await self.cache.write(records)
        except CacheBackendError as exc:
            print(f"[cache] write failed, serving uncached result: {exc}")
        print(f"[data] processed {len(records)} vehicles")
        return records

    async def _fallback(self, exc: Exception) -> List[VehicleRecord]:
        print(f"[data] Error in get_data: {exc!r}")
        try:
            stale = await self.cache.read()
        except CacheBackendError as cache_exc:
            print(f"[cache] fallback error: {cache_exc}")
            stale = None

        if stale is not None:
            print(f"[cache] returning stale data ({stale.age():.1f}s old) due to error")
            return list(stale.records)
        raise UpstreamUnavailable("Upstream fetch failed and no cached data is available") from exc


def records_to_json(records: Sequence[VehicleRecord]) -> List[dict]:
    return [r.to_dict() for r in records]


__all__ = [
    "BusDataService",
    "OperatorsFetcher",
    "records_to_json",
]
