"""
Stale-while-revalidate cache for the profile gateway.
"""

import asyncio
from collections import OrderedDict
from typing import Any, Awaitable, Callable, Dict, Optional, Set, TypeVar

from shared.logging import get_logger
from shared.metrics import MetricsCollector


T = TypeVar("T")
Fetcher = Callable[[], Awaitable[T]]

_MISSING = object()


class SWRCache:
    """In-process stale-while-revalidate cache.

    A hit returns the stored value immediately and starts a background
    refresh; a miss fetches synchronously and stores the result. Entries
    never expire on their own: "stale" means "fetched earlier", so every
    hit triggers exactly one revalidation.

    ``max_entries`` bounds the store with least-recently-used eviction.
    ``coalesce_misses`` makes concurrent misses on one key share a single
    in-flight fetch instead of each calling the fetcher.
    """

    def __init__(self,
                 name: str = "swr",
                 max_entries: Optional[int] = None,
                 coalesce_misses: bool = False,
                 metrics: Optional[MetricsCollector] = None):
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be positive")
        self.name = name
        self.max_entries = max_entries
        self.coalesce_misses = coalesce_misses
        self.metrics = metrics
        self.logger = get_logger(f"gateway.cache.{name}")

        self._store: "OrderedDict[str, Any]" = OrderedDict()
        self._inflight: Dict[str, "asyncio.Future[Any]"] = {}
        self._revalidations: Set["asyncio.Future[None]"] = set()

    def __len__(self) -> int:
        return len(self._store)

    def __contains__(self, key: str) -> bool:
        return key in self._store

    def peek(self, key: str, default: Any = None) -> Any:
        """Return the stored value without triggering a refresh."""
        return self._store.get(key, default)

    @property
    def pending_revalidations(self) -> int:
        return len(self._revalidations)

    async def get(self, key: str, fetcher: Fetcher) -> Any:
        """Return the value for ``key``, fetching or revalidating as needed."""
        cached = self._store.get(key, _MISSING)
        if cached is not _MISSING:
            self._store.move_to_end(key)
            self._count("cache_hits_total")
            self._schedule_revalidation(key, fetcher)
            return cached

        self._count("cache_misses_total")
        if self.coalesce_misses:
            return await self._fetch_shared(key, fetcher)
        return await self._populate(key, fetcher)

    async def drain(self) -> None:
        """Wait for every background revalidation started so far."""
        while self._revalidations:
            await asyncio.gather(*list(self._revalidations), return_exceptions=True)

    async def close(self) -> None:
        """Cancel outstanding background work."""
        pending = list(self._revalidations) + list(self._inflight.values())
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._revalidations.clear()
        self._inflight.clear()

    async def _populate(self, key: str, fetcher: Fetcher) -> Any:
        value = await fetcher()
        self._set(key, value)
        return value

    async def _fetch_shared(self, key: str, fetcher: Fetcher) -> Any:
        future = self._inflight.get(key)
        if future is None:
            future = asyncio.ensure_future(self._populate(key, fetcher))
            self._inflight[key] = future

            def _release(done: "asyncio.Future[Any]") -> None:
                if self._inflight.get(key) is done:
                    del self._inflight[key]

            future.add_done_callback(_release)
        else:
            self.logger.debug("Joining in-flight fetch", key=key)
        # One waiter being cancelled must not cancel the fetch for the rest
        return await asyncio.shield(future)

    def _schedule_revalidation(self, key: str, fetcher: Fetcher) -> None:
        try:
            pending = fetcher()
        except Exception as exc:
            self._revalidation_failed(key, exc)
            return

        task = asyncio.ensure_future(self._revalidate(key, pending))
        self._revalidations.add(task)
        task.add_done_callback(self._revalidations.discard)

    async def _revalidate(self, key: str, pending: Awaitable[Any]) -> None:
        try:
            value = await pending
        except Exception as exc:
            self._revalidation_failed(key, exc)
            return

        self._set(key, value)
        self._count("cache_revalidations_total", outcome="success")
        self.logger.debug("Cache entry revalidated", key=key)

    def _revalidation_failed(self, key: str, exc: Exception) -> None:
        self._count("cache_revalidations_total", outcome="failure")
        self.logger.error("SWR revalidation failed", key=key, error=str(exc))

    def _set(self, key: str, value: Any) -> None:
        self._store[key] = value
        self._store.move_to_end(key)
        if self.max_entries is not None:
            while len(self._store) > self.max_entries:
                evicted, _ = self._store.popitem(last=False)
                self.logger.debug("Evicted cache entry", key=evicted)

    def _count(self, metric_name: str, **labels) -> None:
        if self.metrics is not None:
            self.metrics.increment_counter(metric_name, cache_type=self.name, **labels)
