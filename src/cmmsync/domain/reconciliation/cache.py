"""Keyed cache of collection snapshots shared by every dashboard consumer.

Writes replace the whole value for a key at once; readers never observe a
half-built collection. Refetches run as background tasks on the running event
loop and write back only if they were not cancelled in the meantime.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from logging import getLogger
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .contracts import CacheKey, Fetcher

log = getLogger(__name__)

type Listener = Callable[[Any], None]
type FetchTransform = Callable[[str, Any], Any]

DEFAULT_STALE_AFTER = timedelta(seconds=5)


class CacheClosedError(RuntimeError):
    """Raised when writing to a cache that has been torn down."""


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(slots=True)
class CacheEntry:
    key: CacheKey
    value: Any
    updated_at: datetime
    invalidated: bool = False


class QueryCache:
    """Process-wide store of collection values, one authoritative value per key."""

    def __init__(
        self,
        *,
        stale_after: timedelta = DEFAULT_STALE_AFTER,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.stale_after = stale_after
        self._clock = clock
        self._entries: dict[CacheKey, CacheEntry] = {}
        self._listeners: dict[CacheKey, list[Listener]] = {}
        self._fetchers: dict[CacheKey, Fetcher] = {}
        self._refetches: dict[CacheKey, asyncio.Task[None]] = {}
        self._fetch_transform: FetchTransform | None = None
        self._closed = False

    # lifecycle -------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._closed

    def open(self) -> None:
        self._closed = False

    def close(self) -> None:
        """Drop every entry and cancel outstanding refetches (logout)."""

        for task in self._refetches.values():
            task.cancel()
        self._refetches.clear()
        self._entries.clear()
        self._listeners.clear()
        self._fetchers.clear()
        self._closed = True
        log.debug("Query cache closed")

    # reads -----------------------------------------------------------------

    def get(self, key: CacheKey) -> Any:
        entry = self._entries.get(key)
        return None if entry is None else entry.value

    def entry(self, key: CacheKey) -> CacheEntry | None:
        return self._entries.get(key)

    def keys(self) -> tuple[CacheKey, ...]:
        return tuple(self._entries)

    def is_stale(self, key: CacheKey) -> bool:
        entry = self._entries.get(key)
        if entry is None:
            return True
        if entry.invalidated:
            return True
        return self._clock() - entry.updated_at >= self.stale_after

    def is_fetching(self, key: CacheKey) -> bool:
        return key in self._refetches

    # writes ----------------------------------------------------------------

    def set(self, key: CacheKey, value: Any) -> None:
        """Atomically replace the value for ``key`` and notify subscribers."""

        self._ensure_open()
        self._entries[key] = CacheEntry(key=key, value=value, updated_at=self._clock())
        for listener in tuple(self._listeners.get(key, ())):
            try:
                listener(value)
            except Exception:
                log.exception("Cache listener for %s failed", key)

    def subscribe(self, key: CacheKey, listener: Listener) -> Callable[[], None]:
        listeners = self._listeners.setdefault(key, [])
        listeners.append(listener)

        def unsubscribe() -> None:
            if listener in listeners:
                listeners.remove(listener)

        return unsubscribe

    def register_fetcher(self, key: CacheKey, fetcher: Fetcher) -> None:
        self._ensure_open()
        self._fetchers[key] = fetcher

    def set_fetch_transform(self, transform: FetchTransform | None) -> None:
        """Install a hook that rewrites freshly fetched values before they are stored."""

        self._fetch_transform = transform

    # refetching ------------------------------------------------------------

    def invalidate(self, key: CacheKey) -> None:
        """Mark ``key`` stale and schedule a background refetch. Never suspends."""

        self._ensure_open()
        entry = self._entries.get(key)
        if entry is not None:
            entry.invalidated = True

        fetcher = self._fetchers.get(key)
        if fetcher is None:
            log.debug("Invalidated %s without a registered fetcher", key)
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            log.debug("No running event loop; %s left stale until next ensure()", key)
            return

        self.cancel_refetch(key)
        self._refetches[key] = loop.create_task(self._refetch(key, fetcher), name=f"refetch:{key}")

    def cancel_refetch(self, key: CacheKey) -> bool:
        """Cancel an in-flight refetch so it cannot overwrite a newer local value."""

        task = self._refetches.pop(key, None)
        if task is None or task.done():
            return False
        task.cancel()
        log.debug("Cancelled in-flight refetch of %s", key)
        return True

    async def ensure(self, key: CacheKey) -> Any:
        """Return the value for ``key``, fetching first if it is missing or stale.

        The load runs as a tracked refetch, so an optimistic patch applied
        meanwhile cancels it instead of being overwritten. Load errors are
        raised to the caller.
        """

        task = self._refetches.get(key)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

        if not self.is_stale(key):
            return self.get(key)

        fetcher = self._fetchers.get(key)
        if fetcher is None:
            return self.get(key)

        loop = asyncio.get_running_loop()
        task = loop.create_task(self._fetch(key, fetcher), name=f"fetch:{key}")
        self._refetches[key] = task
        try:
            await asyncio.wait((task,))
        except asyncio.CancelledError:
            task.cancel()
            raise
        if not task.cancelled():
            task.result()
        return self.get(key)

    async def wait_idle(self) -> None:
        """Wait until no refetch is in flight."""

        while self._refetches:
            await asyncio.gather(*self._refetches.values(), return_exceptions=True)

    async def _fetch(self, key: CacheKey, fetcher: Fetcher) -> None:
        try:
            value = await fetcher()
        finally:
            if self._refetches.get(key) is asyncio.current_task():
                del self._refetches[key]

        if self._closed:
            return
        self._store_fetched(key, value)

    async def _refetch(self, key: CacheKey, fetcher: Fetcher) -> None:
        try:
            await self._fetch(key, fetcher)
        except Exception:
            log.warning("Refetch of %s failed; keeping last known value", key, exc_info=True)
            return
        log.debug("Refetched %s", key)

    def _store_fetched(self, key: CacheKey, value: Any) -> None:
        if self._fetch_transform is not None:
            value = self._fetch_transform(key, value)
        self.set(key, value)

    def _ensure_open(self) -> None:
        if self._closed:
            raise CacheClosedError("Query cache is closed")


__all__ = ["DEFAULT_STALE_AFTER", "CacheClosedError", "CacheEntry", "QueryCache"]
