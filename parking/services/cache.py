"""
Facility and availability caches.

FacilityCache:
- Single slot, long TTL (default 24h)
- Refreshes synchronously on expiry; concurrent callers during expiry each
  fetch on their own (no de-duplication)

AvailabilityCache (stale-while-revalidate):
- Single slot, short TTL (default 60s)
- EMPTY: fetch synchronously, errors propagate
- FRESH: serve from memory
- EXPIRED: start one background refresh, serve stale data immediately
- REFRESHING: serve stale data, never start a second refresh
- A failed background refresh keeps the last good snapshot and drops back
  to EXPIRED so the next access retries

The in-flight marker is installed before the first suspension point, so
with cooperative scheduling no lock is needed for single-flight.
"""

import asyncio
import time
from collections.abc import Mapping
from dataclasses import dataclass, replace
from datetime import timedelta
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Generic, Protocol, TypeVar

from loguru import logger

from parking.models import AvailabilityResult, FacilityAvailability, FacilityMetadata
from parking.services.cancellation import CancelSignal
from parking.services.errors import ServiceError, ShapeError
from parking.services.normalizer import normalize_availability, normalize_facility

T = TypeVar("T")

AvailabilityMap = Mapping[str, FacilityAvailability]


class JsonFetcher(Protocol):
    async def fetch(self, url: str, signal: CancelSignal | None = None) -> Any: ...


class CacheState(str, Enum):
    """Lifecycle of a single cache slot."""

    EMPTY = "EMPTY"  # Nothing loaded yet
    FRESH = "FRESH"  # Within TTL
    EXPIRED = "EXPIRED"  # Past TTL, no refresh running
    REFRESHING = "REFRESHING"  # Past TTL, background refresh running


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """An immutable snapshot and the monotonic time it expires at."""

    value: T
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass(frozen=True)
class AvailabilityCacheEntry(CacheEntry[AvailabilityMap]):
    """Availability snapshot plus the single in-flight background refresh."""

    revalidate_task: "asyncio.Task[None] | None" = None


@dataclass
class CacheStats:
    """Cache statistics."""

    hits: int = 0
    stale_hits: int = 0
    misses: int = 0
    refreshes: int = 0
    refresh_failures: int = 0
    state: CacheState = CacheState.EMPTY

    def to_dict(self) -> dict[str, Any]:
        return {
            "hits": self.hits,
            "stale_hits": self.stale_hits,
            "misses": self.misses,
            "refreshes": self.refreshes,
            "refresh_failures": self.refresh_failures,
            "state": self.state.value,
        }


async def fetch_records(
    fetcher: JsonFetcher, url: str, signal: CancelSignal | None, kind: str
) -> list[Any]:
    """Fetch ``url`` and insist on a top-level JSON array."""
    payload = await fetcher.fetch(url, signal)
    if not isinstance(payload, list):
        raise ShapeError(f"{kind.capitalize()} response is not an array", service_id=url)
    return payload


class FacilityCache:
    """
    Long-lived facility metadata.

    Usage:
        cache = FacilityCache(fetcher, settings.facilities_url)
        facilities = await cache.get_facilities(signal)
    """

    def __init__(
        self,
        fetcher: JsonFetcher,
        url: str,
        ttl: timedelta = timedelta(hours=24),
        clock: Callable[[], float] = time.monotonic,
        log=logger,
        debug: bool = False,
    ):
        self._fetcher = fetcher
        self._url = url
        self._ttl = ttl.total_seconds()
        self._clock = clock
        self._log = log
        self._debug = debug
        self._entry: CacheEntry[tuple[FacilityMetadata, ...]] | None = None
        self._stats = CacheStats()

    @property
    def entry(self) -> CacheEntry[tuple[FacilityMetadata, ...]] | None:
        return self._entry

    @property
    def state(self) -> CacheState:
        if self._entry is None:
            return CacheState.EMPTY
        if self._entry.is_expired(self._clock()):
            return CacheState.EXPIRED
        return CacheState.FRESH

    async def get_facilities(
        self, signal: CancelSignal | None = None
    ) -> tuple[FacilityMetadata, ...]:
        """
        Return cached facilities, fetching them first if missing or expired.

        Raises:
            ServiceError: Any fetch or shape failure, unchanged
        """
        now = self._clock()
        cached = self._entry
        if cached is not None and not cached.is_expired(now):
            self._stats.hits += 1
            self._debug_log("HIT")
            return cached.value

        self._stats.misses += 1
        self._debug_log("MISS" if cached is None else "EXPIRED")

        records = await fetch_records(self._fetcher, self._url, signal, "facilities")
        facilities = tuple(
            facility
            for facility in (normalize_facility(item, self._url) for item in records)
            if facility is not None
        )

        self._entry = CacheEntry(value=facilities, expires_at=now + self._ttl)
        self._stats.refreshes += 1
        self._log.bind(count=len(facilities)).info(
            f"Loaded facilities metadata ({len(facilities)} facilities)"
        )
        return facilities

    def get_stats(self) -> CacheStats:
        self._stats.state = self.state
        return self._stats

    def _debug_log(self, message: str) -> None:
        if self._debug:
            self._log.debug(f"[FacilityCache] {message}")


class AvailabilityCache:
    """
    Short-lived availability with stale-while-revalidate.

    Usage:
        cache = AvailabilityCache(fetcher, settings.availability_url)
        result = await cache.get_availability(signal)
        if result.stale:
            ...  # data may lag behind upstream
    """

    def __init__(
        self,
        fetcher: JsonFetcher,
        url: str,
        ttl: timedelta = timedelta(seconds=60),
        clock: Callable[[], float] = time.monotonic,
        log=logger,
        debug: bool = False,
    ):
        self._fetcher = fetcher
        self._url = url
        self._ttl = ttl.total_seconds()
        self._clock = clock
        self._log = log
        self._debug = debug
        self._entry: AvailabilityCacheEntry | None = None
        self._stats = CacheStats()

    @property
    def entry(self) -> AvailabilityCacheEntry | None:
        return self._entry

    @property
    def state(self) -> CacheState:
        entry = self._entry
        if entry is None:
            return CacheState.EMPTY
        if not entry.is_expired(self._clock()):
            return CacheState.FRESH
        if entry.revalidate_task is not None:
            return CacheState.REFRESHING
        return CacheState.EXPIRED

    async def get_availability(
        self, signal: CancelSignal | None = None
    ) -> AvailabilityResult:
        """
        Return availability, possibly stale, without waiting on a refresh
        whenever any snapshot exists.

        ``signal`` only bounds the synchronous first load; background
        refreshes outlive the request that triggered them.

        Raises:
            ServiceError: Only when nothing is cached and the load fails
        """
        cached = self._entry

        if cached is None:
            self._stats.misses += 1
            self._debug_log("MISS")
            return await self._load(signal)

        if not cached.is_expired(self._clock()):
            self._stats.hits += 1
            self._debug_log("HIT")
            return AvailabilityResult(data=cached.value, stale=False)

        self._stats.stale_hits += 1
        if cached.revalidate_task is None:
            # No await between the check above and installing the marker.
            task = asyncio.create_task(self._revalidate())
            self._entry = replace(cached, revalidate_task=task)
            self._debug_log("STALE HIT: revalidating")
        else:
            self._debug_log("STALE HIT: refresh in flight")

        return AvailabilityResult(data=cached.value, stale=True)

    async def wait_for_revalidation(self) -> None:
        """Wait for the in-flight background refresh, if any."""
        entry = self._entry
        if entry is not None and entry.revalidate_task is not None:
            await asyncio.shield(entry.revalidate_task)

    async def close(self) -> None:
        """Cancel an in-flight background refresh."""
        entry = self._entry
        if entry is None or entry.revalidate_task is None:
            return
        task = entry.revalidate_task
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        if self._entry is not None and self._entry.revalidate_task is task:
            self._entry = replace(self._entry, revalidate_task=None)

    async def _refresh(self, signal: CancelSignal | None) -> AvailabilityMap:
        records = await fetch_records(self._fetcher, self._url, signal, "availability")
        availability: dict[str, FacilityAvailability] = {}
        for item in records:
            normalized = normalize_availability(item)
            if normalized is not None:
                availability[normalized.id] = normalized
        self._stats.refreshes += 1
        self._log.bind(count=len(availability)).info(
            f"Loaded availability ({len(availability)} facilities)"
        )
        return MappingProxyType(availability)

    async def _load(self, signal: CancelSignal | None) -> AvailabilityResult:
        """Synchronous load used while the slot is empty."""
        try:
            fresh = await self._refresh(signal)
        except ServiceError as e:
            self._stats.refresh_failures += 1
            # Another caller may have filled the slot while we were waiting.
            previous = self._entry
            if previous is not None:
                self._log.bind(error=str(e)).error(
                    "Falling back to stale availability cache"
                )
                return AvailabilityResult(data=previous.value, stale=True)
            raise

        self._entry = AvailabilityCacheEntry(
            value=fresh, expires_at=self._clock() + self._ttl
        )
        return AvailabilityResult(data=fresh, stale=False)

    async def _revalidate(self) -> None:
        """Background refresh; failures are logged, never raised."""
        try:
            fresh = await self._refresh(None)
        except Exception as e:
            self._stats.refresh_failures += 1
            self._log.bind(error=str(e)).error(
                f"Failed to refresh availability: {e}"
            )
            entry = self._entry
            if entry is not None:
                self._entry = replace(entry, revalidate_task=None)
            return

        self._entry = AvailabilityCacheEntry(
            value=fresh, expires_at=self._clock() + self._ttl
        )
        self._debug_log("REVALIDATED")

    def get_stats(self) -> CacheStats:
        self._stats.state = self.state
        return self._stats

    def _debug_log(self, message: str) -> None:
        if self._debug:
            self._log.debug(f"[AvailabilityCache] {message}")
