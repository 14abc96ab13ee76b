"""
Two-tier unit price cache.

Lookup order is memory tier -> durable tier -> pricing source. The durable tier
is the source of truth across restarts and processes; the memory tier is a
TTL-bounded local copy that never outlives the durable entry it came from.
"""
import asyncio
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, Optional, Tuple

from cost_engine.core.config import config
from cost_engine.domain.price_models import FetchedPrice, PriceCacheEntry
from cost_engine.pricing.retail_prices_client import FetchError, normalize_region


logger = logging.getLogger(__name__)

FetchFn = Callable[[], Awaitable[Optional[FetchedPrice]]]


@dataclass(frozen=True)
class PriceResult:
    """Outcome of a cache lookup that may fetch: an entry, or a fetch error message."""
    entry: Optional[PriceCacheEntry] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.entry is not None

    @classmethod
    def found(cls, entry: PriceCacheEntry) -> "PriceResult":
        return cls(entry=entry)

    @classmethod
    def failed(cls, error: str) -> "PriceResult":
        return cls(error=error)


@dataclass
class CacheStats:
    memory_hits: int = 0
    durable_hits: int = 0
    fetches: int = 0
    fetch_failures: int = 0
    write_failures: int = 0


class MemoryPriceTier:
    """In-process tier; a plain dict guarded by a mutex."""

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: Dict[Tuple[str, str], PriceCacheEntry] = {}

    def get(self, region: str, meter_key: str, now: datetime) -> Optional[PriceCacheEntry]:
        key = (region, meter_key)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(now):
                del self._entries[key]
                return None
            return entry

    def put(self, entry: PriceCacheEntry) -> None:
        with self._lock:
            self._entries[(entry.region, entry.meter_key)] = entry

    def invalidate(self, region: str, meter_key: str) -> None:
        with self._lock:
            self._entries.pop((region, meter_key), None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class PriceCache:
    """
    Cache owning both tiers, constructed once and injected into callers.

    The durable store needs `get(region, meter_key)` and `replace(entry)`;
    its calls run in a worker thread so they never block the event loop.
    """

    def __init__(
        self,
        durable_store,
        memory_ttl_seconds: Optional[int] = None,
        durable_ttl_seconds: Optional[int] = None,
        fetch_timeout_seconds: Optional[float] = None,
        clock: Callable[[], datetime] = datetime.utcnow
    ):
        """
        Initialize the price cache.

        Args:
            durable_store: Durable tier (e.g. SqlitePriceStore)
            memory_ttl_seconds: Memory tier TTL (defaults to PRICE_MEMORY_TTL_SECONDS)
            durable_ttl_seconds: Durable tier TTL (defaults to PRICE_DURABLE_TTL_SECONDS)
            fetch_timeout_seconds: Upper bound on one fetch_fn call
            clock: UTC time source, injectable for tests
        """
        self._durable = durable_store
        self._memory = MemoryPriceTier()
        if memory_ttl_seconds is None:
            memory_ttl_seconds = config.PRICE_MEMORY_TTL_SECONDS
        if durable_ttl_seconds is None:
            durable_ttl_seconds = config.PRICE_DURABLE_TTL_SECONDS
        if fetch_timeout_seconds is None:
            fetch_timeout_seconds = config.PRICING_FETCH_TIMEOUT_SECONDS
        self.memory_ttl = timedelta(seconds=memory_ttl_seconds)
        self.durable_ttl = timedelta(seconds=durable_ttl_seconds)
        self.fetch_timeout = fetch_timeout_seconds
        self._clock = clock
        self.stats = CacheStats()

    def _memory_copy(self, entry: PriceCacheEntry, now: datetime) -> PriceCacheEntry:
        return entry.with_expiry(min(entry.expires_at, now + self.memory_ttl))

    async def _read_durable(self, region: str, meter_key: str) -> Optional[PriceCacheEntry]:
        try:
            return await asyncio.to_thread(self._durable.get, region, meter_key)
        except Exception as error:
            logger.warning(f"Durable price cache read failed for {region}/{meter_key}: {error}", exc_info=True)
            return None

    async def get(self, region: str, meter_key: str) -> Optional[PriceCacheEntry]:
        """
        Look up a price without fetching.

        Args:
            region: Azure region (case-insensitive)
            meter_key: Meter key

        Returns:
            The cached entry, or None on a miss (absent or expired in both tiers)
        """
        region = normalize_region(region)
        now = self._clock()

        entry = self._memory.get(region, meter_key, now)
        if entry is not None:
            self.stats.memory_hits += 1
            return entry

        entry = await self._read_durable(region, meter_key)
        if entry is None or entry.is_expired(now):
            return None

        self.stats.durable_hits += 1
        self._memory.put(self._memory_copy(entry, now))
        return entry

    async def get_or_fetch(self, region: str, meter_key: str, fetch_fn: FetchFn) -> PriceResult:
        """
        Look up a price, fetching it from the pricing source on a miss.

        fetch_fn is awaited at most once per call. Failures are never cached.

        Args:
            region: Azure region (case-insensitive)
            meter_key: Meter key
            fetch_fn: Coroutine function returning a FetchedPrice, None if the
                source has no such meter, or raising FetchError

        Returns:
            PriceResult with the entry, or with an error message on fetch failure
        """
        cached = await self.get(region, meter_key)
        if cached is not None:
            return PriceResult.found(cached)

        region = normalize_region(region)
        self.stats.fetches += 1
        try:
            fetched = await asyncio.wait_for(fetch_fn(), timeout=self.fetch_timeout)
        except asyncio.TimeoutError:
            self.stats.fetch_failures += 1
            logger.warning(f"Price fetch for {region}/{meter_key} timed out after {self.fetch_timeout}s")
            return PriceResult.failed(f"Timed out fetching {meter_key} in {region}")
        except FetchError as error:
            self.stats.fetch_failures += 1
            logger.warning(f"Price fetch for {region}/{meter_key} failed: {error}")
            return PriceResult.failed(str(error))

        if fetched is None:
            self.stats.fetch_failures += 1
            logger.warning(f"No retail price found for {region}/{meter_key}")
            return PriceResult.failed(f"No retail price found for {meter_key} in {region}")

        now = self._clock()
        entry = PriceCacheEntry.from_fetched(region, meter_key, fetched, now, self.durable_ttl)
        try:
            await asyncio.to_thread(self._durable.replace, entry)
        except Exception as error:
            self.stats.write_failures += 1
            logger.warning(f"Durable price cache write failed for {region}/{meter_key}: {error}", exc_info=True)
            # Memory never holds an entry the durable tier lacks
            return PriceResult.found(entry)
        self._memory.put(self._memory_copy(entry, now))
        return PriceResult.found(entry)

    async def invalidate(self, region: str, meter_key: str) -> None:
        """Drop a key from both tiers."""
        region = normalize_region(region)
        self._memory.invalidate(region, meter_key)
        await asyncio.to_thread(self._durable.delete, region, meter_key)

    def clear_memory(self) -> None:
        """Drop the memory tier; the next reads go to the durable tier."""
        self._memory.clear()
