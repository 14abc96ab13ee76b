"""
Tests for the two-tier price cache.
"""

import asyncio
import pytest
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, Mock

from cost_engine.domain.price_models import FetchedPrice
from cost_engine.pricing.price_cache import PriceCache
from cost_engine.pricing.retail_prices_client import PricingSourceError
from cost_engine.storage.db import get_connection
from cost_engine.storage.price_store import SqlitePriceStore


class FakeClock:
    """Controllable UTC clock."""

    def __init__(self):
        self.now = datetime(2024, 1, 1, 12, 0, 0)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(db_path):
    return SqlitePriceStore(db_path)


@pytest.fixture
def cache(store, clock):
    return PriceCache(
        store,
        memory_ttl_seconds=60,
        durable_ttl_seconds=3600,
        fetch_timeout_seconds=1,
        clock=clock,
    )


def _price(value: float = 0.000183) -> FetchedPrice:
    return FetchedPrice(unit_price=value, unit_of_measure="1 GiB/Hour", meter_name="Standard Capacity")


class TestGetOrFetch:
    """Fetch behaviour on cold, warm and expired keys."""

    @pytest.mark.asyncio
    async def test_cold_key_fetches_once(self, cache):
        fetch = AsyncMock(return_value=_price())

        result = await cache.get_or_fetch("eastus", "anf-standard-capacity", fetch)

        assert result.ok
        assert result.entry.unit_price == 0.000183
        fetch.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_warm_key_within_ttl_does_not_fetch(self, cache, clock):
        fetch = AsyncMock(return_value=_price())

        await cache.get_or_fetch("eastus", "anf-standard-capacity", fetch)
        clock.advance(seconds=30)
        second = await cache.get_or_fetch("eastus", "anf-standard-capacity", fetch)

        assert second.ok
        assert fetch.await_count == 1
        assert cache.stats.memory_hits == 1

    @pytest.mark.asyncio
    async def test_refetches_after_durable_ttl(self, cache, clock):
        fetch = AsyncMock(side_effect=[_price(0.1), _price(0.2)])

        await cache.get_or_fetch("eastus", "key", fetch)
        clock.advance(hours=2)
        result = await cache.get_or_fetch("eastus", "key", fetch)

        assert fetch.await_count == 2
        assert result.entry.unit_price == 0.2

    @pytest.mark.asyncio
    async def test_memory_expiry_falls_back_to_durable_tier(self, cache, clock):
        fetch = AsyncMock(return_value=_price())

        await cache.get_or_fetch("eastus", "key", fetch)
        clock.advance(minutes=5)
        result = await cache.get_or_fetch("eastus", "key", fetch)

        assert result.ok
        assert fetch.await_count == 1
        assert cache.stats.durable_hits == 1

    @pytest.mark.asyncio
    async def test_durable_hit_repopulates_memory(self, cache):
        fetch = AsyncMock(return_value=_price())
        await cache.get_or_fetch("eastus", "key", fetch)
        cache.clear_memory()

        await cache.get("eastus", "key")
        await cache.get("eastus", "key")

        assert cache.stats.durable_hits == 1
        assert cache.stats.memory_hits == 1

    @pytest.mark.asyncio
    async def test_region_is_case_insensitive(self, cache):
        fetch = AsyncMock(return_value=_price())

        await cache.get_or_fetch("East US", "key", fetch)
        result = await cache.get_or_fetch("eastus", "key", fetch)

        assert result.entry.region == "eastus"
        assert fetch.await_count == 1

    @pytest.mark.asyncio
    async def test_shared_durable_tier_serves_second_cache(self, cache, store, clock):
        """A second process sees prices written by the first."""
        await cache.get_or_fetch("eastus", "key", AsyncMock(return_value=_price()))
        other = PriceCache(store, memory_ttl_seconds=60, durable_ttl_seconds=3600, clock=clock)
        fetch = AsyncMock()

        result = await other.get_or_fetch("eastus", "key", fetch)

        assert result.ok
        fetch.assert_not_awaited()


class TestFailures:
    """Failures are reported as values and never cached."""

    @pytest.mark.asyncio
    async def test_fetch_error_is_not_cached(self, cache):
        failing = AsyncMock(side_effect=PricingSourceError("boom"))

        result = await cache.get_or_fetch("eastus", "key", failing)

        assert not result.ok
        assert "boom" in result.error
        assert await cache.get("eastus", "key") is None

        recovered = await cache.get_or_fetch("eastus", "key", AsyncMock(return_value=_price()))
        assert recovered.ok

    @pytest.mark.asyncio
    async def test_missing_meter_is_a_failed_result(self, cache):
        result = await cache.get_or_fetch("eastus", "key", AsyncMock(return_value=None))

        assert not result.ok
        assert "No retail price found" in result.error
        assert cache.stats.fetch_failures == 1

    @pytest.mark.asyncio
    async def test_fetch_timeout_is_a_failed_result(self, store, clock):
        cache = PriceCache(store, fetch_timeout_seconds=0.05, clock=clock)

        async def slow_fetch():
            await asyncio.sleep(1)
            return _price()

        result = await cache.get_or_fetch("eastus", "key", slow_fetch)

        assert not result.ok
        assert "Timed out" in result.error

    @pytest.mark.asyncio
    async def test_durable_write_failure_still_returns_price(self, clock):
        store = Mock()
        store.get = Mock(return_value=None)
        store.replace = Mock(side_effect=OSError("disk full"))
        cache = PriceCache(store, clock=clock)

        fetch = AsyncMock(return_value=_price())

        result = await cache.get_or_fetch("eastus", "key", fetch)
        again = await cache.get_or_fetch("eastus", "key", fetch)

        assert result.ok
        assert again.ok
        assert cache.stats.write_failures == 2
        # Nothing was kept in memory for a price the durable tier never stored
        assert cache.stats.memory_hits == 0
        assert fetch.await_count == 2

    @pytest.mark.asyncio
    async def test_durable_read_failure_is_a_miss(self, clock):
        store = Mock()
        store.get = Mock(side_effect=OSError("locked"))
        store.replace = Mock()
        cache = PriceCache(store, clock=clock)
        fetch = AsyncMock(return_value=_price())

        result = await cache.get_or_fetch("eastus", "key", fetch)

        assert result.ok
        fetch.assert_awaited_once()


@pytest.mark.asyncio
async def test_concurrent_cold_key_leaves_one_whole_row(cache, store, db_path):
    calls = []

    async def fetch():
        calls.append(len(calls))
        await asyncio.sleep(0.01)
        return _price(0.000183 + len(calls) * 0.000001)

    first, second = await asyncio.gather(
        cache.get_or_fetch("eastus", "key", fetch),
        cache.get_or_fetch("EastUS", "key", fetch),
    )

    assert first.ok and second.ok
    stored = store.get("eastus", "key")
    assert stored in (first.entry, second.entry)
    conn = get_connection(db_path)
    try:
        count = conn.execute(
            "SELECT COUNT(*) FROM price_cache WHERE region = ? AND meter_key = ?", ("eastus", "key")
        ).fetchone()[0]
    finally:
        conn.close()
    assert count == 1


def test_zero_ttl_is_not_replaced_by_default(store, clock):
    cache = PriceCache(store, memory_ttl_seconds=0, durable_ttl_seconds=3600, clock=clock)

    assert cache.memory_ttl == timedelta(0)
    assert cache.durable_ttl == timedelta(hours=1)


@pytest.mark.asyncio
async def test_zero_memory_ttl_always_reads_durable_tier(store, clock):
    cache = PriceCache(store, memory_ttl_seconds=0, durable_ttl_seconds=3600, clock=clock)
    fetch = AsyncMock(return_value=_price())

    await cache.get_or_fetch("eastus", "key", fetch)
    await cache.get("eastus", "key")
    await cache.get("eastus", "key")

    assert cache.stats.memory_hits == 0
    assert cache.stats.durable_hits == 2
    fetch.assert_awaited_once()


@pytest.mark.asyncio
async def test_invalidate_drops_both_tiers(cache):
    fetch = AsyncMock(return_value=_price())
    await cache.get_or_fetch("eastus", "key", fetch)

    await cache.invalidate("EastUS", "key")
    await cache.get_or_fetch("eastus", "key", fetch)

    assert fetch.await_count == 2


@pytest.mark.asyncio
async def test_memory_copy_never_outlives_durable_entry(store, clock):
    cache = PriceCache(store, memory_ttl_seconds=7200, durable_ttl_seconds=3600, clock=clock)
    fetch = AsyncMock(side_effect=[_price(0.1), _price(0.2)])

    await cache.get_or_fetch("eastus", "key", fetch)
    clock.advance(minutes=61)
    result = await cache.get_or_fetch("eastus", "key", fetch)

    assert result.entry.unit_price == 0.2
