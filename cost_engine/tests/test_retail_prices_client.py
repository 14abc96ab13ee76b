"""
Tests for the retail prices client (pagination, errors, circuit breaker).
"""

import httpx
import pytest

from cost_engine.pricing.retail_prices_client import (
    PricingQuery,
    PricingSourceError,
    RetailPriceItem,
    RetailPricesClient,
    normalize_region,
)
from cost_engine.resilience.circuit_breaker import CircuitBreaker, CircuitState


BASE_URL = "https://prices.test/api/retail/prices"


def _item(meter: str, price: float, sku: str = "Standard") -> dict:
    return {
        "meterName": meter,
        "retailPrice": price,
        "unitOfMeasure": "1 GiB/Hour",
        "skuName": sku,
        "productName": "Azure NetApp Files",
        "serviceName": "Azure NetApp Files",
        "armRegionName": "eastus",
        "currencyCode": "USD",
        "type": "Consumption",
        "tierMinimumUnits": 0.0,
    }


def _client(handler, **kwargs) -> RetailPricesClient:
    breaker = kwargs.pop("circuit_breaker", None) or CircuitBreaker("retail_prices_test")
    return RetailPricesClient(
        base_url=BASE_URL,
        transport=httpx.MockTransport(handler),
        circuit_breaker=breaker,
        **kwargs
    )


def test_filter_includes_only_set_fields():
    query = PricingQuery(region="East US", service_name="Azure NetApp Files", sku_name="Standard")

    odata = query.to_filter()

    assert odata == (
        "armRegionName eq 'eastus' and serviceFamily eq 'Storage' and "
        "serviceName eq 'Azure NetApp Files' and skuName eq 'Standard' and "
        "priceType eq 'Consumption'"
    )


def test_filter_escapes_quotes_and_adds_contains():
    query = PricingQuery(region="eastus", product_name="O'Brien", meter_contains=("P30", "LRS"))

    odata = query.to_filter()

    assert "productName eq 'O''Brien'" in odata
    assert "contains(meterName, 'P30') and contains(meterName, 'LRS')" in odata


def test_normalize_region():
    assert normalize_region("West Europe") == "westeurope"
    assert normalize_region(None) == ""


def test_item_from_api():
    item = RetailPriceItem.from_api(_item("Standard Capacity", 0.000183))

    assert item.meter_name == "Standard Capacity"
    assert item.retail_price == 0.000183
    assert item.region == "eastus"


@pytest.mark.asyncio
async def test_follows_next_page_link_until_exhausted():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        page = request.url.params.get("page")
        if page is None:
            return httpx.Response(200, json={
                "Items": [_item("Standard Capacity", 0.000183)],
                "NextPageLink": f"{BASE_URL}?page=2",
            })
        if page == "2":
            return httpx.Response(200, json={
                "Items": [_item("Standard Double Encrypted Capacity", 0.000201)],
                "NextPageLink": f"{BASE_URL}?page=3",
            })
        return httpx.Response(200, json={"Items": [], "NextPageLink": None})

    client = _client(handler)

    items = await client.query(PricingQuery(region="eastus", sku_name="Standard"))

    assert [item.meter_name for item in items] == [
        "Standard Capacity",
        "Standard Double Encrypted Capacity",
    ]
    assert len(requests) == 3
    assert "$filter" in requests[0].url.params
    assert requests[0].url.params["api-version"] == client.api_version
    assert "$filter" not in requests[1].url.params


@pytest.mark.asyncio
async def test_stops_on_repeated_link():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={
            "Items": [_item("Standard Capacity", 0.000183)],
            "NextPageLink": f"{BASE_URL}?page=2",
        })

    items = await _client(handler).query(PricingQuery(region="eastus"))

    assert len(calls) == 2
    assert len(items) == 2


@pytest.mark.asyncio
async def test_stops_at_page_cap():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={
            "Items": [],
            "NextPageLink": f"{BASE_URL}?page={len(calls) + 1}",
        })

    await _client(handler, max_pages=3).query(PricingQuery(region="eastus"))

    assert len(calls) == 3


@pytest.mark.asyncio
async def test_http_error_raises_pricing_source_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, json={"error": "unavailable"})

    with pytest.raises(PricingSourceError) as exc_info:
        await _client(handler).query(PricingQuery(region="eastus"))

    assert "503" in str(exc_info.value)
    assert isinstance(exc_info.value.__cause__, httpx.HTTPStatusError)


@pytest.mark.asyncio
async def test_connection_error_raises_pricing_source_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(PricingSourceError):
        await _client(handler).query(PricingQuery(region="eastus"))


@pytest.mark.asyncio
async def test_malformed_body_raises_pricing_source_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"not json")

    with pytest.raises(PricingSourceError):
        await _client(handler).query(PricingQuery(region="eastus"))


@pytest.mark.asyncio
async def test_breaker_opens_after_repeated_failures_and_skips_requests():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(500)

    breaker = CircuitBreaker("retail_prices_test", failure_threshold=2, open_duration=60)
    client = _client(handler, circuit_breaker=breaker)

    for _ in range(2):
        with pytest.raises(PricingSourceError):
            await client.query(PricingQuery(region="eastus"))

    assert breaker.current_state() == CircuitState.OPEN

    with pytest.raises(PricingSourceError) as exc_info:
        await client.query(PricingQuery(region="eastus"))

    assert "circuit is open" in str(exc_info.value)
    assert len(calls) == 2
