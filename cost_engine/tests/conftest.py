"""
Shared pytest fixtures for cost engine tests.
"""

import asyncio
import sys
import os
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

# Keep tests off the real pricing endpoint defaults
os.environ.setdefault('RETAIL_PRICES_API_URL', 'https://prices.test/api/retail/prices')
os.environ.setdefault('DEFAULT_COOL_DATA_PERCENT', '80')
os.environ.setdefault('DEFAULT_COOL_RETRIEVAL_PERCENT', '15')

import pytest
from datetime import datetime, timedelta
from typing import List

from cost_engine.domain.permutations import ProductFamily, get_permutation_catalog
from cost_engine.domain.price_models import PriceCacheEntry
from cost_engine.domain.resource_models import (
    AnfVolumePayload,
    AzureFilesSharePayload,
    CoolTierTelemetry,
    ManagedDiskPayload,
    ResourceDescriptor,
)
from cost_engine.pricing.retail_prices_client import PricingQuery, PricingSourceError, RetailPriceItem
from cost_engine.resilience.circuit_breaker import reset_circuit_breakers
from cost_engine.services.cost_engine import build_cost_engine
from cost_engine.storage.resource_directory import InMemoryResourceDirectory


# Retail items keyed by (productName, skuName), shaped like API responses
RETAIL_CATALOG = {
    ("Azure NetApp Files", "Standard"): [
        ("Standard Capacity", 0.000183, "1 GiB/Hour"),
        ("Standard Double Encrypted Capacity", 0.000201, "1 GiB/Hour"),
    ],
    ("Azure NetApp Files", "Premium"): [
        ("Premium Capacity", 0.000403, "1 GiB/Hour"),
        ("Premium Double Encrypted Capacity", 0.000443, "1 GiB/Hour"),
    ],
    ("Azure NetApp Files", "Ultra"): [
        ("Ultra Capacity", 0.000537, "1 GiB/Hour"),
        ("Ultra Double Encrypted Capacity", 0.000591, "1 GiB/Hour"),
    ],
    ("Azure NetApp Files", "Flexible Service Level"): [
        ("Flexible Service Level Capacity", 0.000181, "1 GiB/Hour"),
        ("Flexible Service Level Throughput MiBps", 0.0565, "1/Hour"),
    ],
    ("Azure NetApp Files", "Standard Storage with Cool Access"): [
        ("Standard Storage with Cool Access Capacity", 0.0000274, "1 GiB/Hour"),
        ("Standard Storage with Cool Access Data Transfer", 0.01, "1 GiB"),
    ],
    ("Files", "Hot LRS"): [
        ("Hot LRS Data Stored", 0.0255, "1 GB/Month"),
        ("Hot Write Operations", 0.065, "10K"),
        ("Hot Read Operations", 0.0052, "10K"),
        ("Hot List Operations", 0.065, "10K"),
        ("Hot Other Operations", 0.0052, "10K"),
        ("Hot LRS Snapshots", 0.0255, "1 GB/Month"),
    ],
    ("Files", "Cool LRS"): [
        ("Cool LRS Data Stored", 0.015, "1 GB/Month"),
        ("Cool Write Operations", 0.13, "10K"),
        ("Cool Read Operations", 0.013, "10K"),
        ("Cool Data Retrieval", 0.01, "1 GB"),
    ],
    ("Premium Files", "Premium LRS"): [
        ("Premium LRS Provisioned", 0.16, "1 GiB/Month"),
        ("Premium LRS Snapshots", 0.16, "1 GiB/Month"),
    ],
    ("Files v2", "SSD LRS"): [
        ("SSD LRS Provisioned Storage", 0.1, "1 GiB/Month"),
        ("SSD LRS Provisioned IOPS", 0.0055, "1/Month"),
        ("SSD LRS Provisioned Throughput MiBPS", 0.04, "1/Month"),
    ],
    ("Premium SSD Managed Disks", None): [
        ("P10 LRS Disk", 19.71, "1/Month", "P10 LRS"),
        ("P30 LRS Disk", 135.17, "1/Month", "P30 LRS"),
        ("P30 ZRS Disk", 202.75, "1/Month", "P30 ZRS"),
    ],
    ("Premium SSD v2 Managed Disks", None): [
        ("Premium LRS Provisioned Capacity", 0.000110, "1 GiB/Hour", "Premium LRS"),
        ("Premium LRS Provisioned IOPS", 0.0000068, "1/Hour", "Premium LRS"),
        ("Premium LRS Provisioned Throughput (MBps)", 0.000055, "1/Hour", "Premium LRS"),
    ],
}


def _matches(query: PricingQuery, product: str, sku: str, meter: str) -> bool:
    if query.product_name and query.product_name != product:
        return False
    if query.sku_name and query.sku_name != sku:
        return False
    return all(part in meter for part in query.meter_contains)


class FakeRetailPricesClient:
    """In-memory stand-in for RetailPricesClient.query with call recording."""

    def __init__(self, catalog=None, failing: bool = False, delay: float = 0.0):
        self.catalog = RETAIL_CATALOG if catalog is None else catalog
        self.failing = failing
        self.delay = delay
        self.queries: List[PricingQuery] = []
        self.in_flight = 0
        self.peak_in_flight = 0

    async def query(self, query: PricingQuery) -> List[RetailPriceItem]:
        self.queries.append(query)
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            return self._items(query)
        finally:
            self.in_flight -= 1

    def _items(self, query: PricingQuery) -> List[RetailPriceItem]:
        if self.failing:
            raise PricingSourceError("Retail prices API unavailable")
        items = []
        for (product, sku), rows in self.catalog.items():
            for row in rows:
                meter, price, unit = row[0], row[1], row[2]
                item_sku = row[3] if len(row) > 3 else sku
                if _matches(query, product, item_sku, meter):
                    items.append(RetailPriceItem(
                        meter_name=meter,
                        retail_price=price,
                        unit_of_measure=unit,
                        sku_name=item_sku,
                        product_name=product,
                        region=query.region,
                    ))
        return items


@pytest.fixture(autouse=True)
def _reset_breakers():
    """Isolate the process-wide circuit breakers between tests."""
    reset_circuit_breakers()
    yield
    reset_circuit_breakers()


@pytest.fixture
def catalog():
    return get_permutation_catalog()


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "cost_engine.db")


@pytest.fixture
def fake_client():
    return FakeRetailPricesClient()


@pytest.fixture
def failing_client():
    return FakeRetailPricesClient(failing=True)


@pytest.fixture
def slow_client():
    """Pricing source whose queries stay in flight long enough to overlap."""
    return FakeRetailPricesClient(delay=0.02)


@pytest.fixture
def directory():
    return InMemoryResourceDirectory()


@pytest.fixture
def engine(db_path, directory, fake_client):
    """Fully wired engine on a temporary database and fake pricing source."""
    return build_cost_engine(db_path=db_path, directory=directory, client=fake_client, max_concurrency=2)


@pytest.fixture
def make_entry():
    """Factory for price cache entries."""
    def _make(unit_price: float, unit: str = "1 GiB/Hour", region: str = "eastus", key: str = "k"):
        now = datetime.utcnow()
        return PriceCacheEntry(
            region=region,
            meter_key=key,
            unit_price=unit_price,
            unit_of_measure=unit,
            fetched_at=now,
            expires_at=now + timedelta(hours=1),
        )
    return _make


@pytest.fixture
def cool_volume():
    """ANF Standard volume with cool access and no telemetry."""
    return ResourceDescriptor(
        job_id="job-1",
        resource_id="vol-cool",
        name="vol-cool",
        region="East US",
        product_family=ProductFamily.AZURE_NETAPP_FILES,
        payload=AnfVolumePayload(service_level="Standard", provisioned_gib=4096, cool_access=True),
    )


@pytest.fixture
def regular_volume():
    return ResourceDescriptor(
        job_id="job-1",
        resource_id="vol-regular",
        name="vol-regular",
        region="eastus",
        product_family=ProductFamily.AZURE_NETAPP_FILES,
        payload=AnfVolumePayload(service_level="Standard", provisioned_gib=500),
    )


@pytest.fixture
def measured_volume():
    """Cool access volume with live cool tier telemetry."""
    return ResourceDescriptor(
        job_id="job-1",
        resource_id="vol-measured",
        name="vol-measured",
        region="eastus",
        product_family=ProductFamily.AZURE_NETAPP_FILES,
        payload=AnfVolumePayload(
            service_level="Premium",
            provisioned_gib=4000,
            cool_access=True,
            telemetry=CoolTierTelemetry(
                cool_tier_size_gib=1000,
                cool_data_read_gib=100,
                cool_data_write_gib=200,
            ),
        ),
    )


@pytest.fixture
def hot_share():
    return ResourceDescriptor(
        job_id="job-2",
        resource_id="share-hot",
        name="share-hot",
        region="westeurope",
        product_family=ProductFamily.AZURE_FILES,
        payload=AzureFilesSharePayload(
            access_tier="Hot",
            account_sku="Standard_LRS",
            provisioned_gib=1024,
            used_gib=200,
            write_operations=100_000,
            read_operations=500_000,
        ),
    )


@pytest.fixture
def premium_disk():
    return ResourceDescriptor(
        job_id="job-2",
        resource_id="disk-p30",
        name="disk-p30",
        region="westeurope",
        product_family=ProductFamily.MANAGED_DISK,
        payload=ManagedDiskPayload(disk_sku="Premium_LRS", disk_size_gib=1000),
    )
