"""
Meter requirements and price resolution.

Maps a permutation (and the inputs that select optional meters) to the meters
it needs, the meter key each is cached under, and the retail prices query that
finds it on a cache miss.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Pattern

from cost_engine.domain.cost_models import NormalizedCostInputs
from cost_engine.domain.disk_tiers import disk_tier_for
from cost_engine.domain.meters import MeterKind, classify_meter
from cost_engine.domain.permutations import Permutation, ProductFamily
from cost_engine.domain.price_models import FetchedPrice, PriceCacheEntry
from cost_engine.pricing.price_cache import PriceCache
from cost_engine.pricing.retail_prices_client import (
    PricingQuery,
    RetailPriceItem,
    RetailPricesClient,
)


logger = logging.getLogger(__name__)

ANF_SERVICE_NAME = "Azure NetApp Files"
ANF_COOL_ACCESS_SKU = "Standard Storage with Cool Access"

_FILES_SKU_PREFIX = {
    "Hot": "Hot",
    "Cool": "Cool",
    "TransactionOptimized": "Standard",
    "Premium": "Premium",
    "ProvisionedV2SSD": "SSD",
    "ProvisionedV2HDD": "HDD",
}
_FILES_PRODUCT = {
    "Hot": "Files",
    "Cool": "Files",
    "TransactionOptimized": "Files",
    "Premium": "Premium Files",
    "ProvisionedV2SSD": "Files v2",
    "ProvisionedV2HDD": "Files v2",
}
_DISK_PRODUCT = {
    "StandardHDD": "Standard HDD Managed Disks",
    "StandardSSD": "Standard SSD Managed Disks",
    "PremiumSSD": "Premium SSD Managed Disks",
    "PremiumSSDv2": "Premium SSD v2 Managed Disks",
    "UltraDisk": "Ultra Disks",
}


@dataclass(frozen=True)
class MeterRequirement:
    """One meter a calculation needs and how to find it."""
    kind: MeterKind
    meter_key: str
    query: PricingQuery
    item_pattern: Optional[Pattern] = None  # extra match on "skuName meterName"


@dataclass
class ResolvedPrices:
    """Prices resolved for one calculation; unavailable meters carry a reason."""
    prices: Dict[MeterKind, PriceCacheEntry] = field(default_factory=dict)
    unavailable: Dict[MeterKind, str] = field(default_factory=dict)

    def get(self, kind: MeterKind) -> Optional[PriceCacheEntry]:
        return self.prices.get(kind)


def _anf_requirements(permutation: Permutation, region: str) -> List[MeterRequirement]:
    tier = permutation.tier_level
    sku = "Flexible Service Level" if tier == "Flexible" else tier
    tier_query = PricingQuery(
        region=region,
        service_name=ANF_SERVICE_NAME,
        product_name=ANF_SERVICE_NAME,
        sku_name=sku,
    )
    capacity_kind = (
        MeterKind.DOUBLE_ENCRYPTED_CAPACITY if permutation.double_encryption else MeterKind.CAPACITY
    )
    requirements = [
        MeterRequirement(capacity_kind, f"anf-{tier.lower()}-{capacity_kind.value}", tier_query)
    ]
    if permutation.throughput_metered:
        requirements.append(MeterRequirement(
            MeterKind.THROUGHPUT, f"anf-{tier.lower()}-{MeterKind.THROUGHPUT.value}", tier_query
        ))
    if permutation.cool_access:
        cool_query = PricingQuery(
            region=region,
            service_name=ANF_SERVICE_NAME,
            product_name=ANF_SERVICE_NAME,
            sku_name=ANF_COOL_ACCESS_SKU,
        )
        for kind in (MeterKind.COOL_CAPACITY, MeterKind.COOL_TRANSFER):
            requirements.append(MeterRequirement(kind, f"anf-coolaccess-{kind.value}", cool_query))
    return requirements


def _files_requirements(
    permutation: Permutation,
    inputs: NormalizedCostInputs
) -> List[MeterRequirement]:
    tier = permutation.tier_level
    redundancy = permutation.redundancy
    query = PricingQuery(
        region=inputs.region,
        service_name="Storage",
        product_name=_FILES_PRODUCT[tier],
        sku_name=f"{_FILES_SKU_PREFIX[tier]} {redundancy}",
    )
    wanted = [MeterKind.CAPACITY]
    if tier in ("Hot", "Cool", "TransactionOptimized"):
        optional = (
            (MeterKind.WRITE_OPERATIONS, inputs.write_operations),
            (MeterKind.READ_OPERATIONS, inputs.read_operations),
            (MeterKind.LIST_OPERATIONS, inputs.list_operations),
            (MeterKind.OTHER_OPERATIONS, inputs.other_operations),
            (MeterKind.DATA_RETRIEVAL, inputs.data_retrieved_gib if tier == "Cool" else 0),
        )
    elif tier == "Premium":
        optional = ()
    else:
        optional = (
            (MeterKind.IOPS, inputs.provisioned_iops),
            (MeterKind.THROUGHPUT, inputs.provisioned_throughput_mibps),
        )
    wanted.extend(kind for kind, quantity in optional if quantity)
    if inputs.snapshot_gib:
        wanted.append(MeterKind.SNAPSHOT)

    prefix = f"azurefiles-{tier.lower()}-{redundancy.lower()}"
    return [MeterRequirement(kind, f"{prefix}-{kind.value}", query) for kind in wanted]


def _disk_requirements(
    permutation: Permutation,
    inputs: NormalizedCostInputs
) -> List[MeterRequirement]:
    tier = permutation.tier_level
    redundancy = permutation.redundancy
    product = _DISK_PRODUCT[tier]
    prefix = f"manageddisk-{tier.lower()}-{redundancy.lower()}"
    redundancy_pattern = re.compile(rf"\b{redundancy}\b", re.IGNORECASE)
    requirements = []

    fixed = disk_tier_for(tier, inputs.provisioned_gib)
    if fixed is not None:
        sku, _ = fixed
        requirements.append(MeterRequirement(
            MeterKind.DISK,
            f"manageddisk-{tier.lower()}-{sku.lower()}-{redundancy.lower()}-{MeterKind.DISK.value}",
            PricingQuery(
                region=inputs.region,
                service_name="Storage",
                product_name=product,
                meter_contains=(sku, redundancy),
            ),
            re.compile(rf"\b{sku}\b.*\b{redundancy}\b", re.IGNORECASE),
        ))
        if inputs.other_operations:
            requirements.append(MeterRequirement(
                MeterKind.OTHER_OPERATIONS,
                f"{prefix}-{MeterKind.OTHER_OPERATIONS.value}",
                PricingQuery(
                    region=inputs.region,
                    service_name="Storage",
                    product_name=product,
                    meter_contains=("Operations",),
                ),
            ))
    else:
        flexible_query = PricingQuery(
            region=inputs.region,
            service_name="Storage",
            product_name=product,
        )
        wanted = [MeterKind.CAPACITY]
        if inputs.provisioned_iops:
            wanted.append(MeterKind.IOPS)
        if inputs.provisioned_throughput_mibps:
            wanted.append(MeterKind.THROUGHPUT)
        for kind in wanted:
            requirements.append(MeterRequirement(
                kind, f"{prefix}-{kind.value}", flexible_query, redundancy_pattern
            ))

    if inputs.snapshot_gib:
        requirements.append(MeterRequirement(
            MeterKind.SNAPSHOT,
            f"{prefix}-{MeterKind.SNAPSHOT.value}",
            PricingQuery(
                region=inputs.region,
                service_name="Storage",
                product_name=product,
                meter_contains=("Snapshot",),
            ),
            redundancy_pattern,
        ))
    return requirements


def meter_requirements(inputs: NormalizedCostInputs) -> List[MeterRequirement]:
    """
    List the meters a calculation needs.

    Optional meters (operations, snapshots, provisioned IOPS/throughput) are
    only required when the corresponding input quantity is nonzero.
    """
    permutation = inputs.permutation
    family = permutation.product_family
    if family == ProductFamily.AZURE_NETAPP_FILES:
        return _anf_requirements(permutation, inputs.region)
    if family == ProductFamily.AZURE_FILES:
        return _files_requirements(permutation, inputs)
    if family == ProductFamily.MANAGED_DISK:
        return _disk_requirements(permutation, inputs)
    raise ValueError(f"Unhandled product family: {family}")


def select_item(
    items: List[RetailPriceItem],
    product_family: ProductFamily,
    requirement: MeterRequirement
) -> Optional[RetailPriceItem]:
    """
    Pick the item for a requirement: same meter kind, matching the optional
    pattern, consumption pricing preferred, lowest tier minimum first.
    """
    candidates = []
    for item in items:
        if classify_meter(product_family, item.sku_name, item.meter_name) != requirement.kind:
            continue
        if requirement.item_pattern is not None and not requirement.item_pattern.search(
            f"{item.sku_name} {item.meter_name}"
        ):
            continue
        candidates.append(item)
    if not candidates:
        return None
    candidates.sort(key=lambda item: (item.price_type != "Consumption", item.tier_minimum_units))
    return candidates[0]


class PriceResolver:
    """Resolves every meter a calculation needs through the price cache."""

    def __init__(self, cache: PriceCache, client: RetailPricesClient):
        self.cache = cache
        self.client = client

    async def resolve(self, inputs: NormalizedCostInputs) -> ResolvedPrices:
        """
        Resolve the prices for one calculation.

        Meters sharing a query reuse one upstream call within this resolution.
        Unavailable meters are reported, never raised.

        Args:
            inputs: Normalized inputs (region and permutation select the meters)

        Returns:
            ResolvedPrices with the found entries and reasons for missing ones
        """
        family = inputs.permutation.product_family
        query_results: Dict[PricingQuery, List[RetailPriceItem]] = {}
        resolved = ResolvedPrices()

        for requirement in meter_requirements(inputs):

            async def fetch(requirement: MeterRequirement = requirement) -> Optional[FetchedPrice]:
                items = query_results.get(requirement.query)
                if items is None:
                    items = await self.client.query(requirement.query)
                    query_results[requirement.query] = items
                item = select_item(items, family, requirement)
                if item is None:
                    return None
                return FetchedPrice(
                    unit_price=item.retail_price,
                    unit_of_measure=item.unit_of_measure,
                    currency=item.currency,
                    meter_name=item.meter_name,
                    sku_name=item.sku_name,
                )

            result = await self.cache.get_or_fetch(inputs.region, requirement.meter_key, fetch)
            if result.ok:
                resolved.prices[requirement.kind] = result.entry
            else:
                resolved.unavailable[requirement.kind] = result.error
        return resolved
