"""
Per-permutation cost formulas.

Evaluation is pure: permutation + normalized inputs + resolved prices +
effective assumptions in, an itemized CostEstimate out. Missing prices never
abort a calculation; the affected component is omitted with a warning.
"""
import logging
from typing import Callable, Dict, List, Mapping, Optional

from cost_engine.core.config import config
from cost_engine.domain.assumption_models import (
    AssumptionSource,
    CoolDataAssumptions,
    ValidationError,
)
from cost_engine.domain.cost_models import CostComponent, CostEstimate, NormalizedCostInputs
from cost_engine.domain.disk_tiers import MAX_DISK_SIZE_GIB, disk_tier_for
from cost_engine.domain.meters import MeterKind, UnitOfMeasure
from cost_engine.domain.permutations import (
    COOL_ACCESS_MINIMUM_CAPACITY_GIB,
    Permutation,
    ProductFamily,
)
from cost_engine.domain.price_models import PriceCacheEntry


logger = logging.getLogger(__name__)

MAX_CONFIDENCE = 100
MIN_CONFIDENCE = 10
WARNING_PENALTY = 10
ASSUMED_SPLIT_PENALTY = 5

PREMIUM_V2_BASELINE_IOPS = 3000.0
PREMIUM_V2_BASELINE_MIBPS = 125.0


def compute_confidence(component_count: int, warning_count: int, assumed_inputs: bool) -> int:
    """
    Confidence score for an estimate.

    Starts at 100, loses 10 per warning and 5 when the cool capacity split
    rests on assumptions rather than telemetry; always within [10, 100].
    """
    if component_count == 0:
        return MIN_CONFIDENCE
    score = MAX_CONFIDENCE - WARNING_PENALTY * warning_count
    if assumed_inputs:
        score -= ASSUMED_SPLIT_PENALTY
    return max(MIN_CONFIDENCE, min(MAX_CONFIDENCE, score))


class _EstimateBuilder:
    """Accumulates components, notes and warnings for one evaluation."""

    def __init__(self, prices: Mapping[MeterKind, PriceCacheEntry], hours_in_period: float):
        self.prices = prices
        self.hours = hours_in_period
        self.components: List[CostComponent] = []
        self.notes: List[str] = []
        self.warnings: List[str] = []
        self.assumed_inputs = False

    def add(
        self,
        kind: MeterKind,
        name: str,
        component_type: str,
        quantity: float,
        description: str = ""
    ) -> Optional[CostComponent]:
        if quantity <= 0:
            return None
        entry = self.prices.get(kind)
        if entry is None:
            self.warnings.append(f"Price unavailable for {kind.value} meter; {name} omitted")
            return None
        unit = UnitOfMeasure.parse(entry.unit_of_measure)
        component = CostComponent(
            name=name,
            type=component_type,
            quantity=quantity,
            unit=entry.unit_of_measure,
            unit_price=entry.unit_price,
            cost=unit.cost(quantity, entry.unit_price, self.hours),
            description=description,
        )
        self.components.append(component)
        return component

    def currency(self, default: str) -> str:
        for entry in self.prices.values():
            if entry.currency:
                return entry.currency
        return default


def _validate_inputs(permutation: Permutation, inputs: NormalizedCostInputs) -> None:
    if inputs.permutation != permutation:
        raise ValidationError(
            f"Inputs were built for permutation {inputs.permutation.id}, not {permutation.id}"
        )
    if inputs.hours_in_period <= 0:
        raise ValidationError("hours_in_period must be positive")
    quantities = {
        "provisioned_gib": inputs.provisioned_gib,
        "used_gib": inputs.used_gib,
        "hot_capacity_gib": inputs.hot_capacity_gib,
        "cool_capacity_gib": inputs.cool_capacity_gib,
        "data_tiered_gib": inputs.data_tiered_gib,
        "data_retrieved_gib": inputs.data_retrieved_gib,
        "required_throughput_mibps": inputs.required_throughput_mibps,
        "provisioned_iops": inputs.provisioned_iops,
        "provisioned_throughput_mibps": inputs.provisioned_throughput_mibps,
        "snapshot_gib": inputs.snapshot_gib,
        "write_operations": inputs.write_operations,
        "read_operations": inputs.read_operations,
        "list_operations": inputs.list_operations,
        "other_operations": inputs.other_operations,
    }
    for name, value in quantities.items():
        if value is not None and value < 0:
            raise ValidationError(f"{name} must not be negative (got: {value})")


class FormulaEvaluator:
    """Selects and applies the cost formula for a permutation."""

    def __init__(self, default_currency: Optional[str] = None):
        self.default_currency = default_currency or config.DEFAULT_CURRENCY
        self._formulas: Dict[ProductFamily, Callable] = {
            ProductFamily.AZURE_NETAPP_FILES: self._anf,
            ProductFamily.AZURE_FILES: self._azure_files,
            ProductFamily.MANAGED_DISK: self._managed_disk,
        }

    def evaluate(
        self,
        permutation: Permutation,
        inputs: NormalizedCostInputs,
        prices: Mapping[MeterKind, PriceCacheEntry],
        assumptions: CoolDataAssumptions,
        job_id: Optional[str] = None,
        resource_id: Optional[str] = None
    ) -> CostEstimate:
        """
        Compute an itemized estimate.

        Args:
            permutation: Pricing model
            inputs: Normalized inputs built for this permutation
            prices: Resolved unit prices by meter kind (missing kinds are unavailable)
            assumptions: Effective cool data assumptions
            job_id: Optional job the estimate belongs to
            resource_id: Optional resource the estimate belongs to

        Returns:
            CostEstimate with components, notes, warnings and confidence

        Raises:
            ValidationError: If the inputs are malformed
        """
        _validate_inputs(permutation, inputs)
        formula = self._formulas.get(permutation.product_family)
        if formula is None:
            raise ValidationError(f"No cost formula for {permutation.product_family}")

        builder = _EstimateBuilder(prices, inputs.hours_in_period)
        formula(permutation, inputs, assumptions, builder)

        total = sum(component.cost for component in builder.components)
        confidence = compute_confidence(
            len(builder.components), len(builder.warnings), builder.assumed_inputs
        )
        return CostEstimate(
            permutation_id=permutation.id,
            permutation_name=permutation.name,
            region=inputs.region,
            total_cost=total,
            currency=builder.currency(self.default_currency),
            components=builder.components,
            confidence=confidence,
            notes=builder.notes,
            warnings=builder.warnings,
            job_id=job_id,
            resource_id=resource_id,
            assumptions_source=assumptions.source.value if permutation.cool_access else None,
        )

    def _check_minimum(self, permutation: Permutation, capacity_gib: float, builder: _EstimateBuilder) -> None:
        if permutation.minimum_capacity_gib and capacity_gib < permutation.minimum_capacity_gib:
            builder.warnings.append(
                f"Capacity {capacity_gib:,.2f} GiB is below the {permutation.minimum_capacity_gib:,.0f} GiB "
                f"minimum for {permutation.name}"
            )

    # Azure NetApp Files

    def _anf(
        self,
        permutation: Permutation,
        inputs: NormalizedCostInputs,
        assumptions: CoolDataAssumptions,
        builder: _EstimateBuilder
    ) -> None:
        provisioned = inputs.provisioned_gib
        self._check_minimum(permutation, provisioned, builder)

        if permutation.cool_access:
            self._anf_cool_capacity(permutation, inputs, assumptions, builder)
        else:
            kind = MeterKind.CAPACITY
            if permutation.double_encryption:
                kind = MeterKind.DOUBLE_ENCRYPTED_CAPACITY
                builder.notes.append("Double encryption enabled")
            builder.add(
                kind,
                "Capacity",
                "capacity",
                provisioned,
                f"{permutation.tier_level} capacity ({provisioned:,.2f} GiB)",
            )

        included = permutation.included_throughput_mibps(provisioned)
        required = inputs.required_throughput_mibps
        if permutation.throughput_metered:
            above = max(0.0, required - included)
            builder.add(
                MeterKind.THROUGHPUT,
                "Throughput",
                "throughput",
                above,
                f"Throughput above base ({above:,.2f} MiB/s)",
            )
            builder.notes.append(f"Base included throughput: {included:,.0f} MiB/s (flat, not per TiB)")
            builder.notes.append(f"Required throughput: {required:,.2f} MiB/s")
        else:
            builder.notes.append(
                f"Included throughput: {included:,.2f} MiB/s "
                f"({permutation.throughput_per_tib_mibps:,.0f} MiB/s per TiB)"
            )
            if required > included:
                builder.notes.append(
                    f"Required throughput {required:,.2f} MiB/s exceeds the included "
                    f"{included:,.2f} MiB/s; a larger volume or higher service level is needed"
                )

    def _anf_cool_capacity(
        self,
        permutation: Permutation,
        inputs: NormalizedCostInputs,
        assumptions: CoolDataAssumptions,
        builder: _EstimateBuilder
    ) -> None:
        provisioned = inputs.provisioned_gib
        if provisioned < COOL_ACCESS_MINIMUM_CAPACITY_GIB:
            builder.warnings.append(
                f"Cool access requires at least {COOL_ACCESS_MINIMUM_CAPACITY_GIB:,.0f} GiB "
                f"(volume is {provisioned:,.2f} GiB)"
            )

        if inputs.cool_capacity_gib is not None:
            cool = min(inputs.cool_capacity_gib, provisioned)
            hot = inputs.hot_capacity_gib if inputs.hot_capacity_gib is not None else provisioned - cool
        else:
            cool = provisioned * assumptions.cool_data_percent / 100.0
            hot = provisioned - cool
            builder.assumed_inputs = assumptions.source != AssumptionSource.METRICS

        tiered = inputs.data_tiered_gib if inputs.data_tiered_gib is not None else cool
        retrieved = (
            inputs.data_retrieved_gib if inputs.data_retrieved_gib is not None
            else cool * assumptions.cool_data_retrieval_percent / 100.0
        )

        builder.add(MeterKind.CAPACITY, "Hot Tier Capacity", "capacity_hot", hot,
                    f"{permutation.tier_level} hot capacity ({hot:,.2f} GiB)")
        builder.add(MeterKind.COOL_CAPACITY, "Cool Tier Capacity", "capacity_cool", cool,
                    f"{permutation.tier_level} cool capacity ({cool:,.2f} GiB)")
        builder.add(MeterKind.COOL_TRANSFER, "Data Tiering", "cool_tiering", tiered,
                    f"Data tiered to cool ({tiered:,.2f} GiB)")
        builder.add(MeterKind.COOL_TRANSFER, "Data Retrieval", "cool_retrieval", retrieved,
                    f"Data retrieved from cool ({retrieved:,.2f} GiB)")

        builder.notes.append(f"Cool access enabled (hot: {hot:,.2f} GiB, cool: {cool:,.2f} GiB)")
        builder.notes.append(
            f"Cool data assumptions: {assumptions.cool_data_percent:g}% cool, "
            f"{assumptions.cool_data_retrieval_percent:g}% retrieved (source: {assumptions.source.value})"
        )

    # Azure Files

    def _azure_files(
        self,
        permutation: Permutation,
        inputs: NormalizedCostInputs,
        assumptions: CoolDataAssumptions,
        builder: _EstimateBuilder
    ) -> None:
        tier = permutation.tier_level
        provisioned = inputs.provisioned_gib
        self._check_minimum(permutation, provisioned, builder)

        if tier in ("Hot", "Cool", "TransactionOptimized"):
            stored = inputs.used_gib
            if stored is None:
                stored = provisioned
                builder.notes.append("Used capacity unknown; billing the share quota as stored data")
            builder.add(MeterKind.CAPACITY, "Data Stored", "storage", stored,
                        f"{tier} data stored ({stored:,.2f} GiB)")
            builder.add(MeterKind.WRITE_OPERATIONS, "Write Operations", "transactions_write",
                        inputs.write_operations)
            builder.add(MeterKind.READ_OPERATIONS, "Read Operations", "transactions_read",
                        inputs.read_operations)
            builder.add(MeterKind.LIST_OPERATIONS, "List Operations", "transactions_list",
                        inputs.list_operations)
            builder.add(MeterKind.OTHER_OPERATIONS, "Other Operations", "transactions_other",
                        inputs.other_operations)
            if tier == "Cool":
                builder.add(MeterKind.DATA_RETRIEVAL, "Data Retrieval", "data_retrieval",
                            inputs.data_retrieved_gib or 0.0)
            builder.notes.append(f"Pay-as-you-go {tier} tier, {permutation.redundancy} redundancy")
        elif tier == "Premium":
            billed = max(provisioned, permutation.minimum_capacity_gib)
            builder.add(MeterKind.CAPACITY, "Provisioned Capacity", "storage", billed,
                        f"Premium provisioned capacity ({billed:,.2f} GiB)")
            builder.notes.append("Provisioned v1: billed on provisioned capacity, IOPS and throughput included")
        else:
            builder.add(MeterKind.CAPACITY, "Provisioned Capacity", "storage", provisioned,
                        f"Provisioned storage ({provisioned:,.2f} GiB)")
            builder.add(MeterKind.IOPS, "Provisioned IOPS", "iops", inputs.provisioned_iops)
            builder.add(MeterKind.THROUGHPUT, "Provisioned Throughput", "throughput",
                        inputs.provisioned_throughput_mibps)
            builder.notes.append("Provisioned v2: storage, IOPS and throughput billed independently")

        builder.add(MeterKind.SNAPSHOT, "Snapshots", "snapshots", inputs.snapshot_gib,
                    f"Share snapshots ({inputs.snapshot_gib:,.2f} GiB differential)")

    # Managed disks

    def _managed_disk(
        self,
        permutation: Permutation,
        inputs: NormalizedCostInputs,
        assumptions: CoolDataAssumptions,
        builder: _EstimateBuilder
    ) -> None:
        tier = permutation.tier_level
        size = inputs.provisioned_gib
        fixed = disk_tier_for(tier, size)

        if fixed is not None:
            sku, billed_size = fixed
            if size > MAX_DISK_SIZE_GIB:
                builder.warnings.append(
                    f"Disk size {size:,.0f} GiB exceeds the largest tier; priced as {sku}"
                )
            builder.add(MeterKind.DISK, f"Disk {sku}", "disk", 1.0,
                        f"{permutation.name} {sku} ({billed_size:,} GiB)")
            builder.add(MeterKind.OTHER_OPERATIONS, "Transactions", "transactions",
                        inputs.other_operations)
            builder.notes.append(f"Disk tier: {sku} ({billed_size:,} GiB billed)")
        else:
            builder.add(MeterKind.CAPACITY, "Provisioned Capacity", "capacity", size,
                        f"{permutation.name} capacity ({size:,.2f} GiB)")
            iops = inputs.provisioned_iops
            throughput = inputs.provisioned_throughput_mibps
            if tier == "PremiumSSDv2":
                iops = max(0.0, iops - PREMIUM_V2_BASELINE_IOPS)
                throughput = max(0.0, throughput - PREMIUM_V2_BASELINE_MIBPS)
                builder.notes.append(
                    f"Includes {PREMIUM_V2_BASELINE_IOPS:,.0f} IOPS and "
                    f"{PREMIUM_V2_BASELINE_MIBPS:,.0f} MiB/s at no extra charge"
                )
            builder.add(MeterKind.IOPS, "Provisioned IOPS", "iops", iops)
            builder.add(MeterKind.THROUGHPUT, "Provisioned Throughput", "throughput", throughput)

        builder.add(MeterKind.SNAPSHOT, "Snapshots", "snapshots", inputs.snapshot_gib,
                    f"Disk snapshots ({inputs.snapshot_gib:,.2f} GiB differential)")
