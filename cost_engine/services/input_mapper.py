"""
Maps discovered resource descriptors onto permutations and normalized inputs.
"""
from typing import Optional

from cost_engine.core.config import config
from cost_engine.domain.cost_models import NormalizedCostInputs
from cost_engine.domain.permutations import Permutation, PermutationCatalog
from cost_engine.domain.resource_models import (
    AnfVolumePayload,
    AzureFilesSharePayload,
    ManagedDiskPayload,
    ResourceDescriptor,
)


def identify_resource(catalog: PermutationCatalog, descriptor: ResourceDescriptor) -> Permutation:
    """
    Identify the permutation for a descriptor.

    Raises:
        UnsupportedCombinationError: If the resource's configuration has no permutation
    """
    payload = descriptor.payload
    if isinstance(payload, AnfVolumePayload):
        return catalog.identify(
            descriptor.product_family,
            payload.service_level,
            cool_access=payload.cool_access,
            double_encryption=payload.double_encryption,
        )
    if isinstance(payload, AzureFilesSharePayload):
        return catalog.identify(
            descriptor.product_family,
            payload.access_tier,
            redundancy=payload.account_sku,
        )
    if isinstance(payload, ManagedDiskPayload):
        return catalog.identify(descriptor.product_family, payload.disk_sku)
    raise TypeError(f"Unhandled payload type: {type(payload).__name__}")


def build_cost_inputs(
    descriptor: ResourceDescriptor,
    permutation: Permutation,
    hours_in_period: Optional[float] = None
) -> NormalizedCostInputs:
    """
    Build fresh calculation inputs for one resource.

    Measured cool tier telemetry, when available, fixes the capacity split and
    transfer volumes; otherwise they are left for the evaluator to derive from
    the effective assumptions.
    """
    hours = hours_in_period or config.BILLING_PERIOD_HOURS
    payload = descriptor.payload

    if isinstance(payload, AnfVolumePayload):
        telemetry = payload.telemetry
        measured = payload.cool_access and telemetry is not None and telemetry.available
        cool = min(telemetry.cool_tier_size_gib, payload.provisioned_gib) if measured else None
        return NormalizedCostInputs(
            permutation=permutation,
            region=descriptor.region,
            provisioned_gib=payload.provisioned_gib,
            hot_capacity_gib=payload.provisioned_gib - cool if measured else None,
            cool_capacity_gib=cool,
            data_tiered_gib=telemetry.cool_data_write_gib if measured else None,
            data_retrieved_gib=telemetry.cool_data_read_gib if measured else None,
            required_throughput_mibps=payload.required_throughput_mibps,
            hours_in_period=hours,
        )

    if isinstance(payload, AzureFilesSharePayload):
        return NormalizedCostInputs(
            permutation=permutation,
            region=descriptor.region,
            provisioned_gib=payload.provisioned_gib,
            used_gib=payload.used_gib,
            data_retrieved_gib=payload.data_retrieved_gib,
            provisioned_iops=payload.provisioned_iops,
            provisioned_throughput_mibps=payload.provisioned_throughput_mibps,
            snapshot_gib=payload.snapshot_gib,
            write_operations=payload.write_operations,
            read_operations=payload.read_operations,
            list_operations=payload.list_operations,
            other_operations=payload.other_operations,
            hours_in_period=hours,
        )

    if isinstance(payload, ManagedDiskPayload):
        return NormalizedCostInputs(
            permutation=permutation,
            region=descriptor.region,
            provisioned_gib=payload.disk_size_gib,
            provisioned_iops=payload.provisioned_iops,
            provisioned_throughput_mibps=payload.provisioned_throughput_mibps,
            snapshot_gib=payload.snapshot_gib,
            other_operations=payload.transactions_per_month,
            hours_in_period=hours,
        )

    raise TypeError(f"Unhandled payload type: {type(payload).__name__}")
