"""
Normalized resource descriptors supplied by discovery.

A descriptor is a closed tagged variant: `product_family` selects exactly one
payload type.
"""
from dataclasses import dataclass
from typing import Dict, Optional, Type, Union

from cost_engine.domain.assumption_models import ValidationError
from cost_engine.domain.permutations import ProductFamily


# Key sources meaning "platform-managed keys" (case-insensitive)
PLATFORM_KEY_SOURCES = frozenset({
    "",
    "microsoft.netapp",
    "microsoft.storage",
    "microsoft.compute",
    "platform",
    "platformmanaged",
    "encryptionatrestwithplatformkey",
})


def is_double_encrypted(encryption_key_source: Optional[str]) -> bool:
    """Double encryption is inferred when keys are not the platform-managed default."""
    return (encryption_key_source or "").strip().lower() not in PLATFORM_KEY_SOURCES


@dataclass(frozen=True)
class CoolTierTelemetry:
    """Measured cool tier behaviour for one billing period."""
    cool_tier_size_gib: float = 0.0
    cool_data_read_gib: float = 0.0
    cool_data_write_gib: float = 0.0

    @property
    def available(self) -> bool:
        return self.cool_tier_size_gib > 0


@dataclass(frozen=True)
class AnfVolumePayload:
    service_level: str
    provisioned_gib: float
    cool_access: bool = False
    encryption_key_source: Optional[str] = None
    required_throughput_mibps: float = 0.0
    telemetry: Optional[CoolTierTelemetry] = None

    @property
    def double_encryption(self) -> bool:
        return is_double_encrypted(self.encryption_key_source)


@dataclass(frozen=True)
class AzureFilesSharePayload:
    access_tier: str
    account_sku: str
    provisioned_gib: float
    used_gib: Optional[float] = None
    provisioned_iops: float = 0.0
    provisioned_throughput_mibps: float = 0.0
    snapshot_gib: float = 0.0
    write_operations: float = 0.0
    read_operations: float = 0.0
    list_operations: float = 0.0
    other_operations: float = 0.0
    data_retrieved_gib: float = 0.0


@dataclass(frozen=True)
class ManagedDiskPayload:
    disk_sku: str  # e.g. "Premium_LRS", "PremiumV2_LRS"
    disk_size_gib: float
    provisioned_iops: float = 0.0
    provisioned_throughput_mibps: float = 0.0
    snapshot_gib: float = 0.0
    transactions_per_month: float = 0.0


ResourcePayload = Union[AnfVolumePayload, AzureFilesSharePayload, ManagedDiskPayload]

PAYLOAD_TYPES: Dict[ProductFamily, Type] = {
    ProductFamily.AZURE_NETAPP_FILES: AnfVolumePayload,
    ProductFamily.AZURE_FILES: AzureFilesSharePayload,
    ProductFamily.MANAGED_DISK: ManagedDiskPayload,
}


@dataclass(frozen=True)
class ResourceDescriptor:
    """One discovered storage resource within a job."""
    job_id: str
    resource_id: str
    name: str
    region: str
    product_family: ProductFamily
    payload: ResourcePayload

    def __post_init__(self):
        expected = PAYLOAD_TYPES.get(self.product_family)
        if expected is None or not isinstance(self.payload, expected):
            raise ValidationError(
                f"Resource {self.resource_id}: {type(self.payload).__name__} "
                f"is not a valid payload for {self.product_family}"
            )
        if not self.region:
            raise ValidationError(f"Resource {self.resource_id}: region is required")

    @property
    def cool_access(self) -> bool:
        """Whether the resource's cost depends on cool data assumptions."""
        return isinstance(self.payload, AnfVolumePayload) and self.payload.cool_access

    @property
    def telemetry(self) -> Optional[CoolTierTelemetry]:
        if isinstance(self.payload, AnfVolumePayload):
            return self.payload.telemetry
        return None
