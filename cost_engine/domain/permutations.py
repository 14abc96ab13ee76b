"""
Permutation catalog.

A permutation is one fully specified pricing model: product family, tier level,
redundancy and the cool access / double encryption flags. Every supported
configuration maps to exactly one permutation; everything else is rejected.
"""
import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple, Any


class ProductFamily(str, Enum):
    """Storage product families the engine can price."""
    AZURE_NETAPP_FILES = "AzureNetAppFiles"
    AZURE_FILES = "AzureFiles"
    MANAGED_DISK = "ManagedDisk"


# Platform-wide capacity rules
ANF_MINIMUM_CAPACITY_GIB = 50.0
COOL_ACCESS_MINIMUM_CAPACITY_GIB = 2400.0
FILES_PREMIUM_MINIMUM_CAPACITY_GIB = 100.0

REDUNDANCIES = ("LRS", "ZRS", "GRS", "GZRS")
_REDUNDANCY_ALIASES = {
    "LRS": "LRS",
    "ZRS": "ZRS",
    "GRS": "GRS",
    "RAGRS": "GRS",
    "GZRS": "GZRS",
    "RAGZRS": "GZRS",
}


class UnsupportedCombinationError(ValueError):
    """Raised when a configuration does not map to any permutation."""

    def __init__(self, axis: str, message: str):
        super().__init__(message)
        self.axis = axis


@dataclass(frozen=True)
class Permutation:
    """Immutable pricing model selected by a resource's configuration axes."""
    id: int
    name: str
    product_family: ProductFamily
    tier_level: str
    redundancy: Optional[str] = None
    cool_access: bool = False
    double_encryption: bool = False
    cool_access_supported: bool = False
    double_encryption_supported: bool = False
    throughput_metered: bool = False
    base_throughput_mibps: float = 0.0  # flat, throughput-metered tiers only
    throughput_per_tib_mibps: float = 0.0
    minimum_capacity_gib: float = 0.0

    def included_throughput_mibps(self, provisioned_gib: float) -> float:
        """Throughput included at no extra charge for the given capacity."""
        if self.throughput_metered:
            return self.base_throughput_mibps
        return (provisioned_gib / 1024.0) * self.throughput_per_tib_mibps

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "name": self.name,
            "product_family": self.product_family.value,
            "tier_level": self.tier_level,
            "redundancy": self.redundancy,
            "cool_access": self.cool_access,
            "double_encryption": self.double_encryption,
            "cool_access_supported": self.cool_access_supported,
            "double_encryption_supported": self.double_encryption_supported,
            "throughput_metered": self.throughput_metered,
        }


@dataclass(frozen=True)
class _TierCapabilities:
    redundancies: Tuple[Optional[str], ...]
    cool_access_supported: bool = False
    double_encryption_supported: bool = False


# Tier capability mask: which axes a tier accepts at all
_TIERS: Dict[ProductFamily, Dict[str, _TierCapabilities]] = {
    ProductFamily.AZURE_NETAPP_FILES: {
        "Standard": _TierCapabilities((None,), True, True),
        "Premium": _TierCapabilities((None,), True, True),
        "Ultra": _TierCapabilities((None,), True, True),
        "Flexible": _TierCapabilities((None,), True, False),
    },
    ProductFamily.AZURE_FILES: {
        "Hot": _TierCapabilities(REDUNDANCIES),
        "Cool": _TierCapabilities(REDUNDANCIES),
        "TransactionOptimized": _TierCapabilities(REDUNDANCIES),
        "Premium": _TierCapabilities(("LRS", "ZRS")),
        "ProvisionedV2SSD": _TierCapabilities(("LRS", "ZRS")),
        "ProvisionedV2HDD": _TierCapabilities(REDUNDANCIES),
    },
    ProductFamily.MANAGED_DISK: {
        "StandardHDD": _TierCapabilities(("LRS",)),
        "StandardSSD": _TierCapabilities(("LRS", "ZRS")),
        "PremiumSSD": _TierCapabilities(("LRS", "ZRS")),
        "PremiumSSDv2": _TierCapabilities(("LRS",)),
        "UltraDisk": _TierCapabilities(("LRS",)),
    },
}

# Spellings seen in discovery data, compared after stripping case and separators
_TIER_ALIASES: Dict[ProductFamily, Dict[str, str]] = {
    ProductFamily.AZURE_NETAPP_FILES: {
        "standard": "Standard",
        "premium": "Premium",
        "ultra": "Ultra",
        "flexible": "Flexible",
        "flexibleservicelevel": "Flexible",
    },
    ProductFamily.AZURE_FILES: {
        "hot": "Hot",
        "cool": "Cool",
        "transactionoptimized": "TransactionOptimized",
        "premium": "Premium",
        "provisionedv1": "Premium",
        "provisionedv2ssd": "ProvisionedV2SSD",
        "ssd": "ProvisionedV2SSD",
        "provisionedv2hdd": "ProvisionedV2HDD",
        "hdd": "ProvisionedV2HDD",
    },
    ProductFamily.MANAGED_DISK: {
        "standard": "StandardHDD",
        "standardhdd": "StandardHDD",
        "standardssd": "StandardSSD",
        "premium": "PremiumSSD",
        "premiumssd": "PremiumSSD",
        "premiumv2": "PremiumSSDv2",
        "premiumssdv2": "PremiumSSDv2",
        "ultra": "UltraDisk",
        "ultrassd": "UltraDisk",
        "ultradisk": "UltraDisk",
    },
}


def _anf(
    permutation_id: int,
    tier: str,
    per_tib: float,
    cool: bool = False,
    double: bool = False
) -> Permutation:
    if cool:
        name = f"ANF {tier} with Cool Access"
    elif double:
        name = f"ANF {tier} with Double Encryption"
    else:
        name = f"ANF {tier} (Regular)"
    capabilities = _TIERS[ProductFamily.AZURE_NETAPP_FILES][tier]
    flexible = tier == "Flexible"
    return Permutation(
        id=permutation_id,
        name=name,
        product_family=ProductFamily.AZURE_NETAPP_FILES,
        tier_level=tier,
        cool_access=cool,
        double_encryption=double,
        cool_access_supported=capabilities.cool_access_supported,
        double_encryption_supported=capabilities.double_encryption_supported,
        throughput_metered=flexible,
        base_throughput_mibps=128.0 if flexible else 0.0,
        throughput_per_tib_mibps=per_tib,
        minimum_capacity_gib=ANF_MINIMUM_CAPACITY_GIB,
    )


def _files(permutation_id: int, tier: str, label: str, redundancy: str) -> Permutation:
    minimum = FILES_PREMIUM_MINIMUM_CAPACITY_GIB if tier == "Premium" else 0.0
    return Permutation(
        id=permutation_id,
        name=f"Azure Files {label} {redundancy}",
        product_family=ProductFamily.AZURE_FILES,
        tier_level=tier,
        redundancy=redundancy,
        minimum_capacity_gib=minimum,
    )


def _disk(permutation_id: int, tier: str, label: str, redundancy: str) -> Permutation:
    return Permutation(
        id=permutation_id,
        name=f"Managed Disk {label} {redundancy}",
        product_family=ProductFamily.MANAGED_DISK,
        tier_level=tier,
        redundancy=redundancy,
    )


# Ids are stable: never renumber, only append
_PERMUTATIONS: Tuple[Permutation, ...] = (
    _anf(1, "Standard", 16.0),
    _anf(2, "Standard", 16.0, double=True),
    _anf(3, "Standard", 16.0, cool=True),  # no throughput reduction with cool access
    _anf(4, "Premium", 64.0),
    _anf(5, "Premium", 64.0, double=True),
    _anf(6, "Premium", 36.0, cool=True),
    _anf(7, "Ultra", 128.0),
    _anf(8, "Ultra", 128.0, double=True),
    _anf(9, "Ultra", 68.0, cool=True),
    _anf(10, "Flexible", 0.0),
    _anf(11, "Flexible", 0.0, cool=True),
    _files(12, "Hot", "Hot", "LRS"),
    _files(13, "Hot", "Hot", "ZRS"),
    _files(14, "Hot", "Hot", "GRS"),
    _files(15, "Hot", "Hot", "GZRS"),
    _files(16, "Cool", "Cool", "LRS"),
    _files(17, "Cool", "Cool", "ZRS"),
    _files(18, "Cool", "Cool", "GRS"),
    _files(19, "Cool", "Cool", "GZRS"),
    _files(20, "TransactionOptimized", "Transaction Optimized", "LRS"),
    _files(21, "TransactionOptimized", "Transaction Optimized", "ZRS"),
    _files(22, "TransactionOptimized", "Transaction Optimized", "GRS"),
    _files(23, "TransactionOptimized", "Transaction Optimized", "GZRS"),
    _files(24, "Premium", "Premium (Provisioned v1)", "LRS"),
    _files(25, "Premium", "Premium (Provisioned v1)", "ZRS"),
    _files(26, "ProvisionedV2SSD", "Provisioned v2 SSD", "LRS"),
    _files(27, "ProvisionedV2SSD", "Provisioned v2 SSD", "ZRS"),
    _files(28, "ProvisionedV2HDD", "Provisioned v2 HDD", "LRS"),
    _files(29, "ProvisionedV2HDD", "Provisioned v2 HDD", "ZRS"),
    _files(30, "ProvisionedV2HDD", "Provisioned v2 HDD", "GRS"),
    _files(31, "ProvisionedV2HDD", "Provisioned v2 HDD", "GZRS"),
    _disk(32, "StandardHDD", "Standard HDD", "LRS"),
    _disk(33, "StandardSSD", "Standard SSD", "LRS"),
    _disk(34, "StandardSSD", "Standard SSD", "ZRS"),
    _disk(35, "PremiumSSD", "Premium SSD", "LRS"),
    _disk(36, "PremiumSSD", "Premium SSD", "ZRS"),
    _disk(37, "PremiumSSDv2", "Premium SSD v2", "LRS"),
    _disk(38, "UltraDisk", "Ultra Disk", "LRS"),
)

_PermutationKey = Tuple[ProductFamily, str, Optional[str], bool, bool]


def _squash(value: str) -> str:
    return re.sub(r"[\s_\-]+", "", value).lower()


def normalize_redundancy(value: Optional[str]) -> Optional[str]:
    """
    Normalize a redundancy or account SKU string.

    Accepts bare redundancies ("zrs") and storage account SKUs
    ("Standard_RAGRS"); read-access geo variants collapse onto GRS/GZRS.

    Returns:
        Canonical redundancy, or None if the value carries none
    """
    if not value:
        return None
    token = re.split(r"[_\s]+", value.strip())[-1].upper()
    return _REDUNDANCY_ALIASES.get(token)


def _split_redundancy(tier_level: str) -> Tuple[str, Optional[str]]:
    """Split a trailing redundancy off a tier string such as 'Premium_LRS' or 'Hot ZRS'."""
    tokens = [token for token in re.split(r"[_\s]+", tier_level.strip()) if token]
    if len(tokens) > 1:
        redundancy = _REDUNDANCY_ALIASES.get(tokens[-1].upper())
        if redundancy:
            return " ".join(tokens[:-1]), redundancy
    return tier_level, None


class PermutationCatalog:
    """Static lookup from configuration axes to permutations."""

    def __init__(self, permutations: Tuple[Permutation, ...] = _PERMUTATIONS):
        self._by_id: Dict[int, Permutation] = {}
        self._by_key: Dict[_PermutationKey, Permutation] = {}
        for permutation in permutations:
            key = (
                permutation.product_family,
                permutation.tier_level,
                permutation.redundancy,
                permutation.cool_access,
                permutation.double_encryption,
            )
            if permutation.id in self._by_id or key in self._by_key:
                raise ValueError(f"Duplicate permutation definition: {permutation.name}")
            self._by_id[permutation.id] = permutation
            self._by_key[key] = permutation

    def identify(
        self,
        product_family,
        tier_level: str,
        cool_access: bool = False,
        double_encryption: bool = False,
        redundancy: Optional[str] = None
    ) -> Permutation:
        """
        Map a resource configuration to its permutation.

        Args:
            product_family: ProductFamily or its string value
            tier_level: Service/tier level; may carry a trailing redundancy
                (e.g. 'Premium_LRS', 'Hot ZRS')
            cool_access: Whether cool access is enabled
            double_encryption: Whether double encryption is enabled
            redundancy: Redundancy or account SKU (Azure Files, Managed Disk)

        Returns:
            The matching Permutation

        Raises:
            UnsupportedCombinationError: If any axis is not supported; the
                error's `axis` names the offending axis
        """
        try:
            family = ProductFamily(product_family)
        except ValueError as error:
            raise UnsupportedCombinationError(
                "product_family", f"Unknown product family: {product_family}"
            ) from error

        tier_text, embedded_redundancy = _split_redundancy(tier_level or "")
        tier = _TIER_ALIASES[family].get(_squash(tier_text))
        if tier is None:
            raise UnsupportedCombinationError(
                "tier_level", f"Unknown {family.value} tier level: {tier_level!r}"
            )
        capabilities = _TIERS[family][tier]

        if double_encryption and not capabilities.double_encryption_supported:
            raise UnsupportedCombinationError(
                "double_encryption",
                f"{family.value} {tier} does not support double encryption"
            )
        if cool_access and not capabilities.cool_access_supported:
            raise UnsupportedCombinationError(
                "cool_access", f"{family.value} {tier} does not support cool access"
            )
        if cool_access and double_encryption:
            raise UnsupportedCombinationError(
                "double_encryption", "Double encryption cannot be combined with cool access"
            )

        if capabilities.redundancies == (None,):
            resolved_redundancy = None
        else:
            resolved_redundancy = normalize_redundancy(redundancy) or embedded_redundancy
            if resolved_redundancy is None:
                raise UnsupportedCombinationError(
                    "redundancy", f"{family.value} {tier} requires a redundancy"
                )
            if resolved_redundancy not in capabilities.redundancies:
                raise UnsupportedCombinationError(
                    "redundancy",
                    f"{family.value} {tier} is not available with {resolved_redundancy}"
                )

        key = (family, tier, resolved_redundancy, bool(cool_access), bool(double_encryption))
        permutation = self._by_key.get(key)
        if permutation is None:
            raise UnsupportedCombinationError(
                "tier_level", f"No permutation defined for {family.value} {tier}"
            )
        return permutation

    def get(self, permutation_id: int) -> Permutation:
        """Look up a permutation by id (KeyError if unknown)."""
        return self._by_id[permutation_id]

    def all(self) -> List[Permutation]:
        return [self._by_id[key] for key in sorted(self._by_id)]

    def for_family(self, product_family: ProductFamily) -> List[Permutation]:
        return [p for p in self.all() if p.product_family == product_family]


_catalog: Optional[PermutationCatalog] = None


def get_permutation_catalog() -> PermutationCatalog:
    """Get or create the process-wide permutation catalog."""
    global _catalog
    if _catalog is None:
        _catalog = PermutationCatalog()
    return _catalog
