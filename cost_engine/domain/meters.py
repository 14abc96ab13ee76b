"""
Meter classification and unit-of-measure parsing.

Retail price items only carry human-readable names, so every fetched item is
classified once, through the rule table below, into a typed MeterKind.
"""
import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Pattern, Tuple

from cost_engine.domain.permutations import ProductFamily


# The billing month every period-scaled ("/Month") price is quoted for
HOURS_PER_BILLING_MONTH = 720.0


class MeterKind(str, Enum):
    """Billable meter categories used by the cost formulas."""
    CAPACITY = "capacity"
    DOUBLE_ENCRYPTED_CAPACITY = "double_encrypted_capacity"
    COOL_CAPACITY = "cool_capacity"
    COOL_TRANSFER = "cool_transfer"
    THROUGHPUT = "throughput"
    IOPS = "iops"
    SNAPSHOT = "snapshot"
    WRITE_OPERATIONS = "write_operations"
    READ_OPERATIONS = "read_operations"
    LIST_OPERATIONS = "list_operations"
    OTHER_OPERATIONS = "other_operations"
    DATA_RETRIEVAL = "data_retrieval"
    DISK = "disk"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class MeterRule:
    """One classification rule; `sku` is optional and both patterns use search()."""
    product_family: ProductFamily
    kind: MeterKind
    meter: Pattern
    sku: Optional[Pattern] = None

    def matches(self, sku_name: str, meter_name: str) -> bool:
        if self.sku is not None and not self.sku.search(sku_name):
            return False
        return bool(self.meter.search(meter_name))


def _rule(
    family: ProductFamily,
    kind: MeterKind,
    meter: str,
    sku: Optional[str] = None
) -> MeterRule:
    return MeterRule(
        product_family=family,
        kind=kind,
        meter=re.compile(meter, re.IGNORECASE),
        sku=re.compile(sku, re.IGNORECASE) if sku else None,
    )


_ANF = ProductFamily.AZURE_NETAPP_FILES
_FILES = ProductFamily.AZURE_FILES
_DISK = ProductFamily.MANAGED_DISK

# Order matters: the first matching rule wins
METER_RULES: Tuple[MeterRule, ...] = (
    # Azure NetApp Files
    _rule(_ANF, MeterKind.COOL_TRANSFER, r"\btransfer\b"),
    _rule(_ANF, MeterKind.COOL_CAPACITY, r"\bcool\b.*\bcapacity\b"),
    _rule(_ANF, MeterKind.COOL_CAPACITY, r"\bcapacity\b", sku=r"\bcool access\b"),
    _rule(_ANF, MeterKind.DOUBLE_ENCRYPTED_CAPACITY, r"\bdouble encrypt"),
    _rule(_ANF, MeterKind.THROUGHPUT, r"\bthroughput\b"),
    _rule(_ANF, MeterKind.CAPACITY, r"\bcapacity\b"),
    # Azure Files
    _rule(_FILES, MeterKind.SNAPSHOT, r"\bsnapshot"),
    _rule(_FILES, MeterKind.IOPS, r"\bprovisioned iops\b"),
    _rule(_FILES, MeterKind.THROUGHPUT, r"\bprovisioned (throughput|mib)"),
    _rule(_FILES, MeterKind.CAPACITY, r"\bdata stored\b|\bprovisioned\b"),
    _rule(_FILES, MeterKind.WRITE_OPERATIONS, r"\bwrite operations\b"),
    _rule(_FILES, MeterKind.READ_OPERATIONS, r"\bread operations\b"),
    _rule(_FILES, MeterKind.LIST_OPERATIONS, r"\blist\b|\bcreate container\b"),
    _rule(_FILES, MeterKind.DATA_RETRIEVAL, r"\bdata retrieval\b"),
    _rule(_FILES, MeterKind.OTHER_OPERATIONS, r"\boperations\b|\bprotocol\b"),
    # Managed disks
    _rule(_DISK, MeterKind.SNAPSHOT, r"\bsnapshot"),
    _rule(_DISK, MeterKind.UNKNOWN, r"\bburst"),
    _rule(_DISK, MeterKind.IOPS, r"\biops\b"),
    _rule(_DISK, MeterKind.THROUGHPUT, r"\bthroughput\b|\bmbps\b|\bmib/s\b"),
    _rule(_DISK, MeterKind.OTHER_OPERATIONS, r"\boperations\b|\btransactions\b"),
    _rule(_DISK, MeterKind.DISK, r"\b[PES]\d{1,2}\b"),
    _rule(_DISK, MeterKind.CAPACITY, r"\bcapacity\b|\bprovisioned\b"),
)

_RULES_BY_FAMILY: Dict[ProductFamily, List[MeterRule]] = {}
for _meter_rule in METER_RULES:
    _RULES_BY_FAMILY.setdefault(_meter_rule.product_family, []).append(_meter_rule)


def classify_meter(product_family: ProductFamily, sku_name: str, meter_name: str) -> MeterKind:
    """
    Classify a retail price item.

    Args:
        product_family: Family the item was queried for
        sku_name: Item skuName
        meter_name: Item meterName

    Returns:
        The kind of the first matching rule, or MeterKind.UNKNOWN
    """
    for rule in _RULES_BY_FAMILY.get(product_family, []):
        if rule.matches(sku_name or "", meter_name or ""):
            return rule.kind
    return MeterKind.UNKNOWN


_UOM_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([KM])?\b\s*(.*?)\s*$", re.IGNORECASE)
_PERIODS = {
    "hour": "hour",
    "hours": "hour",
    "hr": "hour",
    "month": "month",
    "months": "month",
    "day": "day",
    "days": "day",
}
_MULTIPLIERS = {"K": 1_000.0, "M": 1_000_000.0}


@dataclass(frozen=True)
class UnitOfMeasure:
    """Parsed retail unit of measure such as '1 GiB/Hour', '1 GB/Month' or '10K'."""
    raw: str
    quantity: float
    unit: str
    period: Optional[str]

    @classmethod
    def parse(cls, raw: str) -> "UnitOfMeasure":
        text = (raw or "").strip()
        match = _UOM_PATTERN.match(text)
        if not match:
            quantity, remainder = 1.0, text
        else:
            quantity = float(match.group(1)) * _MULTIPLIERS.get((match.group(2) or "").upper(), 1.0)
            remainder = match.group(3)

        parts = [part.strip() for part in remainder.split("/")]
        period = None
        if parts and parts[-1].lower() in _PERIODS:
            period = _PERIODS[parts.pop().lower()]
        unit = "/".join(part for part in parts if part)
        return cls(raw=text, quantity=quantity or 1.0, unit=unit, period=period)

    def period_factor(self, hours_in_period: float) -> float:
        """
        Scale factor from the quoted period to the billing period.

        Hourly prices multiply by the billing hours; monthly prices are
        already period-scaled and only adjust for non-default periods.
        """
        if self.period == "hour":
            return hours_in_period
        if self.period == "day":
            return hours_in_period / 24.0
        if self.period == "month":
            return hours_in_period / HOURS_PER_BILLING_MONTH
        return 1.0

    def cost(self, quantity: float, unit_price: float, hours_in_period: float) -> float:
        """Cost of `quantity` units at `unit_price` for the billing period."""
        return quantity * (unit_price / self.quantity) * self.period_factor(hours_in_period)
