"""
Domain models for cost estimation.
Defines normalized calculation inputs, cost components and cost estimates.
"""
from typing import List, Dict, Any, Optional
from dataclasses import dataclass, field
from datetime import datetime

from cost_engine.domain.permutations import Permutation


DEFAULT_BILLING_PERIOD_HOURS = 720.0


def _rounded(value: float, precision: Optional[int]) -> float:
    return value if precision is None else round(value, precision)


@dataclass(frozen=True)
class NormalizedCostInputs:
    """
    Per-resource inputs for one calculation.

    Capacity split and transfer volumes are optional: when absent the
    evaluator derives them from the effective cool data assumptions.
    """
    permutation: Permutation
    region: str
    provisioned_gib: float
    used_gib: Optional[float] = None
    hot_capacity_gib: Optional[float] = None
    cool_capacity_gib: Optional[float] = None
    data_tiered_gib: Optional[float] = None
    data_retrieved_gib: Optional[float] = None
    required_throughput_mibps: float = 0.0
    provisioned_iops: float = 0.0
    provisioned_throughput_mibps: float = 0.0
    snapshot_gib: float = 0.0
    write_operations: float = 0.0
    read_operations: float = 0.0
    list_operations: float = 0.0
    other_operations: float = 0.0
    hours_in_period: float = DEFAULT_BILLING_PERIOD_HOURS


@dataclass(frozen=True)
class CostComponent:
    """A single itemized charge."""
    name: str
    type: str  # e.g. "capacity_hot", "throughput", "cool_retrieval"
    quantity: float
    unit: str
    unit_price: float
    cost: float
    description: str = ""

    def to_dict(self, precision: Optional[int] = None) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization; `precision` rounds the cost."""
        return {
            "Name": self.name,
            "Type": self.type,
            "Quantity": self.quantity,
            "Unit": self.unit,
            "UnitPrice": self.unit_price,
            "Cost": _rounded(self.cost, precision),
            "Description": self.description,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CostComponent":
        return cls(
            name=data["Name"],
            type=data["Type"],
            quantity=data["Quantity"],
            unit=data["Unit"],
            unit_price=data["UnitPrice"],
            cost=data["Cost"],
            description=data.get("Description", ""),
        )


@dataclass(frozen=True)
class CostEstimate:
    """Represents a complete cost estimate for one resource and billing period."""
    permutation_id: int
    permutation_name: str
    region: str
    total_cost: float
    currency: str
    components: List[CostComponent]
    confidence: int
    notes: List[str]
    warnings: List[str]
    job_id: Optional[str] = None
    resource_id: Optional[str] = None
    assumptions_source: Optional[str] = None
    estimated_at: datetime = field(default_factory=datetime.utcnow, compare=False)

    def to_dict(self, precision: Optional[int] = None) -> Dict[str, Any]:
        """
        Convert to dictionary for JSON serialization.

        Stored estimates keep full precision; responses pass `precision` to
        round the monetary fields.
        """
        return {
            "JobId": self.job_id,
            "ResourceId": self.resource_id,
            "PermutationId": self.permutation_id,
            "PermutationName": self.permutation_name,
            "Region": self.region,
            "TotalCost": _rounded(self.total_cost, precision),
            "Currency": self.currency,
            "CostComponents": [component.to_dict(precision) for component in self.components],
            "ConfidenceLevel": self.confidence,
            "Notes": list(self.notes),
            "Warnings": list(self.warnings),
            "AssumptionsSource": self.assumptions_source,
            "EstimatedAt": self.estimated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CostEstimate":
        return cls(
            permutation_id=data["PermutationId"],
            permutation_name=data["PermutationName"],
            region=data["Region"],
            total_cost=data["TotalCost"],
            currency=data["Currency"],
            components=[CostComponent.from_dict(item) for item in data.get("CostComponents", [])],
            confidence=data["ConfidenceLevel"],
            notes=list(data.get("Notes", [])),
            warnings=list(data.get("Warnings", [])),
            job_id=data.get("JobId"),
            resource_id=data.get("ResourceId"),
            assumptions_source=data.get("AssumptionsSource"),
            estimated_at=datetime.fromisoformat(data["EstimatedAt"]),
        )
