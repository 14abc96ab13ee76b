"""
Domain models for cool data assumptions.

Overrides are stored per hierarchy level and may set either percentage;
CoolDataAssumptions is the fully resolved value used by a calculation.
"""
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class ValidationError(ValueError):
    """Raised when assumption values or calculation inputs are out of range."""
    pass


class AssumptionSource(str, Enum):
    """Where an effective assumption came from, most specific first."""
    METRICS = "Metrics"
    VOLUME = "Volume"
    JOB = "Job"
    GLOBAL = "Global"


# Higher number = more specific
SOURCE_PRECEDENCE = {
    AssumptionSource.GLOBAL: 0,
    AssumptionSource.JOB: 1,
    AssumptionSource.VOLUME: 2,
    AssumptionSource.METRICS: 3,
}


def _check_percent(name: str, value: Optional[float]) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{name} must be a number (got: {value!r})")
    if math.isnan(value) or not 0 <= value <= 100:
        raise ValidationError(f"{name} must be between 0 and 100 (got: {value})")


@dataclass(frozen=True)
class AssumptionOverride:
    """Explicitly stored override at one level; unset fields inherit."""
    cool_data_percent: Optional[float] = None
    cool_data_retrieval_percent: Optional[float] = None

    def __post_init__(self):
        _check_percent("cool_data_percent", self.cool_data_percent)
        _check_percent("cool_data_retrieval_percent", self.cool_data_retrieval_percent)

    @property
    def is_empty(self) -> bool:
        return self.cool_data_percent is None and self.cool_data_retrieval_percent is None

    @property
    def is_complete(self) -> bool:
        return self.cool_data_percent is not None and self.cool_data_retrieval_percent is not None

    def merged_over(self, base: "AssumptionOverride") -> "AssumptionOverride":
        """Fill unset fields from a less specific override."""
        return AssumptionOverride(
            cool_data_percent=(
                self.cool_data_percent if self.cool_data_percent is not None
                else base.cool_data_percent
            ),
            cool_data_retrieval_percent=(
                self.cool_data_retrieval_percent if self.cool_data_retrieval_percent is not None
                else base.cool_data_retrieval_percent
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cool_data_percent": self.cool_data_percent,
            "cool_data_retrieval_percent": self.cool_data_retrieval_percent,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AssumptionOverride":
        return cls(
            cool_data_percent=data.get("cool_data_percent"),
            cool_data_retrieval_percent=data.get("cool_data_retrieval_percent"),
        )


@dataclass(frozen=True)
class CoolDataAssumptions:
    """Effective cool data assumptions for one (job, resource) pair."""
    cool_data_percent: float
    cool_data_retrieval_percent: float
    source: AssumptionSource

    def __post_init__(self):
        if self.cool_data_percent is None or self.cool_data_retrieval_percent is None:
            raise ValidationError("Effective assumptions require both percentages")
        _check_percent("cool_data_percent", self.cool_data_percent)
        _check_percent("cool_data_retrieval_percent", self.cool_data_retrieval_percent)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "cool_data_percent": self.cool_data_percent,
            "cool_data_retrieval_percent": self.cool_data_retrieval_percent,
            "source": self.source.value,
        }
