"""
Domain models for cached unit prices.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class FetchedPrice:
    """A unit price as returned by the pricing source, before caching."""
    unit_price: float
    unit_of_measure: str
    currency: str = "USD"
    meter_name: str = ""
    sku_name: str = ""


@dataclass(frozen=True)
class PriceCacheEntry:
    """
    Cached unit price for one (region, meter_key).

    Entries are replaced whole, never partially updated.
    """
    region: str
    meter_key: str
    unit_price: float
    unit_of_measure: str
    fetched_at: datetime
    expires_at: datetime
    currency: str = "USD"
    meter_name: str = ""

    @classmethod
    def from_fetched(
        cls,
        region: str,
        meter_key: str,
        price: FetchedPrice,
        fetched_at: datetime,
        ttl: timedelta
    ) -> "PriceCacheEntry":
        return cls(
            region=region,
            meter_key=meter_key,
            unit_price=price.unit_price,
            unit_of_measure=price.unit_of_measure,
            fetched_at=fetched_at,
            expires_at=fetched_at + ttl,
            currency=price.currency,
            meter_name=price.meter_name,
        )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or datetime.utcnow()) >= self.expires_at

    def with_expiry(self, expires_at: datetime) -> "PriceCacheEntry":
        """Copy of this entry with a different expiry (memory tier bound)."""
        return PriceCacheEntry(
            region=self.region,
            meter_key=self.meter_key,
            unit_price=self.unit_price,
            unit_of_measure=self.unit_of_measure,
            fetched_at=self.fetched_at,
            expires_at=expires_at,
            currency=self.currency,
            meter_name=self.meter_name,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "region": self.region,
            "meter_key": self.meter_key,
            "unit_price": self.unit_price,
            "unit_of_measure": self.unit_of_measure,
            "currency": self.currency,
            "meter_name": self.meter_name,
            "fetched_at": self.fetched_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
        }
