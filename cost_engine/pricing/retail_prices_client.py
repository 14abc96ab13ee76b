"""
Azure Retail Prices API client.
Uses the public REST API (no authentication required) and follows
NextPageLink pagination until the result set is exhausted.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple
import logging
import httpx

from cost_engine.core.config import config
from cost_engine.resilience.circuit_breaker import CircuitBreaker, get_circuit_breaker


logger = logging.getLogger(__name__)


class FetchError(Exception):
    """Raised when a unit price could not be fetched."""
    pass


class PricingSourceError(FetchError):
    """Raised when the retail prices API cannot be queried."""
    pass


def _quote(value: str) -> str:
    """Quote a value as an OData string literal."""
    return "'" + value.replace("'", "''") + "'"


def normalize_region(region: str) -> str:
    """
    Normalize an Azure region to its ARM name.

    Args:
        region: Azure region (e.g., 'eastus' or 'East US')

    Returns:
        Normalized region name (lowercase, no spaces)
    """
    return (region or "").lower().replace(" ", "")


@dataclass(frozen=True)
class PricingQuery:
    """Filter for one retail prices query; unset fields are not filtered on."""
    region: str
    service_family: Optional[str] = "Storage"
    service_name: Optional[str] = None
    product_name: Optional[str] = None
    sku_name: Optional[str] = None
    meter_name: Optional[str] = None
    sku_contains: Tuple[str, ...] = ()
    meter_contains: Tuple[str, ...] = ()
    price_type: Optional[str] = "Consumption"

    def to_filter(self) -> str:
        """Build the OData $filter expression."""
        clauses = [f"armRegionName eq {_quote(normalize_region(self.region))}"]
        exact = (
            ("serviceFamily", self.service_family),
            ("serviceName", self.service_name),
            ("productName", self.product_name),
            ("skuName", self.sku_name),
            ("meterName", self.meter_name),
            ("priceType", self.price_type),
        )
        for field_name, value in exact:
            if value:
                clauses.append(f"{field_name} eq {_quote(value)}")
        for value in self.sku_contains:
            clauses.append(f"contains(skuName, {_quote(value)})")
        for value in self.meter_contains:
            clauses.append(f"contains(meterName, {_quote(value)})")
        return " and ".join(clauses)


@dataclass(frozen=True)
class RetailPriceItem:
    """One meter returned by the retail prices API."""
    meter_name: str
    retail_price: float
    unit_of_measure: str
    sku_name: str
    product_name: str = ""
    service_name: str = ""
    region: str = ""
    currency: str = "USD"
    price_type: str = "Consumption"
    tier_minimum_units: float = 0.0

    @classmethod
    def from_api(cls, item: Dict[str, Any]) -> "RetailPriceItem":
        return cls(
            meter_name=item.get("meterName", ""),
            retail_price=float(item.get("retailPrice", item.get("unitPrice", 0.0))),
            unit_of_measure=item.get("unitOfMeasure", ""),
            sku_name=item.get("skuName", ""),
            product_name=item.get("productName", ""),
            service_name=item.get("serviceName", ""),
            region=item.get("armRegionName", ""),
            currency=item.get("currencyCode", "USD"),
            price_type=item.get("type", "Consumption"),
            tier_minimum_units=float(item.get("tierMinimumUnits", 0.0)),
        )


class RetailPricesClient:
    """Client for querying the Azure Retail Prices API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_version: Optional[str] = None,
        timeout: Optional[float] = None,
        max_pages: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        circuit_breaker: Optional[CircuitBreaker] = None
    ):
        """
        Initialize the retail prices client.

        Args:
            base_url: API endpoint (defaults to RETAIL_PRICES_API_URL)
            api_version: API version query parameter
            timeout: Per-request timeout in seconds
            max_pages: Safety cap on followed NextPageLinks
            transport: Optional httpx transport (tests use httpx.MockTransport)
            circuit_breaker: Breaker guarding the API (defaults to the shared one)
        """
        self.base_url = base_url or config.RETAIL_PRICES_API_URL
        self.api_version = api_version or config.RETAIL_PRICES_API_VERSION
        self.timeout = timeout or config.PRICING_FETCH_TIMEOUT_SECONDS
        self.max_pages = max_pages or config.PRICING_MAX_PAGES
        self._transport = transport
        self.circuit_breaker = circuit_breaker or get_circuit_breaker("retail_prices")

    async def query(self, query: PricingQuery) -> List[RetailPriceItem]:
        """
        Fetch every item matching a query, across all result pages.

        Args:
            query: Filter to apply

        Returns:
            All matching items (possibly empty)

        Raises:
            PricingSourceError: If the circuit is open or the API call fails
        """
        if not self.circuit_breaker.allow_request():
            raise PricingSourceError("Retail prices API circuit is open; skipping request")

        odata_filter = query.to_filter()
        items: List[RetailPriceItem] = []
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                next_link: Optional[str] = self.base_url
                params: Optional[Dict[str, str]] = {
                    "api-version": self.api_version,
                    "$filter": odata_filter,
                }
                seen_links = set()
                pages = 0
                while next_link:
                    response = await client.get(next_link, params=params)
                    response.raise_for_status()
                    data = response.json()
                    pages += 1
                    items.extend(RetailPriceItem.from_api(item) for item in data.get("Items", []))

                    seen_links.add(next_link)
                    next_link = data.get("NextPageLink")
                    params = None  # NextPageLink already carries the query
                    if next_link and next_link in seen_links:
                        logger.warning(f"Retail prices pagination repeated a link; stopping after {pages} pages")
                        break
                    if next_link and pages >= self.max_pages:
                        logger.warning(
                            f"Retail prices pagination hit the {self.max_pages} page cap for filter: {odata_filter}"
                        )
                        break

        except httpx.HTTPStatusError as error:
            self.circuit_breaker.record_failure()
            logger.error(f"Retail prices API HTTP error: {error}")
            raise PricingSourceError(
                f"Failed to query retail prices: {error.response.status_code}"
            ) from error
        except httpx.RequestError as error:
            self.circuit_breaker.record_failure()
            logger.error(f"Retail prices API request error: {error}")
            raise PricingSourceError(f"Failed to connect to retail prices API: {error}") from error
        except (ValueError, KeyError, TypeError) as error:
            self.circuit_breaker.record_failure()
            logger.error(f"Error parsing retail prices response: {error}")
            raise PricingSourceError(f"Malformed retail prices response: {error}") from error

        self.circuit_breaker.record_success()
        logger.debug(f"Retail prices query returned {len(items)} items over {pages} pages: {odata_filter}")
        return items
