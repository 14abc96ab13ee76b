"""
Configuration module for loading environment variables.
Pricing, cache and assumption defaults are all overridable from the environment.
"""
import os


class Config:
    """Engine configuration loaded from environment variables."""

    # Azure Retail Prices API
    RETAIL_PRICES_API_URL: str = os.getenv(
        "RETAIL_PRICES_API_URL",
        "https://prices.azure.com/api/retail/prices"
    )
    RETAIL_PRICES_API_VERSION: str = os.getenv("RETAIL_PRICES_API_VERSION", "2023-01-01-preview")
    PRICING_FETCH_TIMEOUT_SECONDS: float = float(os.getenv("PRICING_FETCH_TIMEOUT_SECONDS", "10"))
    PRICING_MAX_PAGES: int = int(os.getenv("PRICING_MAX_PAGES", "50"))

    # Price cache
    PRICE_MEMORY_TTL_SECONDS: int = int(os.getenv("PRICE_MEMORY_TTL_SECONDS", "3600"))  # 1 hour
    PRICE_DURABLE_TTL_SECONDS: int = int(os.getenv("PRICE_DURABLE_TTL_SECONDS", "604800"))  # 7 days
    COST_ENGINE_DB_PATH: str = os.getenv("COST_ENGINE_DB_PATH", "cost_engine.db")

    # Recalculation
    RECALC_MAX_CONCURRENCY: int = int(os.getenv("RECALC_MAX_CONCURRENCY", "6"))

    # Cool data assumptions (factory global default)
    DEFAULT_COOL_DATA_PERCENT: float = float(os.getenv("DEFAULT_COOL_DATA_PERCENT", "80"))
    DEFAULT_COOL_RETRIEVAL_PERCENT: float = float(os.getenv("DEFAULT_COOL_RETRIEVAL_PERCENT", "15"))

    # Estimation
    BILLING_PERIOD_HOURS: int = int(os.getenv("BILLING_PERIOD_HOURS", "720"))  # 30 days
    DEFAULT_CURRENCY: str = os.getenv("DEFAULT_CURRENCY", "USD")

    @classmethod
    def validate(cls) -> None:
        """
        Validates that configuration values are consistent.

        Raises:
            ValueError: If any configuration value is missing or invalid.
        """
        if not cls.RETAIL_PRICES_API_URL.startswith(("http://", "https://")):
            raise ValueError(
                f"RETAIL_PRICES_API_URL must be a valid URL (got: {cls.RETAIL_PRICES_API_URL})"
            )
        if cls.PRICING_FETCH_TIMEOUT_SECONDS <= 0:
            raise ValueError("PRICING_FETCH_TIMEOUT_SECONDS must be positive")
        if cls.PRICING_MAX_PAGES < 1:
            raise ValueError("PRICING_MAX_PAGES must be at least 1")
        if cls.PRICE_MEMORY_TTL_SECONDS <= 0 or cls.PRICE_DURABLE_TTL_SECONDS <= 0:
            raise ValueError("Price cache TTLs must be positive")
        if cls.PRICE_DURABLE_TTL_SECONDS < cls.PRICE_MEMORY_TTL_SECONDS:
            raise ValueError(
                "PRICE_DURABLE_TTL_SECONDS must not be shorter than PRICE_MEMORY_TTL_SECONDS"
            )
        if cls.RECALC_MAX_CONCURRENCY < 1:
            raise ValueError("RECALC_MAX_CONCURRENCY must be at least 1")
        for name in ("DEFAULT_COOL_DATA_PERCENT", "DEFAULT_COOL_RETRIEVAL_PERCENT"):
            value = getattr(cls, name)
            if not 0 <= value <= 100:
                raise ValueError(f"{name} must be between 0 and 100 (got: {value})")
        if cls.BILLING_PERIOD_HOURS <= 0:
            raise ValueError("BILLING_PERIOD_HOURS must be positive")


config = Config()
