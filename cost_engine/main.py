"""
Main FastAPI application bootstrap.
Validates configuration and includes routers.
"""
import logging

from fastapi import FastAPI

from cost_engine.core.config import config
from cost_engine.api.assumptions import router as assumptions_router
from cost_engine.api.estimates import router as estimates_router


logger = logging.getLogger(__name__)

# Validate configuration on startup
try:
    config.validate()
except ValueError as error:
    raise RuntimeError(f"Configuration error: {error}") from error

logger.info(
    "Pricing from %s (memory TTL %ss, durable TTL %ss)",
    config.RETAIL_PRICES_API_URL,
    config.PRICE_MEMORY_TTL_SECONDS,
    config.PRICE_DURABLE_TTL_SECONDS
)


app = FastAPI(
    title="Storage Cost Engine",
    description="Permutation-based cost estimation for Azure storage resources",
)

app.include_router(estimates_router)
app.include_router(assumptions_router)


@app.get("/health")
async def health():
    return {"status": "ok"}
