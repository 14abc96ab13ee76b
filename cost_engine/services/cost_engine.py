"""
Cost engine facade.

Wires the catalog, price cache, resolvers, evaluator and stores together once
per process and exposes the operations the API layer calls.
"""
import logging
from typing import List, Mapping, Optional

from cost_engine.core.config import config
from cost_engine.domain.assumption_models import (
    AssumptionOverride,
    AssumptionSource,
    CoolDataAssumptions,
)
from cost_engine.domain.cost_models import CostEstimate, NormalizedCostInputs
from cost_engine.domain.meters import MeterKind
from cost_engine.domain.permutations import Permutation, PermutationCatalog, get_permutation_catalog
from cost_engine.domain.price_models import PriceCacheEntry
from cost_engine.domain.resource_models import ResourceDescriptor
from cost_engine.pricing.price_cache import PriceCache
from cost_engine.pricing.price_resolver import PriceResolver
from cost_engine.pricing.retail_prices_client import RetailPricesClient
from cost_engine.services.assumptions_resolver import AssumptionsResolver
from cost_engine.services.formula_evaluator import FormulaEvaluator
from cost_engine.services.recalculation import RecalculationOrchestrator, RecalculationSummary
from cost_engine.storage.assumption_store import SqliteAssumptionStore
from cost_engine.storage.estimate_store import SqliteEstimateStore
from cost_engine.storage.price_store import SqlitePriceStore
from cost_engine.storage.resource_directory import InMemoryResourceDirectory


logger = logging.getLogger(__name__)


class CostEngine:
    """Entry point for estimation, assumption management and recalculation."""

    def __init__(
        self,
        catalog: PermutationCatalog,
        price_cache: PriceCache,
        price_resolver: PriceResolver,
        evaluator: FormulaEvaluator,
        assumptions: AssumptionsResolver,
        orchestrator: RecalculationOrchestrator,
        estimate_store,
        directory
    ):
        self.catalog = catalog
        self.price_cache = price_cache
        self.price_resolver = price_resolver
        self.evaluator = evaluator
        self.assumptions = assumptions
        self.orchestrator = orchestrator
        self.estimate_store = estimate_store
        self.directory = directory
        # Assumption changes recalculate the affected estimates
        self.assumptions.recalculation_hook = orchestrator.recalculate_scope

    # Permutations and evaluation

    def identify(
        self,
        product_family,
        tier_level: str,
        cool_access: bool = False,
        double_encryption: bool = False,
        redundancy: Optional[str] = None
    ) -> Permutation:
        return self.catalog.identify(
            product_family,
            tier_level,
            cool_access=cool_access,
            double_encryption=double_encryption,
            redundancy=redundancy,
        )

    def evaluate(
        self,
        permutation: Permutation,
        inputs: NormalizedCostInputs,
        prices: Mapping[MeterKind, PriceCacheEntry],
        assumptions: CoolDataAssumptions
    ) -> CostEstimate:
        """Pure evaluation with caller-supplied prices and assumptions."""
        return self.evaluator.evaluate(permutation, inputs, prices, assumptions)

    async def estimate_inputs(
        self,
        inputs: NormalizedCostInputs,
        assumptions: Optional[CoolDataAssumptions] = None
    ) -> CostEstimate:
        """
        Estimate ad-hoc inputs that are not tied to a discovered resource.

        Prices come through the cache; without explicit assumptions the
        global default applies.
        """
        if assumptions is None:
            default = self.assumptions.get_global_override()
            assumptions = CoolDataAssumptions(
                cool_data_percent=default.cool_data_percent,
                cool_data_retrieval_percent=default.cool_data_retrieval_percent,
                source=AssumptionSource.GLOBAL,
            )
        resolved = await self.price_resolver.resolve(inputs)
        return self.evaluator.evaluate(inputs.permutation, inputs, resolved.prices, assumptions)

    async def estimate_descriptor(self, descriptor: ResourceDescriptor) -> CostEstimate:
        """Estimate a descriptor with the full pipeline, without persisting."""
        return await self.orchestrator.estimate(descriptor)

    # Resources and persisted estimates

    def register_resource(self, descriptor: ResourceDescriptor) -> None:
        self.directory.upsert(descriptor)

    async def estimate_resource(self, job_id: str, resource_id: str) -> CostEstimate:
        """Compute and persist the estimate for a discovered resource."""
        return await self.orchestrator.recalculate_resource(job_id, resource_id)

    def get_estimate(self, job_id: str, resource_id: str) -> Optional[CostEstimate]:
        return self.estimate_store.get(job_id, resource_id)

    def list_estimates(self, job_id: str) -> List[CostEstimate]:
        return self.estimate_store.list_for_job(job_id)

    async def recalculate_job(self, job_id: str) -> RecalculationSummary:
        return await self.orchestrator.recalculate_job(job_id)

    # Assumptions

    def resolve_assumptions(self, job_id: str, resource_id: str) -> CoolDataAssumptions:
        return self.assumptions.resolve(job_id, resource_id)

    async def set_global_assumptions(self, override: AssumptionOverride) -> RecalculationSummary:
        return await self.assumptions.set_global(override)

    async def reset_global_assumptions(self) -> RecalculationSummary:
        return await self.assumptions.reset_global()

    async def set_job_assumptions(self, job_id: str, override: AssumptionOverride) -> RecalculationSummary:
        return await self.assumptions.set_job(job_id, override)

    async def clear_job_assumptions(self, job_id: str) -> RecalculationSummary:
        return await self.assumptions.clear_job(job_id)

    async def set_resource_assumptions(
        self,
        job_id: str,
        resource_id: str,
        override: AssumptionOverride
    ) -> RecalculationSummary:
        return await self.assumptions.set_resource(job_id, resource_id, override)

    async def clear_resource_assumptions(self, job_id: str, resource_id: str) -> RecalculationSummary:
        return await self.assumptions.clear_resource(job_id, resource_id)


def build_cost_engine(
    db_path: Optional[str] = None,
    directory=None,
    client: Optional[RetailPricesClient] = None,
    max_concurrency: Optional[int] = None
) -> CostEngine:
    """
    Construct a fully wired engine.

    Args:
        db_path: SQLite file for prices, overrides and estimates
            (defaults to COST_ENGINE_DB_PATH)
        directory: Resource directory (defaults to an empty in-memory one)
        client: Retail prices client (tests inject one with a mock transport)
        max_concurrency: Recalculation fan-out bound

    Returns:
        CostEngine instance
    """
    db_path = db_path or config.COST_ENGINE_DB_PATH
    directory = directory if directory is not None else InMemoryResourceDirectory()
    catalog = get_permutation_catalog()

    price_cache = PriceCache(SqlitePriceStore(db_path))
    price_resolver = PriceResolver(price_cache, client or RetailPricesClient())
    evaluator = FormulaEvaluator()
    assumptions = AssumptionsResolver(SqliteAssumptionStore(db_path), directory)
    estimate_store = SqliteEstimateStore(db_path)
    orchestrator = RecalculationOrchestrator(
        catalog,
        assumptions,
        price_resolver,
        evaluator,
        estimate_store,
        directory,
        max_concurrency=max_concurrency,
    )
    logger.info(f"Cost engine initialized with database {db_path}")
    return CostEngine(
        catalog=catalog,
        price_cache=price_cache,
        price_resolver=price_resolver,
        evaluator=evaluator,
        assumptions=assumptions,
        orchestrator=orchestrator,
        estimate_store=estimate_store,
        directory=directory,
    )


_cost_engine: Optional[CostEngine] = None


def get_cost_engine() -> CostEngine:
    """
    Get the global cost engine instance.

    Returns:
        CostEngine instance
    """
    global _cost_engine
    if _cost_engine is None:
        _cost_engine = build_cost_engine()
    return _cost_engine
