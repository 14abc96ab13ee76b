"""
Recalculation of persisted estimates.

Re-runs the forward pipeline (identify -> resolve assumptions -> resolve prices
-> evaluate -> persist) for one resource or for every resource affected by an
assumption change, with bounded concurrency. One resource failing never stops
the rest of a batch.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from cost_engine.core.config import config
from cost_engine.domain.assumption_models import AssumptionSource, SOURCE_PRECEDENCE
from cost_engine.domain.cost_models import CostEstimate
from cost_engine.domain.permutations import PermutationCatalog
from cost_engine.domain.resource_models import ResourceDescriptor
from cost_engine.pricing.price_resolver import PriceResolver
from cost_engine.services.assumptions_resolver import AssumptionScope, AssumptionsResolver
from cost_engine.services.formula_evaluator import FormulaEvaluator
from cost_engine.services.input_mapper import build_cost_inputs, identify_resource
from cost_engine.storage.resource_directory import ResourceNotFoundError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecalculationFailure:
    job_id: str
    resource_id: str
    error: str

    def to_dict(self) -> Dict[str, Any]:
        return {"job_id": self.job_id, "resource_id": self.resource_id, "error": self.error}


@dataclass
class RecalculationSummary:
    """Result of a batch: how many estimates were rewritten and what failed."""
    scope: str
    recalculated: int = 0
    failures: List[RecalculationFailure] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scope": self.scope,
            "recalculated": self.recalculated,
            "failed": len(self.failures),
            "failures": [failure.to_dict() for failure in self.failures],
        }


class RecalculationOrchestrator:
    """Recomputes and persists estimates."""

    def __init__(
        self,
        catalog: PermutationCatalog,
        assumptions: AssumptionsResolver,
        prices: PriceResolver,
        evaluator: FormulaEvaluator,
        estimate_store,
        directory,
        max_concurrency: Optional[int] = None
    ):
        self.catalog = catalog
        self.assumptions = assumptions
        self.prices = prices
        self.evaluator = evaluator
        self.estimate_store = estimate_store
        self.directory = directory
        self.max_concurrency = max_concurrency or config.RECALC_MAX_CONCURRENCY

    async def estimate(self, descriptor: ResourceDescriptor) -> CostEstimate:
        """Run the forward pipeline for a descriptor without persisting."""
        permutation = identify_resource(self.catalog, descriptor)
        assumptions = await asyncio.to_thread(
            self.assumptions.resolve, descriptor.job_id, descriptor.resource_id
        )
        inputs = build_cost_inputs(descriptor, permutation)
        resolved = await self.prices.resolve(inputs)
        return self.evaluator.evaluate(
            permutation,
            inputs,
            resolved.prices,
            assumptions,
            job_id=descriptor.job_id,
            resource_id=descriptor.resource_id,
        )

    async def recalculate_resource(self, job_id: str, resource_id: str) -> CostEstimate:
        """
        Recalculate and persist one resource's estimate.

        Args:
            job_id: Job identifier
            resource_id: Resource identifier

        Returns:
            The new estimate (it replaces any stored one)

        Raises:
            ResourceNotFoundError: If the resource is unknown
            UnsupportedCombinationError: If its configuration has no permutation
        """
        descriptor = self.directory.get_resource(job_id, resource_id)
        estimate = await self.estimate(descriptor)
        await asyncio.to_thread(self.estimate_store.replace, estimate)
        return estimate

    async def recalculate_job(self, job_id: str) -> RecalculationSummary:
        """Recalculate every resource in a job."""
        descriptors = self.directory.list_resources(job_id)
        return await self._run_batch(f"job {job_id}", descriptors)

    async def recalculate_scope(self, scope: AssumptionScope) -> RecalculationSummary:
        """
        Recalculate the resources affected by an assumption change at `scope`.

        A resource is affected when its cost depends on cool data assumptions
        and any field of its effective assumptions comes from the changed level
        or a less specific one.
        """
        descriptors = await asyncio.to_thread(self._affected_resources, scope)
        return await self._run_batch(scope.describe(), descriptors)

    def _affected_resources(self, scope: AssumptionScope) -> List[ResourceDescriptor]:
        if scope.level == AssumptionSource.VOLUME:
            try:
                candidates = [self.directory.get_resource(scope.job_id, scope.resource_id)]
            except ResourceNotFoundError:
                logger.warning(f"No discovered {scope.describe()}; nothing to recalculate")
                return []
        elif scope.level == AssumptionSource.JOB:
            candidates = self.directory.list_resources(scope.job_id)
        else:
            candidates = [
                descriptor
                for job_id in self.directory.list_jobs()
                for descriptor in self.directory.list_resources(job_id)
            ]

        changed_level = SOURCE_PRECEDENCE[scope.level]
        affected = []
        for descriptor in candidates:
            if not descriptor.cool_access:
                continue
            levels = self.assumptions.contributing_levels(descriptor.job_id, descriptor.resource_id)
            if any(SOURCE_PRECEDENCE[level] <= changed_level for level in levels):
                affected.append(descriptor)
        return affected

    async def _run_batch(self, label: str, descriptors: List[ResourceDescriptor]) -> RecalculationSummary:
        summary = RecalculationSummary(scope=label)
        if not descriptors:
            logger.info(f"Recalculation for {label}: nothing to do")
            return summary

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _one(descriptor: ResourceDescriptor) -> Optional[RecalculationFailure]:
            async with semaphore:
                try:
                    await self.recalculate_resource(descriptor.job_id, descriptor.resource_id)
                    return None
                except Exception as error:
                    logger.exception(
                        f"Recalculation failed for {descriptor.resource_id} in job {descriptor.job_id}"
                    )
                    return RecalculationFailure(descriptor.job_id, descriptor.resource_id, str(error))

        results = await asyncio.gather(*(_one(descriptor) for descriptor in descriptors))
        for result in results:
            if result is None:
                summary.recalculated += 1
            else:
                summary.failures.append(result)

        logger.info(
            f"Recalculation for {label}: {summary.recalculated} updated, {len(summary.failures)} failed"
        )
        return summary
