"""
Cool data assumptions resolution.

Effective assumptions come from an ordered list of resolver steps, most
specific first: live telemetry (Metrics), resource override (Volume), job
override (Job), global default (Global). Each step returns a layer or None to
defer; unset fields fall through to the next step in order.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple

from cost_engine.core.config import config
from cost_engine.domain.assumption_models import (
    AssumptionOverride,
    AssumptionSource,
    CoolDataAssumptions,
    SOURCE_PRECEDENCE,
    ValidationError,
)
from cost_engine.storage.resource_directory import ResourceNotFoundError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AssumptionScope:
    """The hierarchy level a change was made at."""
    level: AssumptionSource
    job_id: Optional[str] = None
    resource_id: Optional[str] = None

    def describe(self) -> str:
        if self.level == AssumptionSource.GLOBAL:
            return "global"
        if self.level == AssumptionSource.JOB:
            return f"job {self.job_id}"
        return f"resource {self.resource_id} in job {self.job_id}"


ResolverStep = Callable[[str, str], Optional[AssumptionOverride]]
RecalculationHook = Callable[[AssumptionScope], Awaitable[Any]]


def _require_values(override: AssumptionOverride) -> AssumptionOverride:
    if override.is_empty:
        raise ValidationError("An override must set cool_data_percent or cool_data_retrieval_percent")
    return override


class AssumptionsResolver:
    """Resolves and mutates the three-level override hierarchy."""

    def __init__(
        self,
        store,
        directory,
        default_cool_data_percent: Optional[float] = None,
        default_cool_retrieval_percent: Optional[float] = None
    ):
        """
        Initialize the resolver.

        Args:
            store: Assumption override store (e.g. SqliteAssumptionStore)
            directory: Resource directory used to read live telemetry
            default_cool_data_percent: Factory global cool percentage
            default_cool_retrieval_percent: Factory global retrieval percentage
        """
        self.store = store
        self.directory = directory
        self.factory_default = AssumptionOverride(
            cool_data_percent=(
                config.DEFAULT_COOL_DATA_PERCENT if default_cool_data_percent is None
                else default_cool_data_percent
            ),
            cool_data_retrieval_percent=(
                config.DEFAULT_COOL_RETRIEVAL_PERCENT if default_cool_retrieval_percent is None
                else default_cool_retrieval_percent
            ),
        )
        self.recalculation_hook: Optional[RecalculationHook] = None
        self.steps: List[Tuple[AssumptionSource, ResolverStep]] = [
            (AssumptionSource.METRICS, self._from_metrics),
            (AssumptionSource.VOLUME, self._from_resource_override),
            (AssumptionSource.JOB, self._from_job_override),
            (AssumptionSource.GLOBAL, self._from_global),
        ]

    # Resolver steps

    def _from_metrics(self, job_id: str, resource_id: str) -> Optional[AssumptionOverride]:
        try:
            descriptor = self.directory.get_resource(job_id, resource_id)
        except ResourceNotFoundError:
            return None
        telemetry = descriptor.telemetry
        provisioned = getattr(descriptor.payload, "provisioned_gib", 0.0)
        if not descriptor.cool_access or telemetry is None or not telemetry.available or provisioned <= 0:
            return None
        cool = min(telemetry.cool_tier_size_gib, provisioned)
        retrieval = min(100.0, telemetry.cool_data_read_gib / cool * 100.0)
        return AssumptionOverride(
            cool_data_percent=cool / provisioned * 100.0,
            cool_data_retrieval_percent=retrieval,
        )

    def _from_resource_override(self, job_id: str, resource_id: str) -> Optional[AssumptionOverride]:
        return self.store.get_resource(job_id, resource_id)

    def _from_job_override(self, job_id: str, resource_id: str) -> Optional[AssumptionOverride]:
        return self.store.get_job(job_id)

    def _from_global(self, job_id: str, resource_id: str) -> Optional[AssumptionOverride]:
        return self.get_global_override()

    def _merge_steps(
        self,
        job_id: str,
        resource_id: str
    ) -> Tuple[AssumptionOverride, Dict[str, AssumptionSource]]:
        """Merge the step layers, recording the level each field was taken from."""
        merged = AssumptionOverride()
        field_sources: Dict[str, AssumptionSource] = {}
        for level, step in self.steps:
            layer = step(job_id, resource_id)
            if layer is None or layer.is_empty:
                continue
            if merged.cool_data_percent is None and layer.cool_data_percent is not None:
                field_sources["cool_data_percent"] = level
            if merged.cool_data_retrieval_percent is None and layer.cool_data_retrieval_percent is not None:
                field_sources["cool_data_retrieval_percent"] = level
            merged = merged.merged_over(layer)
            if merged.is_complete:
                break
        return merged, field_sources

    def resolve(self, job_id: str, resource_id: str) -> CoolDataAssumptions:
        """
        Resolve the effective assumptions for one resource.

        Args:
            job_id: Job identifier
            resource_id: Resource identifier

        Returns:
            CoolDataAssumptions whose source is the most specific contributing level
        """
        merged, field_sources = self._merge_steps(job_id, resource_id)
        source = max(field_sources.values(), key=SOURCE_PRECEDENCE.__getitem__)
        return CoolDataAssumptions(
            cool_data_percent=merged.cool_data_percent,
            cool_data_retrieval_percent=merged.cool_data_retrieval_percent,
            source=source,
        )

    def contributing_levels(self, job_id: str, resource_id: str) -> Set[AssumptionSource]:
        """
        Levels that supply at least one field of the effective assumptions.

        A resource with a partial override still depends on the less specific
        level that fills in the other field.
        """
        _, field_sources = self._merge_steps(job_id, resource_id)
        return set(field_sources.values())

    # Reads of a single level

    def get_global_override(self) -> AssumptionOverride:
        """The global default: stored values over the factory default."""
        stored = self.store.get_global()
        if stored is None:
            return self.factory_default
        return stored.merged_over(self.factory_default)

    def get_job_override(self, job_id: str) -> Optional[AssumptionOverride]:
        return self.store.get_job(job_id)

    def get_resource_override(self, job_id: str, resource_id: str) -> Optional[AssumptionOverride]:
        return self.store.get_resource(job_id, resource_id)

    # Mutations: persisted first, then recalculation for the same scope

    async def _after_change(self, scope: AssumptionScope):
        logger.info(f"Cool data assumptions changed at {scope.describe()}")
        if self.recalculation_hook is None:
            return None
        return await self.recalculation_hook(scope)

    async def set_global(self, override: AssumptionOverride):
        """
        Replace the global default; triggers recalculation of everything inheriting it.

        Raises:
            ValidationError: If the override sets no values (ranges are checked on construction)
        """
        await asyncio.to_thread(self.store.set_global, _require_values(override))
        return await self._after_change(AssumptionScope(AssumptionSource.GLOBAL))

    async def reset_global(self):
        """Restore the factory global default."""
        await asyncio.to_thread(self.store.set_global, self.factory_default)
        return await self._after_change(AssumptionScope(AssumptionSource.GLOBAL))

    async def set_job(self, job_id: str, override: AssumptionOverride):
        await asyncio.to_thread(self.store.set_job, job_id, _require_values(override))
        return await self._after_change(AssumptionScope(AssumptionSource.JOB, job_id=job_id))

    async def clear_job(self, job_id: str):
        await asyncio.to_thread(self.store.clear_job, job_id)
        return await self._after_change(AssumptionScope(AssumptionSource.JOB, job_id=job_id))

    async def set_resource(self, job_id: str, resource_id: str, override: AssumptionOverride):
        await asyncio.to_thread(self.store.set_resource, job_id, resource_id, _require_values(override))
        return await self._after_change(
            AssumptionScope(AssumptionSource.VOLUME, job_id=job_id, resource_id=resource_id)
        )

    async def clear_resource(self, job_id: str, resource_id: str):
        await asyncio.to_thread(self.store.clear_resource, job_id, resource_id)
        return await self._after_change(
            AssumptionScope(AssumptionSource.VOLUME, job_id=job_id, resource_id=resource_id)
        )
