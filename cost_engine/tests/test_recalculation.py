"""
Tests for the forward pipeline and recalculation orchestration.
"""

import pytest
from dataclasses import replace

from cost_engine.domain.assumption_models import AssumptionOverride
from cost_engine.domain.permutations import ProductFamily
from cost_engine.domain.resource_models import AzureFilesSharePayload, ResourceDescriptor
from cost_engine.services.cost_engine import build_cost_engine
from cost_engine.storage.resource_directory import ResourceNotFoundError


def _without_timestamp(estimate):
    data = estimate.to_dict()
    data.pop("EstimatedAt")
    return data


def _component(estimate, component_type):
    return [c for c in estimate.components if c.type == component_type][0]


@pytest.fixture
def populated(engine, cool_volume, regular_volume, measured_volume, hot_share, premium_disk):
    for descriptor in (cool_volume, regular_volume, measured_volume, hot_share, premium_disk):
        engine.register_resource(descriptor)
    return engine


@pytest.mark.asyncio
async def test_estimate_resource_persists(populated):
    estimate = await populated.estimate_resource("job-1", "vol-regular")

    stored = populated.get_estimate("job-1", "vol-regular")
    assert stored is not None
    assert stored.total_cost == pytest.approx(65.88)
    assert estimate.permutation_id == 1
    assert estimate.region == "eastus"


@pytest.mark.asyncio
async def test_recalculate_resource_is_idempotent(populated):
    first = await populated.estimate_resource("job-1", "vol-cool")
    first_stored = populated.get_estimate("job-1", "vol-cool")
    second = await populated.estimate_resource("job-1", "vol-cool")
    second_stored = populated.get_estimate("job-1", "vol-cool")

    assert first == second
    assert first_stored == first
    assert _without_timestamp(first_stored) == _without_timestamp(second_stored)


@pytest.mark.asyncio
async def test_prices_are_cached_across_estimates(populated, fake_client):
    await populated.estimate_resource("job-1", "vol-regular")
    queries_after_first = len(fake_client.queries)

    await populated.estimate_resource("job-1", "vol-regular")

    assert queries_after_first == 1
    assert len(fake_client.queries) == queries_after_first


@pytest.mark.asyncio
async def test_each_family_is_estimated(populated):
    share = await populated.estimate_resource("job-2", "share-hot")
    disk = await populated.estimate_resource("job-2", "disk-p30")

    assert share.total_cost == pytest.approx(5.1 + 0.65 + 0.26)
    assert disk.total_cost == pytest.approx(135.17)
    assert share.warnings == []
    assert disk.warnings == []


@pytest.mark.asyncio
async def test_unknown_resource_raises(populated):
    with pytest.raises(ResourceNotFoundError):
        await populated.estimate_resource("job-1", "missing")


@pytest.mark.asyncio
async def test_pricing_outage_degrades_to_warnings(db_path, directory, failing_client, regular_volume):
    engine = build_cost_engine(db_path=db_path, directory=directory, client=failing_client)
    engine.register_resource(regular_volume)

    estimate = await engine.estimate_resource("job-1", "vol-regular")

    assert estimate.components == []
    assert estimate.confidence == 10
    assert estimate.warnings


class TestBatch:
    """Job-wide recalculation."""

    @pytest.mark.asyncio
    async def test_recalculate_job_counts_resources(self, populated):
        summary = await populated.recalculate_job("job-1")

        assert summary.recalculated == 3
        assert summary.failures == []
        assert len(populated.list_estimates("job-1")) == 3

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_the_batch(self, populated):
        populated.register_resource(ResourceDescriptor(
            job_id="job-2",
            resource_id="share-bad",
            name="share-bad",
            region="westeurope",
            product_family=ProductFamily.AZURE_FILES,
            payload=AzureFilesSharePayload(
                access_tier="Premium",
                account_sku="Premium_GRS",
                provisioned_gib=100,
            ),
        ))

        summary = await populated.recalculate_job("job-2")

        assert summary.recalculated == 2
        assert [failure.resource_id for failure in summary.failures] == ["share-bad"]
        assert summary.to_dict()["failed"] == 1
        assert populated.get_estimate("job-2", "disk-p30") is not None

    @pytest.mark.asyncio
    async def test_fan_out_is_bounded_by_max_concurrency(self, db_path, directory, slow_client, regular_volume):
        engine = build_cost_engine(db_path=db_path, directory=directory, client=slow_client, max_concurrency=2)
        # Distinct regions so every resource misses the price cache
        for index in range(6):
            engine.register_resource(replace(
                regular_volume, resource_id=f"vol-{index}", region=f"region{index}"
            ))

        summary = await engine.recalculate_job("job-1")

        assert summary.recalculated == 6
        assert len(slow_client.queries) == 6
        assert slow_client.peak_in_flight == 2

    @pytest.mark.asyncio
    async def test_empty_job(self, populated):
        summary = await populated.recalculate_job("job-none")

        assert summary.recalculated == 0


class TestAssumptionTriggeredRecalculation:
    """Changes recalculate exactly the resources inheriting from the changed level."""

    @pytest.mark.asyncio
    async def test_job_change_recalculates_inheriting_cool_volumes(self, populated):
        await populated.estimate_resource("job-1", "vol-cool")

        summary = await populated.set_job_assumptions("job-1", AssumptionOverride(cool_data_percent=50))

        assert summary.recalculated == 1
        stored = populated.get_estimate("job-1", "vol-cool")
        assert stored.assumptions_source == "Job"
        assert _component(stored, "capacity_hot").quantity == pytest.approx(2048)

    @pytest.mark.asyncio
    async def test_complete_resource_override_shields_from_job_change(self, populated):
        await populated.set_resource_assumptions(
            "job-1", "vol-cool", AssumptionOverride(cool_data_percent=30, cool_data_retrieval_percent=10)
        )

        summary = await populated.set_job_assumptions("job-1", AssumptionOverride(cool_data_percent=50))

        assert summary.recalculated == 0
        assert populated.get_estimate("job-1", "vol-cool").assumptions_source == "Volume"

    @pytest.mark.asyncio
    async def test_partial_resource_override_follows_inherited_field(self, populated):
        await populated.set_resource_assumptions(
            "job-1", "vol-cool", AssumptionOverride(cool_data_percent=30)
        )

        summary = await populated.set_global_assumptions(AssumptionOverride(cool_data_retrieval_percent=50))

        assert summary.recalculated == 1
        stored = populated.get_estimate("job-1", "vol-cool")
        assert stored.assumptions_source == "Volume"
        # 30% of 4096 GiB is cool; half of it is retrieved
        assert _component(stored, "cool_retrieval").quantity == pytest.approx(4096 * 0.3 * 0.5)
        assert stored == await populated.estimate_descriptor(
            populated.directory.get_resource("job-1", "vol-cool")
        )

    @pytest.mark.asyncio
    async def test_clearing_resource_override_falls_back(self, populated):
        await populated.set_job_assumptions("job-1", AssumptionOverride(cool_data_percent=50))
        await populated.set_resource_assumptions(
            "job-1", "vol-cool", AssumptionOverride(cool_data_percent=30)
        )

        summary = await populated.clear_resource_assumptions("job-1", "vol-cool")

        assert summary.recalculated == 1
        assert populated.get_estimate("job-1", "vol-cool").assumptions_source == "Job"

    @pytest.mark.asyncio
    async def test_global_change_skips_metrics_backed_volumes(self, populated):
        summary = await populated.set_global_assumptions(AssumptionOverride(cool_data_percent=60))

        assert summary.recalculated == 1
        assert populated.get_estimate("job-1", "vol-measured") is None

    @pytest.mark.asyncio
    async def test_override_for_undiscovered_resource_is_kept(self, populated):
        summary = await populated.set_resource_assumptions(
            "job-1", "vol-later", AssumptionOverride(cool_data_percent=10)
        )

        assert summary.recalculated == 0
        assert populated.resolve_assumptions("job-1", "vol-later").cool_data_percent == 10
