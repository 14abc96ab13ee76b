"""
Estimate API endpoints: permutation lookup, resource registration, estimation
and recalculation.
"""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from cost_engine.domain.assumption_models import ValidationError
from cost_engine.domain.permutations import ProductFamily, UnsupportedCombinationError
from cost_engine.domain.resource_models import (
    PAYLOAD_TYPES,
    AnfVolumePayload,
    CoolTierTelemetry,
    ResourceDescriptor,
)
from cost_engine.services.cost_engine import CostEngine, get_cost_engine
from cost_engine.storage.resource_directory import ResourceNotFoundError


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/estimates", tags=["estimates"])

# Decimal places for monetary fields in responses
COST_PRECISION = 6


class IdentifyRequest(BaseModel):
    """Request model for permutation identification."""
    product_family: str
    tier_level: str
    cool_access: bool = False
    double_encryption: bool = False
    redundancy: Optional[str] = None


class ResourceRequest(BaseModel):
    """Request model for registering a discovered resource."""
    job_id: str
    resource_id: str
    name: str
    region: str
    product_family: str
    payload: Dict[str, Any]


def _unsupported(error: UnsupportedCombinationError) -> HTTPException:
    return HTTPException(
        status_code=400,
        detail={"error": "unsupported_combination", "axis": error.axis, "message": str(error)}
    )


def _build_descriptor(request: ResourceRequest) -> ResourceDescriptor:
    try:
        family = ProductFamily(request.product_family)
    except ValueError as error:
        raise HTTPException(
            status_code=400,
            detail={
                "error": "unsupported_combination",
                "axis": "product_family",
                "message": f"Unknown product family: {request.product_family}",
            }
        ) from error

    fields = dict(request.payload)
    payload_type = PAYLOAD_TYPES[family]
    try:
        if payload_type is AnfVolumePayload and isinstance(fields.get("telemetry"), dict):
            fields["telemetry"] = CoolTierTelemetry(**fields["telemetry"])
        payload = payload_type(**fields)
        return ResourceDescriptor(
            job_id=request.job_id,
            resource_id=request.resource_id,
            name=request.name,
            region=request.region,
            product_family=family,
            payload=payload,
        )
    except (TypeError, ValidationError) as error:
        raise HTTPException(status_code=422, detail=f"Invalid resource payload: {error}") from error


@router.get("/permutations")
async def list_permutations(engine: CostEngine = Depends(get_cost_engine)):
    """List every supported permutation."""
    return {
        "status": "ok",
        "permutations": [permutation.to_dict() for permutation in engine.catalog.all()]
    }


@router.post("/identify")
async def identify_permutation(request: IdentifyRequest, engine: CostEngine = Depends(get_cost_engine)):
    """
    Map a configuration to its permutation.

    Returns 400 naming the offending axis for unsupported combinations.
    """
    try:
        permutation = engine.identify(
            request.product_family,
            request.tier_level,
            cool_access=request.cool_access,
            double_encryption=request.double_encryption,
            redundancy=request.redundancy,
        )
    except UnsupportedCombinationError as error:
        raise _unsupported(error) from error
    return {"status": "ok", "permutation": permutation.to_dict()}


@router.post("/resources")
async def register_resource(request: ResourceRequest, engine: CostEngine = Depends(get_cost_engine)):
    """Register (or replace) a discovered resource descriptor."""
    descriptor = _build_descriptor(request)
    engine.register_resource(descriptor)
    return {"status": "ok", "job_id": descriptor.job_id, "resource_id": descriptor.resource_id}


@router.get("/{job_id}")
async def list_estimates(job_id: str, engine: CostEngine = Depends(get_cost_engine)):
    """Return every stored estimate for a job."""
    return {
        "status": "ok",
        "estimates": [estimate.to_dict(COST_PRECISION) for estimate in engine.list_estimates(job_id)]
    }


@router.post("/{job_id}/recalculate")
async def recalculate_job(job_id: str, engine: CostEngine = Depends(get_cost_engine)):
    """Recalculate every resource in a job; failures are reported, not raised."""
    summary = await engine.recalculate_job(job_id)
    return {"status": "ok", "summary": summary.to_dict()}


@router.post("/{job_id}/{resource_id}")
async def estimate_resource(job_id: str, resource_id: str, engine: CostEngine = Depends(get_cost_engine)):
    """Compute, persist and return the estimate for a registered resource."""
    try:
        estimate = await engine.estimate_resource(job_id, resource_id)
    except ResourceNotFoundError as error:
        raise HTTPException(status_code=404, detail="Resource not found") from error
    except UnsupportedCombinationError as error:
        raise _unsupported(error) from error
    except ValidationError as error:
        raise HTTPException(status_code=422, detail=str(error)) from error
    return {"status": "ok", "estimate": estimate.to_dict(COST_PRECISION)}


@router.get("/{job_id}/{resource_id}")
async def get_estimate(job_id: str, resource_id: str, engine: CostEngine = Depends(get_cost_engine)):
    """
    Retrieve the stored estimate for a resource.

    Returns 404 if none has been computed.
    """
    estimate = engine.get_estimate(job_id, resource_id)
    if estimate is None:
        raise HTTPException(status_code=404, detail="Estimate not found")
    return {"status": "ok", "estimate": estimate.to_dict(COST_PRECISION)}
