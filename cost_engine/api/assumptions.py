"""
Cool data assumption endpoints.

Every mutation persists first and then recalculates the estimates that
inherit from the changed level; the response carries the batch summary.
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from cost_engine.domain.assumption_models import AssumptionOverride, ValidationError
from cost_engine.services.cost_engine import CostEngine, get_cost_engine


router = APIRouter(prefix="/api/assumptions", tags=["assumptions"])


class AssumptionRequest(BaseModel):
    """Request model for an override; unset fields inherit from the next level."""
    cool_data_percent: Optional[float] = Field(default=None, ge=0, le=100)
    cool_data_retrieval_percent: Optional[float] = Field(default=None, ge=0, le=100)


def _to_override(request: AssumptionRequest) -> AssumptionOverride:
    try:
        return AssumptionOverride(
            cool_data_percent=request.cool_data_percent,
            cool_data_retrieval_percent=request.cool_data_retrieval_percent,
        )
    except ValidationError as error:
        raise HTTPException(status_code=422, detail=str(error)) from error


async def _apply(change) -> dict:
    try:
        summary = await change
    except ValidationError as error:
        raise HTTPException(status_code=422, detail=str(error)) from error
    return {"status": "ok", "recalculation": summary.to_dict() if summary else None}


@router.get("/global")
async def get_global(engine: CostEngine = Depends(get_cost_engine)):
    return {"status": "ok", "assumptions": engine.assumptions.get_global_override().to_dict()}


@router.put("/global")
async def set_global(request: AssumptionRequest, engine: CostEngine = Depends(get_cost_engine)):
    """Replace the global default."""
    return await _apply(engine.set_global_assumptions(_to_override(request)))


@router.delete("/global")
async def reset_global(engine: CostEngine = Depends(get_cost_engine)):
    """Restore the factory global default."""
    return await _apply(engine.reset_global_assumptions())


@router.get("/jobs/{job_id}")
async def get_job(job_id: str, engine: CostEngine = Depends(get_cost_engine)):
    override = engine.assumptions.get_job_override(job_id)
    return {"status": "ok", "assumptions": override.to_dict() if override else None}


@router.put("/jobs/{job_id}")
async def set_job(job_id: str, request: AssumptionRequest, engine: CostEngine = Depends(get_cost_engine)):
    return await _apply(engine.set_job_assumptions(job_id, _to_override(request)))


@router.delete("/jobs/{job_id}")
async def clear_job(job_id: str, engine: CostEngine = Depends(get_cost_engine)):
    return await _apply(engine.clear_job_assumptions(job_id))


@router.get("/jobs/{job_id}/resources/{resource_id}")
async def get_resource(job_id: str, resource_id: str, engine: CostEngine = Depends(get_cost_engine)):
    """
    Return both the explicit resource override (if any) and the effective
    assumptions with their source.
    """
    override = engine.assumptions.get_resource_override(job_id, resource_id)
    effective = engine.resolve_assumptions(job_id, resource_id)
    return {
        "status": "ok",
        "override": override.to_dict() if override else None,
        "effective": effective.to_dict(),
    }


@router.put("/jobs/{job_id}/resources/{resource_id}")
async def set_resource(
    job_id: str,
    resource_id: str,
    request: AssumptionRequest,
    engine: CostEngine = Depends(get_cost_engine)
):
    return await _apply(engine.set_resource_assumptions(job_id, resource_id, _to_override(request)))


@router.delete("/jobs/{job_id}/resources/{resource_id}")
async def clear_resource(job_id: str, resource_id: str, engine: CostEngine = Depends(get_cost_engine)):
    return await _apply(engine.clear_resource_assumptions(job_id, resource_id))
