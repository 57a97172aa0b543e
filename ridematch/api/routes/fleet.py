"""
Fleet API Routes
================

Routes:
  POST /api/v1/fleet/optimize  -- Run one fleet rebalancing pass now
  GET  /api/v1/fleet/utilization -- Current fleet utilization, overall and per zone
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, status

from ridematch.api.deps import FleetServiceDep
from ridematch.api.schemas.fleet import FleetOptimizationResponse, FleetUtilizationResponse
from ridematch.core.exceptions import DataSourceUnavailable

router = APIRouter(prefix="/fleet", tags=["Fleet"])


@router.post(
    "/optimize",
    response_model=FleetOptimizationResponse,
    summary="Run a fleet optimization pass",
    description=(
        "Compares driver distribution with zone demand, computes rebalancing "
        "recommendations and, when the fleet is out of balance, notifies up "
        "to five drivers with high-priority moves. Returns 409 when a pass "
        "is already running or its inputs are unavailable."
    ),
)
async def optimize_fleet(service: FleetServiceDep) -> FleetOptimizationResponse:
    result = await service.run_fleet_optimization()
    if result is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Fleet optimization pass skipped; another pass is running or inputs are unavailable.",
        )
    return FleetOptimizationResponse.from_domain(result)


@router.get(
    "/utilization",
    response_model=FleetUtilizationResponse,
    summary="Fleet utilization",
    description="Mean driver utilization over the fleet and for each active zone.",
)
async def fleet_utilization(service: FleetServiceDep) -> FleetUtilizationResponse:
    try:
        metrics = await service.get_fleet_utilization()
    except DataSourceUnavailable as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        )
    return FleetUtilizationResponse.from_domain(metrics)
