"""
Pydantic v2 schemas for the Fleet API.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from ridematch.algorithms.entities import (
    FleetOptimizationResult,
    RebalancingRecommendation,
    ZoneStatus,
)
from ridematch.algorithms.loadBalancing import FleetUtilization
from ridematch.api.schemas.matching import CoordinateOut


class EstimatedImpactOut(BaseModel):
    wait_time_reduction_minutes: float
    utilization_gain: float
    revenue_gain: float


class RecommendationOut(BaseModel):
    driver_id: str
    current_location: CoordinateOut
    target_location: CoordinateOut
    source_zone_id: str
    target_zone_id: str
    reason: str
    priority: str
    estimated_impact: EstimatedImpactOut
    estimated_travel_minutes: float
    confidence: float

    @classmethod
    def from_domain(cls, rec: RebalancingRecommendation) -> "RecommendationOut":
        impact = rec.estimated_impact
        return cls(
            driver_id=rec.driver_id,
            current_location=CoordinateOut.model_validate(rec.current_location),
            target_location=CoordinateOut.model_validate(rec.target_location),
            source_zone_id=rec.source_zone_id,
            target_zone_id=rec.target_zone_id,
            reason=rec.reason,
            priority=rec.priority.value,
            estimated_impact=EstimatedImpactOut(
                wait_time_reduction_minutes=impact.wait_time_reduction_minutes,
                utilization_gain=impact.utilization_gain,
                revenue_gain=impact.revenue_gain,
            ),
            estimated_travel_minutes=rec.estimated_travel_minutes,
            confidence=rec.confidence,
        )


class ZoneStatusOut(BaseModel):
    zone_id: str
    name: str
    current_drivers: int
    target_drivers: int
    deviation: int
    average_wait_minutes: float

    @classmethod
    def from_domain(cls, status: ZoneStatus) -> "ZoneStatusOut":
        return cls(
            zone_id=status.zone.zone_id,
            name=status.zone.name,
            current_drivers=status.current_drivers,
            target_drivers=status.target_drivers,
            deviation=status.deviation,
            average_wait_minutes=status.average_wait_minutes,
        )


class FleetOptimizationResponse(BaseModel):
    """Summary of one fleet optimization pass."""

    total_drivers: int
    active_drivers: int
    average_utilization: float
    total_demand: float
    unmet_demand: float
    optimization_score: float = Field(description="0 (misallocated) to 100 (aligned)")
    rebalancing_triggered: bool
    zone_status: list[ZoneStatusOut]
    recommendations: list[RecommendationOut]
    executed_recommendations: list[RecommendationOut]

    @classmethod
    def from_domain(cls, result: FleetOptimizationResult) -> "FleetOptimizationResponse":
        return cls(
            total_drivers=result.total_drivers,
            active_drivers=result.active_drivers,
            average_utilization=result.average_utilization,
            total_demand=result.total_demand,
            unmet_demand=result.unmet_demand,
            optimization_score=result.optimization_score,
            rebalancing_triggered=result.rebalancing_triggered,
            zone_status=[ZoneStatusOut.from_domain(s) for s in result.zone_status],
            recommendations=[RecommendationOut.from_domain(r) for r in result.recommendations],
            executed_recommendations=[
                RecommendationOut.from_domain(r) for r in result.executed_recommendations
            ],
        )


class FleetUtilizationResponse(BaseModel):
    """Mean ``current_load / max_capacity`` across the fleet and per zone."""

    overall: float = Field(ge=0.0)
    by_zone: dict[str, float]

    @classmethod
    def from_domain(cls, metrics: FleetUtilization) -> "FleetUtilizationResponse":
        return cls(overall=metrics.overall, by_zone=dict(metrics.by_zone))
