"""
SQL adapters for the engine ports.

Each adapter owns an ``async_sessionmaker`` and opens a short-lived session
per call, so one adapter instance can be shared by concurrent requests and
the background rebalancing task.  Database errors surface as
``DataSourceUnavailable``.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Any, Optional, Type, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ridematch.algorithms.entities import (
    Coordinate,
    DriverAvailability,
    DriverCandidate,
    DriverCharacteristics,
    DriverPerformance,
    ExperimentVariant,
    FleetOptimizationResult,
    OutcomeRecord,
    RebalancingRecommendation,
    Urgency,
    VehicleFeatures,
    Zone,
    ZoneDemand,
)
from ridematch.algorithms.geo import filter_by_radius
from ridematch.core.exceptions import DataSourceUnavailable
from ridematch.models import (
    DriverProfileRecord,
    DriverStatus,
    ExperimentVariantRecord,
    MatchOutcomeRecord,
    RebalancingActionRecord,
    RebalancingLogRecord,
    ZoneDemandSnapshot,
    ZoneRecord,
)

logger = logging.getLogger(__name__)

SessionFactory = async_sessionmaker[AsyncSession]

T = TypeVar("T")

# Rough km per degree of latitude, used for the bounding-box prefilter
_KM_PER_DEGREE: float = 111.0


# ---------------------------------------------------------------------------
# Row -> entity conversion
# ---------------------------------------------------------------------------

def _from_document(cls: Type[T], document: Optional[dict[str, Any]]) -> T:
    """Build a frozen dataclass from a JSON document, ignoring unknown keys."""
    known = {f.name for f in dataclasses.fields(cls)}
    values = {k: v for k, v in (document or {}).items() if k in known}
    return cls(**values)


def driver_from_record(
    record: DriverProfileRecord,
    location: Optional[Coordinate] = None,
) -> DriverCandidate:
    """Snapshot a driver row.  ``location`` overrides the stored position."""
    characteristics = _from_document(DriverCharacteristics, record.characteristics)
    characteristics = dataclasses.replace(
        characteristics, languages=tuple(characteristics.languages)
    )
    availability = _from_document(DriverAvailability, record.availability)
    availability = dataclasses.replace(
        availability,
        preferred_hours=frozenset(availability.preferred_hours),
        preferred_zones=tuple(availability.preferred_zones),
    )

    if location is None:
        location = Coordinate(latitude=record.latitude, longitude=record.longitude)

    return DriverCandidate(
        driver_id=record.driver_id,
        location=location,
        is_available=record.status == DriverStatus.AVAILABLE,
        vehicle_type=record.vehicle_type,
        rating=record.rating,
        completed_rides=record.completed_rides,
        characteristics=characteristics,
        vehicle_features=_from_document(VehicleFeatures, record.vehicle_features),
        performance=_from_document(DriverPerformance, record.performance),
        availability=availability,
        current_load=record.current_load,
        max_capacity=record.max_capacity,
        zone_id=record.zone_id,
    )


def outcome_from_record(record: MatchOutcomeRecord) -> OutcomeRecord:
    return OutcomeRecord(
        match_request_id=record.match_request_id,
        selected_driver_id=record.selected_driver_id,
        passenger_rating=record.passenger_rating,
        driver_rating=record.driver_rating,
        completion_status=record.completion_status,
        alternative_driver_ids=tuple(record.alternative_driver_ids or ()),
        actual_arrival_minutes=record.actual_arrival_minutes,
        actual_fare=record.actual_fare,
        issues=tuple(record.issues or ()),
        vehicle_type=record.vehicle_type,
        urgency=Urgency(record.urgency) if record.urgency else None,
        created_at=record.recorded_at,
    )


def zone_from_record(record: ZoneRecord) -> Zone:
    center = None
    if record.center_latitude is not None and record.center_longitude is not None:
        center = Coordinate(latitude=record.center_latitude, longitude=record.center_longitude)
    return Zone(
        zone_id=record.zone_id,
        name=record.name,
        polygon=tuple(Coordinate(latitude=lat, longitude=lng) for lat, lng in record.polygon or ()),
        center=center,
        priority=record.priority,
        demand_multiplier=record.demand_multiplier,
        min_drivers=record.min_drivers,
        max_drivers=record.max_drivers,
    )


# ---------------------------------------------------------------------------
# Drivers
# ---------------------------------------------------------------------------

class SqlCandidateRepository:
    """Driver candidates from the last position stored on the profile row."""

    def __init__(self, session_factory: SessionFactory) -> None:
        self.session_factory = session_factory

    async def find_available_drivers(
        self, center: Coordinate, radius_km: float
    ) -> list[DriverCandidate]:
        lat_span = radius_km / _KM_PER_DEGREE
        # Longitude degrees shrink towards the poles; the radius check below
        # trims the box.
        lng_span = min(180.0, lat_span * 4)

        stmt = select(DriverProfileRecord).where(
            DriverProfileRecord.status == DriverStatus.AVAILABLE,
            DriverProfileRecord.latitude.is_not(None),
            DriverProfileRecord.longitude.is_not(None),
            DriverProfileRecord.latitude.between(center.latitude - lat_span, center.latitude + lat_span),
            DriverProfileRecord.longitude.between(center.longitude - lng_span, center.longitude + lng_span),
        )
        try:
            async with self.session_factory() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as exc:
            raise DataSourceUnavailable("driver_store", str(exc)) from exc

        nearby = filter_by_radius([driver_from_record(r) for r in rows], center, radius_km)
        return [entry.driver for entry in nearby]

    async def list_fleet_drivers(self) -> list[DriverCandidate]:
        stmt = select(DriverProfileRecord).where(
            DriverProfileRecord.status != DriverStatus.OFFLINE,
            DriverProfileRecord.latitude.is_not(None),
            DriverProfileRecord.longitude.is_not(None),
        )
        try:
            async with self.session_factory() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as exc:
            raise DataSourceUnavailable("driver_store", str(exc)) from exc
        return [driver_from_record(r) for r in rows]

    async def get_device_token(self, driver_id: str) -> Optional[str]:
        stmt = select(DriverProfileRecord.device_token).where(
            DriverProfileRecord.driver_id == driver_id
        )
        try:
            async with self.session_factory() as session:
                return (await session.execute(stmt)).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise DataSourceUnavailable("driver_store", str(exc)) from exc


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------

class SqlOutcomeStore:
    def __init__(self, session_factory: SessionFactory) -> None:
        self.session_factory = session_factory

    async def query_outcomes(self, driver_id: str, limit: int) -> list[OutcomeRecord]:
        stmt = (
            select(MatchOutcomeRecord)
            .where(MatchOutcomeRecord.selected_driver_id == driver_id)
            .order_by(MatchOutcomeRecord.recorded_at.desc())
            .limit(limit)
        )
        try:
            async with self.session_factory() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as exc:
            raise DataSourceUnavailable("outcome_store", str(exc)) from exc
        return [outcome_from_record(r) for r in rows]

    async def record_outcome(self, record: OutcomeRecord) -> None:
        row = MatchOutcomeRecord(
            match_request_id=record.match_request_id,
            selected_driver_id=record.selected_driver_id,
            passenger_rating=record.passenger_rating,
            driver_rating=record.driver_rating,
            completion_status=record.completion_status,
            alternative_driver_ids=list(record.alternative_driver_ids),
            actual_arrival_minutes=record.actual_arrival_minutes,
            actual_fare=record.actual_fare,
            issues=list(record.issues),
            vehicle_type=record.vehicle_type,
            urgency=record.urgency.value if record.urgency else None,
            recorded_at=record.created_at,
        )
        try:
            async with self.session_factory() as session:
                existing = await session.execute(
                    select(MatchOutcomeRecord.id).where(
                        MatchOutcomeRecord.match_request_id == record.match_request_id
                    )
                )
                if existing.scalar_one_or_none() is not None:
                    logger.info(
                        "Outcome for match %s already recorded; ignoring duplicate",
                        record.match_request_id,
                    )
                    return
                session.add(row)
                await session.commit()
        except IntegrityError:
            # Concurrent write of the same match id won the race
            logger.info(
                "Outcome for match %s already recorded; ignoring duplicate",
                record.match_request_id,
            )
        except SQLAlchemyError as exc:
            raise DataSourceUnavailable("outcome_store", str(exc)) from exc


# ---------------------------------------------------------------------------
# Experiments
# ---------------------------------------------------------------------------

class SqlExperimentSource:
    def __init__(self, session_factory: SessionFactory) -> None:
        self.session_factory = session_factory

    async def get_active_experiment_variant(self) -> Optional[ExperimentVariant]:
        stmt = (
            select(ExperimentVariantRecord)
            .where(ExperimentVariantRecord.is_active.is_(True))
            .order_by(ExperimentVariantRecord.created_at.desc())
            .limit(1)
        )
        try:
            async with self.session_factory() as session:
                row = (await session.execute(stmt)).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise DataSourceUnavailable("experiment_store", str(exc)) from exc

        if row is None:
            return None
        return ExperimentVariant(
            variant_id=row.variant_id,
            name=row.name,
            algorithm=row.algorithm,
            is_active=row.is_active,
            traffic_percentage=row.traffic_percentage,
            description=row.description or "",
            parameters=dict(row.parameters or {}),
        )


# ---------------------------------------------------------------------------
# Zones
# ---------------------------------------------------------------------------

class SqlZoneSource:
    def __init__(self, session_factory: SessionFactory) -> None:
        self.session_factory = session_factory

    async def get_zones(self) -> list[Zone]:
        stmt = (
            select(ZoneRecord)
            .where(ZoneRecord.is_active.is_(True))
            .order_by(ZoneRecord.zone_id)
        )
        try:
            async with self.session_factory() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as exc:
            raise DataSourceUnavailable("zone_store", str(exc)) from exc
        return [zone_from_record(r) for r in rows]

    async def get_zone_demand(self) -> list[ZoneDemand]:
        """Most recent demand snapshot of every zone."""
        stmt = select(ZoneDemandSnapshot).order_by(ZoneDemandSnapshot.recorded_at.desc())
        try:
            async with self.session_factory() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as exc:
            raise DataSourceUnavailable("zone_store", str(exc)) from exc

        latest: dict[str, ZoneDemand] = {}
        for row in rows:
            if row.zone_id in latest:
                continue
            latest[row.zone_id] = ZoneDemand(
                zone_id=row.zone_id,
                demand=row.demand,
                supply=row.supply,
                average_wait_minutes=row.average_wait_minutes,
            )
        return list(latest.values())


# ---------------------------------------------------------------------------
# Rebalancing audit trail
# ---------------------------------------------------------------------------

class SqlRebalancingSink:
    def __init__(self, session_factory: SessionFactory) -> None:
        self.session_factory = session_factory

    async def record_rebalancing_action(self, recommendation: RebalancingRecommendation) -> None:
        impact = recommendation.estimated_impact
        row = RebalancingActionRecord(
            driver_id=recommendation.driver_id,
            source_zone_id=recommendation.source_zone_id,
            target_zone_id=recommendation.target_zone_id,
            target_latitude=recommendation.target_location.latitude,
            target_longitude=recommendation.target_location.longitude,
            priority=recommendation.priority.value,
            reason=recommendation.reason,
            estimated_travel_minutes=recommendation.estimated_travel_minutes,
            confidence=recommendation.confidence,
            estimated_impact={
                "wait_time_reduction_minutes": impact.wait_time_reduction_minutes,
                "utilization_gain": impact.utilization_gain,
                "revenue_gain": impact.revenue_gain,
            },
        )
        try:
            async with self.session_factory() as session:
                session.add(row)
                await session.commit()
        except SQLAlchemyError as exc:
            raise DataSourceUnavailable("rebalancing_store", str(exc)) from exc

    async def log_rebalancing_pass(self, result: FleetOptimizationResult) -> None:
        row = RebalancingLogRecord(
            optimization_score=result.optimization_score,
            total_drivers=result.total_drivers,
            active_drivers=result.active_drivers,
            average_utilization=result.average_utilization,
            total_demand=result.total_demand,
            unmet_demand=result.unmet_demand,
            recommendations_count=len(result.recommendations),
            executed_count=len(result.executed_recommendations),
            triggered=result.rebalancing_triggered,
            zone_status=[
                {
                    "zone_id": status.zone.zone_id,
                    "current_drivers": status.current_drivers,
                    "target_drivers": status.target_drivers,
                }
                for status in result.zone_status
            ],
        )
        try:
            async with self.session_factory() as session:
                session.add(row)
                await session.commit()
        except SQLAlchemyError as exc:
            raise DataSourceUnavailable("rebalancing_store", str(exc)) from exc
