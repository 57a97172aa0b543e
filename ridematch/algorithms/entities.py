"""
Domain entities for ride matching and fleet rebalancing.

Every entity here is an immutable snapshot: the engine reads them but never
writes driver, zone, or outcome state back.  Persistence adapters convert
their own rows into these types before handing them to the algorithms.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class Urgency(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def tier(self) -> int:
        return _URGENCY_TIERS[self]


_URGENCY_TIERS: dict[Urgency, int] = {
    Urgency.LOW: 0,
    Urgency.MEDIUM: 1,
    Urgency.HIGH: 2,
    Urgency.URGENT: 3,
}


class CompletionStatus(str, enum.Enum):
    COMPLETED = "completed"
    CANCELLED_BY_PASSENGER = "cancelled_by_passenger"
    CANCELLED_BY_DRIVER = "cancelled_by_driver"
    NO_SHOW = "no_show"


class RecommendationPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK: dict[RecommendationPriority, int] = {
    RecommendationPriority.LOW: 1,
    RecommendationPriority.MEDIUM: 2,
    RecommendationPriority.HIGH: 3,
}


ANY = "any"


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float


# ---------------------------------------------------------------------------
# Ride request
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AccessibilityNeeds:
    """Accessibility requirements attached to a ride request."""

    wheelchair: bool = False
    service_animal: bool = False
    child_seat: bool = False
    hearing_impaired: bool = False
    visually_impaired: bool = False
    cognitive_support: bool = False

    @property
    def has_sensory_needs(self) -> bool:
        return self.hearing_impaired or self.visually_impaired or self.cognitive_support

    def requested(self) -> list[str]:
        """Names of the flags that are set, in declaration order."""
        return [name for name, value in self.as_dict().items() if value]

    def is_empty(self) -> bool:
        return not self.requested()

    def as_dict(self) -> dict[str, bool]:
        return {
            "wheelchair": self.wheelchair,
            "service_animal": self.service_animal,
            "child_seat": self.child_seat,
            "hearing_impaired": self.hearing_impaired,
            "visually_impaired": self.visually_impaired,
            "cognitive_support": self.cognitive_support,
        }


@dataclass(frozen=True)
class PassengerPreferences:
    driver_gender: Optional[str] = None
    conversation_style: Optional[str] = None
    music_preference: Optional[str] = None
    languages: tuple[str, ...] = ()
    smoking_tolerance: bool = False
    pet_tolerance: bool = False
    minimum_rating: Optional[float] = None
    temperature_preference: Optional[float] = None


@dataclass(frozen=True)
class MatchRequest:
    """A single matching attempt for one passenger."""

    request_id: str
    passenger_id: str
    pickup: Coordinate
    dropoff: Coordinate
    requested_time: datetime
    vehicle_type: str = ANY
    urgency: Urgency = Urgency.MEDIUM
    accessibility_needs: Optional[AccessibilityNeeds] = None
    preferences: PassengerPreferences = field(default_factory=PassengerPreferences)

    @property
    def needs_accessibility(self) -> bool:
        return self.accessibility_needs is not None and not self.accessibility_needs.is_empty()


# ---------------------------------------------------------------------------
# Driver snapshot
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DriverCharacteristics:
    gender: str = "other"
    age: int = 0
    experience_years: float = 0.0
    conversation_style: str = "friendly"
    music_preference: str = "low"
    smoking_policy: bool = False
    pet_policy: bool = False
    languages: tuple[str, ...] = ()


@dataclass(frozen=True)
class VehicleFeatures:
    air_conditioning: bool = False
    wifi: bool = False
    phone_charger: bool = False
    wheelchair_accessible: bool = False
    child_seat_available: bool = False
    service_animal_friendly: bool = False
    audio_system: bool = False
    temperature_control: bool = False
    sensory_support: bool = False


@dataclass(frozen=True)
class DriverPerformance:
    average_response_seconds: float = 60.0
    cancellation_rate: float = 0.0
    late_arrival_rate: float = 0.0
    satisfaction_score: float = 0.0  # 0-5 scale
    safety_score: float = 1.0
    efficiency_score: float = 1.0


@dataclass(frozen=True)
class DriverAvailability:
    preferred_hours: frozenset[int] = frozenset()
    preferred_zones: tuple[str, ...] = ()
    max_rides_per_day: int = 20
    current_ride_count: int = 0


@dataclass(frozen=True)
class DriverCandidate:
    """Read-only snapshot of a driver taken for a single request or pass."""

    driver_id: str
    location: Coordinate
    is_available: bool = True
    vehicle_type: str = "standard"
    rating: float = 5.0
    completed_rides: int = 0
    characteristics: DriverCharacteristics = field(default_factory=DriverCharacteristics)
    vehicle_features: VehicleFeatures = field(default_factory=VehicleFeatures)
    performance: DriverPerformance = field(default_factory=DriverPerformance)
    availability: DriverAvailability = field(default_factory=DriverAvailability)
    current_load: int = 0
    max_capacity: int = 3
    zone_id: Optional[str] = None

    @property
    def utilization_rate(self) -> float:
        if self.max_capacity <= 0:
            return 1.0
        return self.current_load / self.max_capacity


# ---------------------------------------------------------------------------
# Outcomes & experiments
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class OutcomeRecord:
    """The realised result of a match.  Append-only."""

    match_request_id: str
    selected_driver_id: str
    passenger_rating: float
    driver_rating: float
    completion_status: CompletionStatus
    alternative_driver_ids: tuple[str, ...] = ()
    actual_arrival_minutes: Optional[float] = None
    actual_fare: Optional[float] = None
    issues: tuple[str, ...] = ()
    vehicle_type: Optional[str] = None
    urgency: Optional[Urgency] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_success(self) -> bool:
        return (
            self.completion_status == CompletionStatus.COMPLETED
            and self.passenger_rating >= 4
            and self.driver_rating >= 4
        )


@dataclass(frozen=True)
class ExperimentVariant:
    variant_id: str
    name: str
    algorithm: str
    is_active: bool = True
    traffic_percentage: float = 100.0
    description: str = ""
    parameters: dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Zones & rebalancing
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Zone:
    """Operator-defined geographic area used for supply/demand balancing."""

    zone_id: str
    name: str = ""
    polygon: tuple[Coordinate, ...] = ()
    center: Optional[Coordinate] = None
    priority: float = 1.0
    demand_multiplier: float = 1.0
    min_drivers: int = 0
    max_drivers: Optional[int] = None

    @property
    def has_location(self) -> bool:
        return self.center is not None or bool(self.polygon)

    @property
    def centroid(self) -> Coordinate:
        if self.center is not None:
            return self.center
        if not self.polygon:
            raise ValueError(f"Zone '{self.zone_id}' has neither a center nor a polygon.")
        lat = sum(p.latitude for p in self.polygon) / len(self.polygon)
        lng = sum(p.longitude for p in self.polygon) / len(self.polygon)
        return Coordinate(latitude=lat, longitude=lng)


@dataclass(frozen=True)
class ZoneDemand:
    zone_id: str
    demand: float
    supply: Optional[float] = None
    average_wait_minutes: float = 0.0


@dataclass(frozen=True)
class ZoneStatus:
    zone: Zone
    current_drivers: int
    target_drivers: int
    average_wait_minutes: float = 0.0

    @property
    def deviation(self) -> int:
        return self.current_drivers - self.target_drivers


@dataclass(frozen=True)
class EstimatedImpact:
    wait_time_reduction_minutes: float
    utilization_gain: float
    revenue_gain: float


@dataclass(frozen=True)
class RebalancingRecommendation:
    driver_id: str
    current_location: Coordinate
    target_location: Coordinate
    source_zone_id: str
    target_zone_id: str
    reason: str
    priority: RecommendationPriority
    estimated_impact: EstimatedImpact
    estimated_travel_minutes: float
    confidence: float


@dataclass(frozen=True)
class FleetOptimizationResult:
    total_drivers: int
    active_drivers: int
    average_utilization: float
    total_demand: float
    unmet_demand: float
    recommendations: tuple[RebalancingRecommendation, ...]
    zone_status: tuple[ZoneStatus, ...]
    optimization_score: float
    rebalancing_triggered: bool = False
    executed_recommendations: tuple[RebalancingRecommendation, ...] = ()
