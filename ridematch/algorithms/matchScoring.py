"""
Match Scoring Engine
====================

Scores a single driver against a ride request using seven weighted
factors, each normalised to the 0-1 range:

  1. Distance       -- proximity of the driver to the pickup point
  2. Availability   -- online status, preferred hours, daily capacity
  3. Preferences    -- passenger preferences actually specified
  4. Performance    -- response time, reliability, punctuality, ratings
  5. Experience     -- years driving and completed rides
  6. Compatibility  -- vehicle type, smoking/pet policy, climate control
  7. Accessibility  -- fraction of accessibility needs the vehicle meets

The weighted sum is scaled by a historical success multiplier and clamped
to [0, 1].  ``score_driver`` is a pure function of its inputs: it holds no
state, performs no I/O, and is safe to call concurrently for many drivers
against the same request.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from ridematch.algorithms.entities import (
    ANY,
    DriverCandidate,
    MatchRequest,
    OutcomeRecord,
)
from ridematch.algorithms.geo import AVERAGE_CITY_SPEED_KMH, distance_between, travel_minutes
from ridematch.algorithms.historyMultiplier import (
    HISTORY_UNAVAILABLE,
    HistoryAdjustment,
    HistoryMultiplier,
    default_history_multiplier,
)
from ridematch.algorithms.weightPolicy import FACTOR_NAMES, WeightSet


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_MAX_DISTANCE_KM: float = 10.0
VERY_CLOSE_KM: float = 2.0
NEARBY_KM: float = 5.0

MAX_RESPONSE_SECONDS: float = 300.0
CAPACITY_HEADROOM_RATIO: float = 0.8

MAX_EXPERIENCE_YEARS: float = 5.0
MAX_COMPLETED_RIDES: float = 1000.0

BASE_FARE: float = 3.50
PER_KM_RATE: float = 2.00

LOW_VARIANCE_THRESHOLD: float = 0.1
NEW_DRIVER_RIDES: int = 50
SEASONED_DRIVER_RIDES: int = 100

PERFORMANCE_BLEND: dict[str, float] = {
    "response": 0.2,
    "reliability": 0.2,
    "punctuality": 0.2,
    "satisfaction": 0.2,
    "safety": 0.1,
    "efficiency": 0.1,
}

COMPATIBILITY_CREDITS: dict[str, float] = {
    "vehicle_type": 0.3,
    "smoking": 0.2,
    "pets": 0.2,
    "temperature": 0.3,
}

# Accessibility need -> vehicle feature that satisfies it
ACCESSIBILITY_FEATURES: dict[str, str] = {
    "wheelchair": "wheelchair_accessible",
    "service_animal": "service_animal_friendly",
    "child_seat": "child_seat_available",
    "hearing_impaired": "sensory_support",
    "visually_impaired": "sensory_support",
    "cognitive_support": "sensory_support",
}

EXPLANATION_TOP_FACTORS: int = 3


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FactorScore:
    score: float
    weight: float
    explanation: str


@dataclass(frozen=True)
class MatchScore:
    driver_id: str
    total_score: float
    confidence: float
    explanation: str
    factors: dict[str, FactorScore]
    estimated_arrival_minutes: int
    estimated_fare: float
    risk_score: float
    history_multiplier: float = 1.0

    @property
    def preference_score(self) -> float:
        return self.factors["preferences"].score

    @property
    def performance_score(self) -> float:
        return self.factors["performance"].score


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(value, high))


# ---------------------------------------------------------------------------
# Factor scores (raw score in [0, 1] plus explanation)
# ---------------------------------------------------------------------------

def distance_factor(distance_km: float, max_distance_km: float = DEFAULT_MAX_DISTANCE_KM) -> tuple[float, str]:
    score = _clamp(1.0 - distance_km / max_distance_km)
    if distance_km < VERY_CLOSE_KM:
        bucket = "Very close"
    elif distance_km < NEARBY_KM:
        bucket = "Nearby"
    else:
        bucket = "Within range"
    return score, f"Driver is {distance_km:.1f}km away. {bucket}."


def availability_factor(request: MatchRequest, driver: DriverCandidate) -> tuple[float, str]:
    score = 0.0
    notes: list[str] = []

    if driver.is_available:
        score += 0.5

    if request.requested_time.hour in driver.availability.preferred_hours:
        score += 0.3
        notes.append("Driver is in preferred working hours.")

    max_rides = driver.availability.max_rides_per_day
    if max_rides > 0 and driver.availability.current_ride_count / max_rides < CAPACITY_HEADROOM_RATIO:
        score += 0.2
        notes.append("Driver has capacity for more rides.")

    return _clamp(score), " ".join(notes) or "Driver availability assessed."


def preference_factor(request: MatchRequest, driver: DriverCandidate) -> tuple[float, str]:
    prefs = request.preferences
    traits = driver.characteristics
    checks: list[tuple[bool, str]] = []

    if prefs.driver_gender and prefs.driver_gender != ANY:
        checks.append((prefs.driver_gender == traits.gender, "Gender preference matched"))
    if prefs.conversation_style and prefs.conversation_style != ANY:
        checks.append(
            (prefs.conversation_style == traits.conversation_style, "Conversation style compatible")
        )
    if prefs.music_preference and prefs.music_preference != ANY:
        checks.append((prefs.music_preference == traits.music_preference, "Music preference aligned"))
    if prefs.languages:
        shared = any(lang in traits.languages for lang in prefs.languages)
        checks.append((shared, "Common language available"))
    if prefs.minimum_rating is not None:
        checks.append((driver.rating >= prefs.minimum_rating, "Driver rating meets requirements"))

    if not checks:
        return 0.5, "No passenger preferences specified."

    matched = [label for ok, label in checks if ok]
    explanation = f"{len(matched)}/{len(checks)} preferences matched."
    if matched:
        explanation = f"{explanation} {', '.join(matched)}."
    return len(matched) / len(checks), explanation


def performance_factor(driver: DriverCandidate) -> tuple[float, str]:
    perf = driver.performance
    parts = {
        "response": max(0.0, 1.0 - perf.average_response_seconds / MAX_RESPONSE_SECONDS),
        "reliability": 1.0 - perf.cancellation_rate,
        "punctuality": 1.0 - perf.late_arrival_rate,
        "satisfaction": perf.satisfaction_score / 5.0,
        "safety": perf.safety_score,
        "efficiency": perf.efficiency_score,
    }
    score = _clamp(sum(parts[name] * weight for name, weight in PERFORMANCE_BLEND.items()))

    strengths: list[str] = []
    if parts["response"] > 0.8:
        strengths.append("quick response")
    if parts["reliability"] > 0.9:
        strengths.append("highly reliable")
    if parts["punctuality"] > 0.9:
        strengths.append("always punctual")
    if parts["satisfaction"] > 0.8:
        strengths.append("high customer satisfaction")

    if strengths:
        return score, f"Strong performance with {', '.join(strengths)}."
    return score, "Performance within normal range."


def experience_factor(driver: DriverCandidate) -> tuple[float, str]:
    years = min(driver.characteristics.experience_years / MAX_EXPERIENCE_YEARS, 1.0)
    rides = min(driver.completed_rides / MAX_COMPLETED_RIDES, 1.0)
    score = _clamp(years * 0.4 + rides * 0.6)

    if score > 0.8:
        level = "Highly experienced"
    elif score > 0.6:
        level = "Experienced"
    elif score > 0.3:
        level = "Moderately experienced"
    else:
        level = "New"
    return score, f"{level} driver with {driver.completed_rides} completed rides."


def compatibility_factor(request: MatchRequest, driver: DriverCandidate) -> tuple[float, str]:
    prefs = request.preferences
    score = 0.0
    matched: list[str] = []

    if request.vehicle_type == ANY or request.vehicle_type == driver.vehicle_type:
        score += COMPATIBILITY_CREDITS["vehicle_type"]
        matched.append("vehicle type match")
    if prefs.smoking_tolerance == driver.characteristics.smoking_policy:
        score += COMPATIBILITY_CREDITS["smoking"]
        matched.append("smoking policy compatible")
    if prefs.pet_tolerance == driver.characteristics.pet_policy:
        score += COMPATIBILITY_CREDITS["pets"]
        matched.append("pet policy compatible")
    if prefs.temperature_preference is not None and driver.vehicle_features.temperature_control:
        score += COMPATIBILITY_CREDITS["temperature"]
        matched.append("temperature control available")

    if matched:
        return _clamp(score), f"Compatible: {', '.join(matched)}."
    return 0.0, "Basic compatibility."


def accessibility_factor(request: MatchRequest, driver: DriverCandidate) -> tuple[float, str]:
    if not request.needs_accessibility:
        return 1.0, "No accessibility requirements."

    needs = request.accessibility_needs.requested()
    features = driver.vehicle_features
    met = [n for n in needs if getattr(features, ACCESSIBILITY_FEATURES[n])]
    unmet = [n for n in needs if n not in met]

    parts: list[str] = []
    if met:
        parts.append(f"met {', '.join(met)}")
    if unmet:
        parts.append(f"unmet {', '.join(unmet)}")
    return len(met) / len(needs), f"Accessibility: {'; '.join(parts)}."


# ---------------------------------------------------------------------------
# Derived metrics
# ---------------------------------------------------------------------------

def _variance(values: Sequence[float]) -> float:
    mean = sum(values) / len(values)
    return sum((v - mean) ** 2 for v in values) / len(values)


def compute_confidence(factors: dict[str, FactorScore], driver: DriverCandidate) -> float:
    confidence = 0.5
    if driver.completed_rides > SEASONED_DRIVER_RIDES:
        confidence += 0.2
    if driver.performance.satisfaction_score > 0:
        confidence += 0.1
    if driver.characteristics.experience_years > 1:
        confidence += 0.1
    if _variance([f.score for f in factors.values()]) < LOW_VARIANCE_THRESHOLD:
        confidence += 0.1
    return min(confidence, 1.0)


def compute_risk(driver: DriverCandidate) -> float:
    perf = driver.performance
    risk = (
        perf.cancellation_rate * 0.3
        + perf.late_arrival_rate * 0.2
        + (1.0 - perf.safety_score) * 0.3
    )
    if driver.completed_rides < NEW_DRIVER_RIDES:
        risk += 0.2
    return _clamp(risk)


def estimate_arrival_minutes(distance_km: float, speed_kmh: float = AVERAGE_CITY_SPEED_KMH) -> int:
    return round(travel_minutes(distance_km, speed_kmh))


def estimate_fare(trip_distance_km: float) -> float:
    return round(BASE_FARE + trip_distance_km * PER_KM_RATE, 2)


def build_explanation(
    factors: dict[str, FactorScore],
    adjustment: HistoryAdjustment,
) -> str:
    ranked = sorted(
        factors.items(),
        key=lambda item: item[1].score * item[1].weight,
        reverse=True,
    )[:EXPLANATION_TOP_FACTORS]
    return " ".join([factor.explanation for _, factor in ranked] + [adjustment.explanation])


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def score_driver(
    request: MatchRequest,
    driver: DriverCandidate,
    weights: WeightSet,
    history: Optional[Sequence[OutcomeRecord]],
    *,
    multiplier: HistoryMultiplier = default_history_multiplier,
    pickup_distance_km: Optional[float] = None,
    trip_distance_km: Optional[float] = None,
    max_distance_km: float = DEFAULT_MAX_DISTANCE_KM,
) -> MatchScore:
    """Compute the MatchScore of one driver for one request.

    Args:
        request: The ride request being matched.
        driver: Snapshot of the candidate driver.
        weights: Factor weights from the weight policy.
        history: Past outcomes for this driver.  ``None`` means the lookup
            failed; the multiplier then stays neutral.
        multiplier: Strategy turning history into a score multiplier.
        pickup_distance_km: Driver-to-pickup distance from a routing
            oracle.  Defaults to the haversine distance.
        trip_distance_km: Pickup-to-dropoff distance used for the fare.
            Defaults to the haversine distance.
        max_distance_km: Radius at which the distance factor reaches 0.

    Returns:
        A MatchScore whose total, factor scores, confidence and risk all
        lie in [0, 1].
    """
    if pickup_distance_km is None:
        pickup_distance_km = distance_between(request.pickup, driver.location)
    if trip_distance_km is None:
        trip_distance_km = distance_between(request.pickup, request.dropoff)

    raw: dict[str, tuple[float, str]] = {
        "distance": distance_factor(pickup_distance_km, max_distance_km),
        "availability": availability_factor(request, driver),
        "preferences": preference_factor(request, driver),
        "performance": performance_factor(driver),
        "experience": experience_factor(driver),
        "compatibility": compatibility_factor(request, driver),
        "accessibility": accessibility_factor(request, driver),
    }
    weight_map = weights.as_dict()
    factors = {
        name: FactorScore(score=raw[name][0], weight=weight_map[name], explanation=raw[name][1])
        for name in FACTOR_NAMES
    }

    if history is None:
        adjustment = HISTORY_UNAVAILABLE
    else:
        adjustment = multiplier.adjust(request, driver.driver_id, history)

    weighted = sum(f.score * f.weight for f in factors.values())
    total = _clamp(weighted * adjustment.multiplier)

    return MatchScore(
        driver_id=driver.driver_id,
        total_score=total,
        confidence=compute_confidence(factors, driver),
        explanation=build_explanation(factors, adjustment),
        factors=factors,
        estimated_arrival_minutes=estimate_arrival_minutes(pickup_distance_km),
        estimated_fare=estimate_fare(trip_distance_km),
        risk_score=compute_risk(driver),
        history_multiplier=adjustment.multiplier,
    )
