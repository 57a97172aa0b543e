"""
Pydantic v2 schemas for the Matching API
========================================

Schemas for finding ranked drivers for a ride request and recording the
outcome of a match.  Range checks on coordinates and ratings are left to
the service layer so that every semantic error surfaces as a 400 with the
same message format.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ridematch.algorithms.entities import (
    ANY,
    AccessibilityNeeds,
    CompletionStatus,
    Coordinate,
    MatchRequest,
    OutcomeRecord,
    PassengerPreferences,
    Urgency,
)
from ridematch.algorithms.matchScoring import MatchScore
from ridematch.core.exceptions import InvalidRequest


# ---------------------------------------------------------------------------
# Shared
# ---------------------------------------------------------------------------

class CoordinateIn(BaseModel):
    latitude: float
    longitude: float

    def to_domain(self) -> Coordinate:
        return Coordinate(latitude=self.latitude, longitude=self.longitude)


class CoordinateOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    latitude: float
    longitude: float


# ---------------------------------------------------------------------------
# Find matches
# ---------------------------------------------------------------------------

class AccessibilityNeedsIn(BaseModel):
    wheelchair: bool = False
    service_animal: bool = False
    child_seat: bool = False
    hearing_impaired: bool = False
    visually_impaired: bool = False
    cognitive_support: bool = False


class PreferencesIn(BaseModel):
    driver_gender: Optional[str] = Field(default=None, description="'male', 'female' or 'any'")
    conversation_style: Optional[str] = Field(default=None, description="'quiet', 'friendly', 'chatty' or 'any'")
    music_preference: Optional[str] = Field(default=None, description="'none', 'low', 'any' or a genre")
    languages: list[str] = Field(default_factory=list)
    smoking_tolerance: bool = False
    pet_tolerance: bool = False
    minimum_rating: Optional[float] = None
    temperature_preference: Optional[float] = None


class FindMatchRequest(BaseModel):
    """Request body for finding drivers for a ride."""

    request_id: str = Field(min_length=1, max_length=64)
    passenger_id: str = Field(min_length=1, max_length=64)
    pickup: CoordinateIn
    dropoff: CoordinateIn
    requested_time: Optional[datetime] = Field(
        default=None, description="Defaults to the time the request is received"
    )
    vehicle_type: str = Field(default=ANY, description="'economy', 'standard', 'premium', 'xl' or 'any'")
    urgency: str = Field(default=Urgency.MEDIUM.value, description="'low', 'medium', 'high' or 'urgent'")
    accessibility_needs: Optional[AccessibilityNeedsIn] = None
    preferences: PreferencesIn = Field(default_factory=PreferencesIn)
    radius_km: Optional[float] = Field(
        default=None, description="Override search radius in km"
    )

    def to_domain(self) -> MatchRequest:
        try:
            urgency = Urgency(self.urgency)
        except ValueError:
            raise InvalidRequest(f"unknown urgency {self.urgency!r}") from None

        needs = None
        if self.accessibility_needs is not None:
            needs = AccessibilityNeeds(**self.accessibility_needs.model_dump())

        prefs = self.preferences
        return MatchRequest(
            request_id=self.request_id,
            passenger_id=self.passenger_id,
            pickup=self.pickup.to_domain(),
            dropoff=self.dropoff.to_domain(),
            requested_time=self.requested_time or datetime.now(timezone.utc),
            vehicle_type=self.vehicle_type,
            urgency=urgency,
            accessibility_needs=needs,
            preferences=PassengerPreferences(
                driver_gender=prefs.driver_gender,
                conversation_style=prefs.conversation_style,
                music_preference=prefs.music_preference,
                languages=tuple(prefs.languages),
                smoking_tolerance=prefs.smoking_tolerance,
                pet_tolerance=prefs.pet_tolerance,
                minimum_rating=prefs.minimum_rating,
                temperature_preference=prefs.temperature_preference,
            ),
        )


class FactorOut(BaseModel):
    score: float
    weight: float
    explanation: str


class MatchOut(BaseModel):
    """A single ranked driver with its score breakdown."""

    driver_id: str
    total_score: float = Field(description="Final score in [0, 1]")
    confidence: float
    explanation: str
    factors: dict[str, FactorOut]
    estimated_arrival_minutes: int
    estimated_fare: float
    risk_score: float
    history_multiplier: float

    @classmethod
    def from_score(cls, score: MatchScore) -> "MatchOut":
        return cls(
            driver_id=score.driver_id,
            total_score=score.total_score,
            confidence=score.confidence,
            explanation=score.explanation,
            factors={
                name: FactorOut(score=f.score, weight=f.weight, explanation=f.explanation)
                for name, f in score.factors.items()
            },
            estimated_arrival_minutes=score.estimated_arrival_minutes,
            estimated_fare=score.estimated_fare,
            risk_score=score.risk_score,
            history_multiplier=score.history_multiplier,
        )


class FindMatchResponse(BaseModel):
    request_id: str
    total_matches: int
    matches: list[MatchOut]


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------

class RecordOutcomeRequest(BaseModel):
    """Request body for recording what happened after a match."""

    match_request_id: str
    selected_driver_id: str
    passenger_rating: float = Field(description="0-5")
    driver_rating: float = Field(description="0-5")
    completion_status: CompletionStatus
    alternative_driver_ids: list[str] = Field(default_factory=list)
    actual_arrival_minutes: Optional[float] = None
    actual_fare: Optional[float] = None
    issues: list[str] = Field(default_factory=list)
    vehicle_type: Optional[str] = None
    urgency: Optional[Urgency] = None

    def to_domain(self) -> OutcomeRecord:
        return OutcomeRecord(
            match_request_id=self.match_request_id,
            selected_driver_id=self.selected_driver_id,
            passenger_rating=self.passenger_rating,
            driver_rating=self.driver_rating,
            completion_status=self.completion_status,
            alternative_driver_ids=tuple(self.alternative_driver_ids),
            actual_arrival_minutes=self.actual_arrival_minutes,
            actual_fare=self.actual_fare,
            issues=tuple(self.issues),
            vehicle_type=self.vehicle_type,
            urgency=self.urgency,
        )


class OutcomeRecordedResponse(BaseModel):
    match_request_id: str
    selected_driver_id: str
    completion_status: CompletionStatus
    is_success: bool
