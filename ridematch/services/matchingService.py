"""
Matching Service -- ride request to ranked driver shortlist
===========================================================

Orchestrates one matching attempt:

  1. Validate the request (coordinates, urgency, accessibility flags).
  2. Fetch available candidates around the pickup point.
  3. Derive factor weights for the request.
  4. Score every candidate concurrently, each with its own history lookup.
  5. Rank with the active experiment variant (when the passenger falls in
     its traffic slice) and trim to the configured number of results.

Degradation rules:
  - Candidate repository down or slow  -> ``DataSourceUnavailable``.
  - History lookup down or slow        -> neutral multiplier, that driver only.
  - Experiment lookup down or slow     -> default ranking.
  - Distance oracle down or slow       -> haversine distance for that leg.

Cancelling ``find_matches`` cancels every in-flight scoring coroutine.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import math
import os
import time
from typing import Optional, Sequence

from ridematch.algorithms.entities import (
    AccessibilityNeeds,
    Coordinate,
    DriverCandidate,
    ExperimentVariant,
    MatchRequest,
    OutcomeRecord,
    Urgency,
)
from ridematch.algorithms.geo import distance_between
from ridematch.algorithms.historyMultiplier import HistoryMultiplier, default_history_multiplier
from ridematch.algorithms.matchRanking import rank_matches
from ridematch.algorithms.matchScoring import MatchScore, score_driver
from ridematch.algorithms.weightPolicy import WeightSet, derive_weights
from ridematch.core.config import settings
from ridematch.core.exceptions import (
    DataSourceUnavailable,
    InvalidOutcome,
    InvalidRequest,
)
from ridematch.events.matchEvents import emit_match_completed, emit_outcome_recorded
from ridematch.services.distanceOracle import HaversineDistanceOracle
from ridematch.services.outcomeAnalyzer import HistoricalOutcomeAnalyzer
from ridematch.services.ports import (
    CandidateRepository,
    DistanceOracle,
    ExperimentSource,
    OutcomeStore,
)

logger = logging.getLogger(__name__)

MIN_RATING: float = 0.0
MAX_RATING: float = 5.0


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def _validate_coordinate(label: str, point: Optional[Coordinate]) -> None:
    if point is None:
        raise InvalidRequest(f"{label} location is required")
    for name, value, bound in (
        ("latitude", point.latitude, 90.0),
        ("longitude", point.longitude, 180.0),
    ):
        if value is None or isinstance(value, bool) or not isinstance(value, (int, float)):
            raise InvalidRequest(f"{label} {name} must be a number")
        if math.isnan(value) or not -bound <= value <= bound:
            raise InvalidRequest(f"{label} {name} {value} is out of range")


def validate_match_request(request: MatchRequest, radius_km: float) -> None:
    """Raise ``InvalidRequest`` before any scoring work is done."""
    if not request.request_id:
        raise InvalidRequest("request_id is required")
    _validate_coordinate("pickup", request.pickup)
    _validate_coordinate("dropoff", request.dropoff)

    if not isinstance(request.urgency, Urgency):
        raise InvalidRequest(f"unknown urgency {request.urgency!r}")

    needs = request.accessibility_needs
    if needs is not None:
        if not isinstance(needs, AccessibilityNeeds):
            raise InvalidRequest("accessibility_needs must be a set of boolean flags")
        for name, value in needs.as_dict().items():
            if not isinstance(value, bool):
                raise InvalidRequest(f"accessibility flag '{name}' must be a boolean")

    if radius_km is None or radius_km <= 0:
        raise InvalidRequest(f"search radius must be positive, got {radius_km}")


def validate_outcome(record: OutcomeRecord) -> None:
    if not record.match_request_id:
        raise InvalidOutcome("match_request_id is required")
    if not record.selected_driver_id:
        raise InvalidOutcome("selected_driver_id is required")
    for name, value in (
        ("passenger_rating", record.passenger_rating),
        ("driver_rating", record.driver_rating),
    ):
        if not MIN_RATING <= value <= MAX_RATING:
            raise InvalidOutcome(f"{name} {value} must be between 0 and 5")


# ---------------------------------------------------------------------------
# Experiment traffic split
# ---------------------------------------------------------------------------

def stable_bucket(passenger_id: str, variant_id: str) -> float:
    """Deterministic position of a passenger in [0, 100) for one variant."""
    digest = hashlib.sha256(f"{passenger_id}:{variant_id}".encode("utf-8")).hexdigest()
    n = int(digest[:8], 16)
    return (n % 10_000_000) / 100_000.0


def variant_applies(variant: Optional[ExperimentVariant], passenger_id: str) -> bool:
    if variant is None or not variant.is_active:
        return False
    return stable_bucket(passenger_id, variant.variant_id) < variant.traffic_percentage


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class MatchingService:
    """Finds and ranks drivers for ride requests."""

    def __init__(
        self,
        candidates: CandidateRepository,
        outcomes: OutcomeStore,
        experiments: Optional[ExperimentSource] = None,
        *,
        distance_oracle: Optional[DistanceOracle] = None,
        history_multiplier: HistoryMultiplier = default_history_multiplier,
        radius_km: float = settings.match_radius_km,
        max_results: int = settings.max_match_results,
        history_limit: int = settings.history_lookup_limit,
        workers: int = settings.scoring_workers,
        candidate_timeout_seconds: float = settings.candidate_timeout_seconds,
        history_timeout_seconds: float = settings.history_timeout_seconds,
        experiment_timeout_seconds: float = settings.experiment_timeout_seconds,
        distance_timeout_seconds: float = settings.distance_timeout_seconds,
    ) -> None:
        self.candidates = candidates
        self.outcomes = outcomes
        self.experiments = experiments
        self.distance_oracle = distance_oracle or HaversineDistanceOracle()
        self.history_multiplier = history_multiplier
        self.radius_km = radius_km
        self.max_results = max_results
        self.workers = workers if workers > 0 else (os.cpu_count() or 1)
        self.candidate_timeout_seconds = candidate_timeout_seconds
        self.experiment_timeout_seconds = experiment_timeout_seconds
        self.distance_timeout_seconds = distance_timeout_seconds
        self.analyzer = HistoricalOutcomeAnalyzer(
            outcomes,
            timeout_seconds=history_timeout_seconds,
            limit=history_limit,
        )

    # -- Matching ------------------------------------------------------------

    async def find_matches(
        self,
        request: MatchRequest,
        radius_km: Optional[float] = None,
    ) -> list[MatchScore]:
        """Return the ranked shortlist of drivers for ``request``.

        Args:
            request: The ride request.
            radius_km: Search radius override; defaults to the configured one.

        Returns:
            Up to ``max_results`` MatchScores, best first.  Empty when no
            driver is available within the radius.

        Raises:
            InvalidRequest: The request failed validation.
            DataSourceUnavailable: Candidates could not be fetched in time.
        """
        radius = self.radius_km if radius_km is None else radius_km
        validate_match_request(request, radius)
        started = time.perf_counter()

        drivers = await self._fetch_candidates(request, radius)
        if not drivers:
            logger.info(
                "No drivers within %.1fkm for request %s", radius, request.request_id
            )
            return []

        weights = derive_weights(request)
        scores, variant = await asyncio.gather(
            self._score_all(request, drivers, weights, radius),
            self._active_variant(),
        )

        if not variant_applies(variant, request.passenger_id):
            variant = None
        elif variant is not None:
            logger.debug(
                "Request %s ranked with variant %s (%s)",
                request.request_id,
                variant.variant_id,
                variant.algorithm,
            )

        ranked = rank_matches(scores, variant, self.max_results)
        emit_match_completed(
            request.request_id,
            candidates_evaluated=len(scores),
            returned=len(ranked),
            top_driver_id=ranked[0].driver_id if ranked else None,
            elapsed_ms=(time.perf_counter() - started) * 1000,
        )
        return ranked

    async def _fetch_candidates(
        self, request: MatchRequest, radius_km: float
    ) -> list[DriverCandidate]:
        try:
            return await asyncio.wait_for(
                self.candidates.find_available_drivers(request.pickup, radius_km),
                timeout=self.candidate_timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            logger.error(
                "Candidate lookup for request %s timed out after %.2fs",
                request.request_id,
                self.candidate_timeout_seconds,
            )
            raise DataSourceUnavailable("candidate_repository", "timed out") from exc
        except DataSourceUnavailable:
            raise
        except Exception as exc:
            logger.exception("Candidate lookup failed for request %s", request.request_id)
            raise DataSourceUnavailable("candidate_repository", str(exc)) from exc

    async def _score_all(
        self,
        request: MatchRequest,
        drivers: Sequence[DriverCandidate],
        weights: WeightSet,
        radius_km: float,
    ) -> list[MatchScore]:
        semaphore = asyncio.Semaphore(self.workers)
        trip_km = await self._distance_km(request.pickup, request.dropoff)

        async def _score_one(driver: DriverCandidate) -> MatchScore:
            async with semaphore:
                history = await self.analyzer.history_for(driver.driver_id)
                pickup_km = await self._distance_km(driver.location, request.pickup)
                return score_driver(
                    request,
                    driver,
                    weights,
                    history,
                    multiplier=self.history_multiplier,
                    pickup_distance_km=pickup_km,
                    trip_distance_km=trip_km,
                    max_distance_km=radius_km,
                )

        # gather preserves input order, which keeps tie-breaking stable
        return list(await asyncio.gather(*(_score_one(d) for d in drivers)))

    async def _distance_km(self, origin: Coordinate, destination: Coordinate) -> float:
        try:
            return await asyncio.wait_for(
                self.distance_oracle.distance_km(origin, destination),
                timeout=self.distance_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Distance oracle timed out after %.2fs; using straight-line distance",
                self.distance_timeout_seconds,
            )
        except Exception:
            logger.exception("Distance oracle failed; using straight-line distance")
        return distance_between(origin, destination)

    async def _active_variant(self) -> Optional[ExperimentVariant]:
        if self.experiments is None:
            return None
        try:
            return await asyncio.wait_for(
                self.experiments.get_active_experiment_variant(),
                timeout=self.experiment_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning("Experiment lookup timed out; using default ranking")
            return None
        except Exception:
            logger.exception("Experiment lookup failed; using default ranking")
            return None

    # -- Outcomes ------------------------------------------------------------

    async def record_outcome(self, record: OutcomeRecord) -> None:
        """Validate and persist the realised outcome of a match."""
        validate_outcome(record)
        await self.outcomes.record_outcome(record)
        emit_outcome_recorded(
            record.match_request_id,
            record.selected_driver_id,
            record.completion_status.value,
        )
