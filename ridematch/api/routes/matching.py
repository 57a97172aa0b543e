"""
Matching API Routes
===================

REST endpoints for ride matching.

Routes:
  POST /api/v1/matching/find      -- Rank drivers for a ride request
  POST /api/v1/matching/outcomes  -- Record the outcome of a match
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, status

from ridematch.api.deps import MatchingServiceDep
from ridematch.api.schemas.matching import (
    FindMatchRequest,
    FindMatchResponse,
    MatchOut,
    OutcomeRecordedResponse,
    RecordOutcomeRequest,
)
from ridematch.core.exceptions import DataSourceUnavailable, InvalidOutcome, InvalidRequest

router = APIRouter(prefix="/matching", tags=["Matching"])


# ---------------------------------------------------------------------------
# POST /api/v1/matching/find -- Rank drivers for a ride request
# ---------------------------------------------------------------------------

@router.post(
    "/find",
    response_model=FindMatchResponse,
    summary="Find the best drivers for a ride request",
    description=(
        "Scores every available driver within the search radius on distance, "
        "availability, passenger preferences, performance, experience, "
        "compatibility and accessibility, adjusts for historical outcomes, "
        "and returns the top matches best first. An empty list means no "
        "driver is available nearby."
    ),
)
async def find_matches(
    service: MatchingServiceDep,
    body: FindMatchRequest,
) -> FindMatchResponse:
    try:
        request = body.to_domain()
        matches = await service.find_matches(request, radius_km=body.radius_km)
    except InvalidRequest as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        )
    except DataSourceUnavailable as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        )

    return FindMatchResponse(
        request_id=body.request_id,
        total_matches=len(matches),
        matches=[MatchOut.from_score(m) for m in matches],
    )


# ---------------------------------------------------------------------------
# POST /api/v1/matching/outcomes -- Record a match outcome
# ---------------------------------------------------------------------------

@router.post(
    "/outcomes",
    response_model=OutcomeRecordedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record the outcome of a match",
    description=(
        "Stores how a match turned out (completion status and both ratings). "
        "Outcomes feed the historical adjustment of future scores. Recording "
        "the same match twice is a no-op."
    ),
)
async def record_outcome(
    service: MatchingServiceDep,
    body: RecordOutcomeRequest,
) -> OutcomeRecordedResponse:
    record = body.to_domain()
    try:
        await service.record_outcome(record)
    except InvalidOutcome as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        )
    except DataSourceUnavailable as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        )

    return OutcomeRecordedResponse(
        match_request_id=record.match_request_id,
        selected_driver_id=record.selected_driver_id,
        completion_status=record.completion_status,
        is_success=record.is_success,
    )
