"""
Matching & rebalancing event emitters.

Each function logs a standardised event and returns the payload dict so
callers (or a future pub/sub transport) can forward it.

Events emitted:
  - match.completed
  - match.outcome_recorded
  - fleet.pass_completed
  - fleet.recommendation_sent
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)


def _build_event(
    event_type: str,
    subject_id: str,
    *,
    data: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Construct a standardised event payload."""
    return {
        "event_type": event_type,
        "subject_id": subject_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "data": data or {},
    }


def emit_match_completed(
    request_id: str,
    candidates_evaluated: int,
    returned: int,
    top_driver_id: str | None,
    elapsed_ms: float,
) -> dict[str, Any]:
    event = _build_event(
        "match.completed",
        request_id,
        data={
            "candidates_evaluated": candidates_evaluated,
            "returned": returned,
            "top_driver_id": top_driver_id,
            "elapsed_ms": round(elapsed_ms, 1),
        },
    )
    logger.info(
        "Event emitted: %s for request %s (evaluated=%d, returned=%d, %.1fms)",
        event["event_type"],
        request_id,
        candidates_evaluated,
        returned,
        elapsed_ms,
    )
    return event


def emit_outcome_recorded(
    request_id: str,
    driver_id: str,
    completion_status: str,
) -> dict[str, Any]:
    event = _build_event(
        "match.outcome_recorded",
        request_id,
        data={"driver_id": driver_id, "completion_status": completion_status},
    )
    logger.info("Event emitted: %s for request %s", event["event_type"], request_id)
    return event


def emit_fleet_pass_completed(
    optimization_score: float,
    recommendations: int,
    executed: int,
    triggered: bool,
) -> dict[str, Any]:
    event = _build_event(
        "fleet.pass_completed",
        "fleet",
        data={
            "optimization_score": round(optimization_score, 2),
            "recommendations": recommendations,
            "executed": executed,
            "triggered": triggered,
        },
    )
    logger.info(
        "Event emitted: %s (score=%.1f, recommendations=%d, executed=%d)",
        event["event_type"],
        optimization_score,
        recommendations,
        executed,
    )
    return event


def emit_recommendation_sent(
    driver_id: str,
    target_zone_id: str,
    priority: str,
) -> dict[str, Any]:
    event = _build_event(
        "fleet.recommendation_sent",
        driver_id,
        data={"target_zone_id": target_zone_id, "priority": priority},
    )
    logger.info(
        "Event emitted: %s for driver %s -> zone %s",
        event["event_type"],
        driver_id,
        target_zone_id,
    )
    return event
