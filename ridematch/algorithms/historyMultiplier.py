"""
Historical outcome multiplier.

Folds a driver's past match outcomes into the match score.  The default
strategy is a hand-tuned rule table on success rate:

  success rate > 0.8  -> 1.10
  success rate > 0.6  -> 1.05
  success rate < 0.4  -> 0.90
  otherwise           -> 1.00

A match counts as successful when it completed and both parties rated
it 4 or higher.  Only outcomes for broadly similar requests are
considered: same vehicle type and an urgency tier within one step.

Strategies are pluggable through the ``HistoryMultiplier`` protocol so a
trained model can replace the rule table without touching the scorer.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

from ridematch.algorithms.entities import ANY, MatchRequest, OutcomeRecord

NEUTRAL_MULTIPLIER: float = 1.0

# (exclusive lower bound on success rate, multiplier, explanation)
SUCCESS_RATE_RULES: tuple[tuple[float, float, str], ...] = (
    (0.8, 1.10, "Historical data shows high success rate for similar matches."),
    (0.6, 1.05, "Historical data shows good success rate for similar matches."),
)
LOW_SUCCESS_RATE: float = 0.4
LOW_SUCCESS_MULTIPLIER: float = 0.90

MAX_URGENCY_TIER_GAP: int = 1


@dataclass(frozen=True)
class HistoryAdjustment:
    multiplier: float
    explanation: str
    sample_size: int = 0
    success_rate: Optional[float] = None


NO_HISTORY = HistoryAdjustment(
    multiplier=NEUTRAL_MULTIPLIER,
    explanation="No historical data available.",
)

HISTORY_UNAVAILABLE = HistoryAdjustment(
    multiplier=NEUTRAL_MULTIPLIER,
    explanation="Historical data unavailable.",
)


class HistoryMultiplier(Protocol):
    def adjust(
        self,
        request: MatchRequest,
        driver_id: str,
        history: Sequence[OutcomeRecord],
    ) -> HistoryAdjustment:
        ...


def is_similar(request: MatchRequest, record: OutcomeRecord) -> bool:
    """Outcomes with unknown context are treated as similar."""
    if record.vehicle_type is not None and request.vehicle_type != ANY:
        if record.vehicle_type != ANY and record.vehicle_type != request.vehicle_type:
            return False
    if record.urgency is not None:
        if abs(record.urgency.tier - request.urgency.tier) > MAX_URGENCY_TIER_GAP:
            return False
    return True


def similar_outcomes(
    request: MatchRequest,
    driver_id: str,
    history: Sequence[OutcomeRecord],
) -> list[OutcomeRecord]:
    return [
        record
        for record in history
        if record.selected_driver_id == driver_id and is_similar(request, record)
    ]


class SuccessRateMultiplier:
    """Rule-table strategy on historical success rate."""

    def adjust(
        self,
        request: MatchRequest,
        driver_id: str,
        history: Sequence[OutcomeRecord],
    ) -> HistoryAdjustment:
        relevant = similar_outcomes(request, driver_id, history)
        if not relevant:
            return NO_HISTORY

        successes = sum(1 for record in relevant if record.is_success)
        rate = successes / len(relevant)

        for threshold, multiplier, explanation in SUCCESS_RATE_RULES:
            if rate > threshold:
                return HistoryAdjustment(multiplier, explanation, len(relevant), rate)

        if rate < LOW_SUCCESS_RATE:
            return HistoryAdjustment(
                LOW_SUCCESS_MULTIPLIER,
                "Historical data shows lower success rate for similar matches.",
                len(relevant),
                rate,
            )

        return HistoryAdjustment(
            NEUTRAL_MULTIPLIER,
            "Historical data shows average success rate for similar matches.",
            len(relevant),
            rate,
        )


default_history_multiplier = SuccessRateMultiplier()
