"""
Match Ranking
=============

Orders scored candidates and trims the list to the top N.

Default ordering is ``total_score`` descending.  Python's sort is stable,
so candidates with equal scores keep the order in which they were scored.

An active experiment variant may swap in an alternate sort key:

  preference_weighted    -- 2 x preference score + total score
  performance_optimized  -- 2 x performance score + total score

Any other algorithm name (``standard``, ``ml_enhanced``, or unknown
values) keeps the default ordering.
"""

from __future__ import annotations

from typing import Callable, Optional, Sequence

from ridematch.algorithms.entities import ExperimentVariant
from ridematch.algorithms.matchScoring import MatchScore

DEFAULT_TOP_N: int = 5

SortKey = Callable[[MatchScore], float]


def _default_key(match: MatchScore) -> float:
    return match.total_score


VARIANT_SORT_KEYS: dict[str, SortKey] = {
    "preference_weighted": lambda m: 2 * m.preference_score + m.total_score,
    "performance_optimized": lambda m: 2 * m.performance_score + m.total_score,
}


def sort_key_for(variant: Optional[ExperimentVariant]) -> SortKey:
    if variant is None or not variant.is_active:
        return _default_key
    return VARIANT_SORT_KEYS.get(variant.algorithm, _default_key)


def rank_matches(
    scores: Sequence[MatchScore],
    variant: Optional[ExperimentVariant] = None,
    limit: int = DEFAULT_TOP_N,
) -> list[MatchScore]:
    """Rank scored matches and return the best ``limit`` of them.

    Args:
        scores: MatchScores in the order they were computed.
        variant: Optional active experiment variant.
        limit: Maximum number of matches to return.

    Returns:
        New list sorted descending by the applicable key, ties in input order.
    """
    if limit <= 0:
        return []
    ranked = sorted(scores, key=sort_key_for(variant), reverse=True)
    return ranked[:limit]
