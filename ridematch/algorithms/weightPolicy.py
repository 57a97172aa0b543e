"""
Weight Policy -- dynamic factor weights per ride request.

Weights are expressed as tagged profiles rather than cascading
conditionals.  Each profile is a complete ``WeightSet`` that sums to 1.0:

  standard       -- default blend, distance first
  urgent         -- distance / availability / performance dominate
  accessibility  -- accessibility fit carries 0.30

The accessibility profile takes precedence over urgency: a passenger who
needs a wheelchair-accessible vehicle must not be matched to the closest
car that cannot carry them.
"""

from __future__ import annotations

import enum
from dataclasses import asdict, dataclass

from ridematch.algorithms.entities import MatchRequest, Urgency

FACTOR_NAMES: tuple[str, ...] = (
    "distance",
    "availability",
    "preferences",
    "performance",
    "experience",
    "compatibility",
    "accessibility",
)

# Tolerance for the sum-to-one check
WEIGHT_SUM_TOLERANCE: float = 1e-9


@dataclass(frozen=True)
class WeightSet:
    """Factor weights for one MatchScore."""

    distance: float
    availability: float
    preferences: float
    performance: float
    experience: float
    compatibility: float
    accessibility: float

    def __post_init__(self) -> None:
        for name, value in asdict(self).items():
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"Weight '{name}' must be in [0, 1], got {value}")
        total = self.total()
        if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE:
            raise ValueError(f"Weights must sum to 1.0, got {total:.6f}")

    def total(self) -> float:
        return sum(asdict(self).values())

    def as_dict(self) -> dict[str, float]:
        return asdict(self)


class WeightProfile(str, enum.Enum):
    STANDARD = "standard"
    URGENT = "urgent"
    ACCESSIBILITY = "accessibility"


WEIGHT_PROFILES: dict[WeightProfile, WeightSet] = {
    WeightProfile.STANDARD: WeightSet(
        distance=0.25,
        availability=0.20,
        preferences=0.20,
        performance=0.15,
        experience=0.10,
        compatibility=0.05,
        accessibility=0.05,
    ),
    # Residual 0.10 after the three core factors: accessibility keeps its
    # 0.05 floor, the other three split the remaining 0.05.
    WeightProfile.URGENT: WeightSet(
        distance=0.40,
        availability=0.30,
        preferences=0.025,
        performance=0.20,
        experience=0.015,
        compatibility=0.010,
        accessibility=0.05,
    ),
    WeightProfile.ACCESSIBILITY: WeightSet(
        distance=0.20,
        availability=0.15,
        preferences=0.15,
        performance=0.10,
        experience=0.05,
        compatibility=0.05,
        accessibility=0.30,
    ),
}


def select_profile(request: MatchRequest) -> WeightProfile:
    if request.needs_accessibility:
        return WeightProfile.ACCESSIBILITY
    if request.urgency == Urgency.URGENT:
        return WeightProfile.URGENT
    return WeightProfile.STANDARD


def derive_weights(request: MatchRequest) -> WeightSet:
    """Return the weight set for a request."""
    return WEIGHT_PROFILES[select_profile(request)]
