"""
Unit tests for the historical success-rate multiplier.
"""

import pytest

from ridematch.algorithms.entities import CompletionStatus, OutcomeRecord, Urgency
from ridematch.algorithms.historyMultiplier import (
    NO_HISTORY,
    SuccessRateMultiplier,
    is_similar,
    similar_outcomes,
)
from tests.conftest import make_outcome, make_request


def _history(successes: int, failures: int, driver_id: str = "driver-1"):
    records = [
        make_outcome(driver_id, match_request_id=f"ok-{i}") for i in range(successes)
    ]
    records += [
        make_outcome(driver_id, match_request_id=f"bad-{i}", success=False)
        for i in range(failures)
    ]
    return records


class TestSuccessRateRules:
    """Rule table thresholds are exclusive lower bounds."""

    multiplier = SuccessRateMultiplier()

    @pytest.mark.parametrize(
        "successes, failures, expected",
        [
            (9, 1, 1.10),  # 0.9
            (7, 3, 1.05),  # 0.7
            (8, 2, 1.05),  # exactly 0.8 is not "> 0.8"
            (5, 5, 1.00),  # 0.5
            (6, 4, 1.00),  # exactly 0.6
            (4, 6, 1.00),  # exactly 0.4
            (3, 7, 0.90),  # 0.3
        ],
    )
    def test_multiplier_by_success_rate(self, successes, failures, expected):
        adjustment = self.multiplier.adjust(make_request(), "driver-1", _history(successes, failures))
        assert adjustment.multiplier == pytest.approx(expected)
        assert adjustment.sample_size == successes + failures

    def test_no_history_is_neutral(self):
        assert self.multiplier.adjust(make_request(), "driver-1", []) is NO_HISTORY

    def test_low_rating_completed_ride_is_not_success(self):
        low_rated = OutcomeRecord(
            match_request_id="m",
            selected_driver_id="driver-1",
            passenger_rating=3.5,
            driver_rating=5.0,
            completion_status=CompletionStatus.COMPLETED,
        )
        assert not low_rated.is_success

    def test_other_drivers_history_is_ignored(self):
        history = _history(0, 5, driver_id="someone-else")
        assert self.multiplier.adjust(make_request(), "driver-1", history) is NO_HISTORY


class TestSimilarity:
    def test_unknown_context_is_similar(self):
        assert is_similar(make_request(), make_outcome())

    def test_urgency_within_one_tier(self):
        request = make_request(urgency=Urgency.HIGH)
        assert is_similar(request, make_outcome(urgency=Urgency.URGENT))
        assert is_similar(request, make_outcome(urgency=Urgency.MEDIUM))
        assert not is_similar(request, make_outcome(urgency=Urgency.LOW))

    def test_vehicle_type_must_match_when_both_known(self):
        request = make_request(vehicle_type="premium")
        assert is_similar(request, make_outcome(vehicle_type="premium"))
        assert not is_similar(request, make_outcome(vehicle_type="economy"))
        assert is_similar(make_request(vehicle_type="any"), make_outcome(vehicle_type="economy"))

    def test_similar_outcomes_filters_by_driver_and_context(self):
        request = make_request(urgency=Urgency.LOW)
        history = [
            make_outcome("driver-1", "a", urgency=Urgency.LOW),
            make_outcome("driver-1", "b", urgency=Urgency.URGENT),
            make_outcome("driver-2", "c", urgency=Urgency.LOW),
        ]
        assert [r.match_request_id for r in similar_outcomes(request, "driver-1", history)] == ["a"]
