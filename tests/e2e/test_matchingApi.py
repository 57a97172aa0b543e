"""
E2E tests for the matching API.

Covers:
1. Ranked matches for a ride request
2. Empty result when nobody is nearby
3. Validation errors surfaced as 400
4. Candidate store outage surfaced as 503
5. Outcome recording, including duplicates
"""

import pytest
from sqlalchemy import func, select

from ridematch.core.exceptions import DataSourceUnavailable
from ridematch.models import MatchOutcomeRecord
from tests.conftest import DROPOFF, PICKUP, FakeCandidateRepository
from tests.e2e.conftest import driver_row, north_of_pickup, seed

FIND_URL = "/api/v1/matching/find"
OUTCOMES_URL = "/api/v1/matching/outcomes"


def _find_body(**overrides):
    body = {
        "request_id": "req-e2e-1",
        "passenger_id": "passenger-1",
        "pickup": {"latitude": PICKUP.latitude, "longitude": PICKUP.longitude},
        "dropoff": {"latitude": DROPOFF.latitude, "longitude": DROPOFF.longitude},
        "requested_time": "2025-06-02T09:30:00Z",
        "urgency": "medium",
    }
    body.update(overrides)
    return body


def _outcome_body(**overrides):
    body = {
        "match_request_id": "req-e2e-1",
        "selected_driver_id": "close",
        "passenger_rating": 4.5,
        "driver_rating": 5.0,
        "completion_status": "completed",
        "urgency": "medium",
        "vehicle_type": "standard",
    }
    body.update(overrides)
    return body


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"


class TestFindMatches:
    @pytest.mark.asyncio
    async def test_returns_ranked_matches(self, client, session_factory):
        await seed(
            session_factory,
            driver_row("close", north_of_pickup(0.5)),
            driver_row("further", north_of_pickup(6.0)),
            driver_row("outside", north_of_pickup(30.0)),
        )

        resp = await client.post(FIND_URL, json=_find_body())

        assert resp.status_code == 200
        data = resp.json()
        assert data["request_id"] == "req-e2e-1"
        assert data["total_matches"] == 2
        ids = [m["driver_id"] for m in data["matches"]]
        assert ids == ["close", "further"]

        top = data["matches"][0]
        assert 0.0 <= top["total_score"] <= 1.0
        assert set(top["factors"]) == {
            "distance",
            "availability",
            "preferences",
            "performance",
            "experience",
            "compatibility",
            "accessibility",
        }
        assert top["estimated_arrival_minutes"] == 1
        assert top["history_multiplier"] == 1.0

    @pytest.mark.asyncio
    async def test_no_drivers_nearby_returns_empty_list(self, client, session_factory):
        await seed(session_factory, driver_row("outside", north_of_pickup(30.0)))

        resp = await client.post(FIND_URL, json=_find_body())

        assert resp.status_code == 200
        assert resp.json()["matches"] == []

    @pytest.mark.asyncio
    async def test_radius_override(self, client, session_factory):
        await seed(session_factory, driver_row("outside", north_of_pickup(30.0)))

        resp = await client.post(FIND_URL, json=_find_body(radius_km=40))

        assert [m["driver_id"] for m in resp.json()["matches"]] == ["outside"]

    @pytest.mark.asyncio
    async def test_out_of_range_latitude_is_rejected(self, client):
        body = _find_body(pickup={"latitude": 95.0, "longitude": PICKUP.longitude})

        resp = await client.post(FIND_URL, json=body)

        assert resp.status_code == 400
        assert "pickup latitude" in resp.json()["detail"]

    @pytest.mark.asyncio
    async def test_unknown_urgency_is_rejected(self, client):
        resp = await client.post(FIND_URL, json=_find_body(urgency="whenever"))

        assert resp.status_code == 400
        assert "urgency" in resp.json()["detail"]

    @pytest.mark.asyncio
    async def test_non_positive_radius_is_rejected(self, client):
        resp = await client.post(FIND_URL, json=_find_body(radius_km=0))
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_candidate_store_outage_returns_503(self, client, matching_service):
        matching_service.candidates = FakeCandidateRepository(
            error=DataSourceUnavailable("driver_store", "connection refused")
        )

        resp = await client.post(FIND_URL, json=_find_body())

        assert resp.status_code == 503
        assert "driver_store" in resp.json()["detail"]


class TestRecordOutcome:
    @pytest.mark.asyncio
    async def test_outcome_is_stored(self, client, session_factory):
        resp = await client.post(OUTCOMES_URL, json=_outcome_body())

        assert resp.status_code == 201
        data = resp.json()
        assert data["match_request_id"] == "req-e2e-1"
        assert data["is_success"] is True

        async with session_factory() as session:
            row = (await session.execute(select(MatchOutcomeRecord))).scalar_one()
        assert row.selected_driver_id == "close"
        assert row.urgency == "medium"

    @pytest.mark.asyncio
    async def test_duplicate_outcome_is_a_no_op(self, client, session_factory):
        first = await client.post(OUTCOMES_URL, json=_outcome_body())
        second = await client.post(
            OUTCOMES_URL, json=_outcome_body(completion_status="no_show")
        )

        assert first.status_code == 201
        assert second.status_code == 201
        async with session_factory() as session:
            count = (await session.execute(select(func.count(MatchOutcomeRecord.id)))).scalar_one()
            row = (await session.execute(select(MatchOutcomeRecord))).scalar_one()
        assert count == 1
        assert row.completion_status.value == "completed"

    @pytest.mark.asyncio
    async def test_rating_out_of_range_is_rejected(self, client):
        resp = await client.post(OUTCOMES_URL, json=_outcome_body(passenger_rating=7))

        assert resp.status_code == 400
        assert "passenger_rating" in resp.json()["detail"]

    @pytest.mark.asyncio
    async def test_unknown_completion_status_fails_validation(self, client):
        resp = await client.post(OUTCOMES_URL, json=_outcome_body(completion_status="teleported"))
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_recorded_outcomes_feed_future_matches(self, client, session_factory):
        await seed(session_factory, driver_row("close", north_of_pickup(0.5)))
        for i in range(4):
            resp = await client.post(
                OUTCOMES_URL,
                json=_outcome_body(match_request_id=f"past-{i}", completion_status="cancelled_by_driver",
                                   passenger_rating=1.0, driver_rating=2.0),
            )
            assert resp.status_code == 201

        resp = await client.post(FIND_URL, json=_find_body())

        top = resp.json()["matches"][0]
        assert top["driver_id"] == "close"
        assert top["history_multiplier"] < 1.0
