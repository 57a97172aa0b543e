"""
Unit tests for the fleet service and the rebalance scheduler.

Tests skip-if-running, execution order (record before notify), failure
isolation between recommendations, and input failures.
"""

import asyncio

import pytest

from ridematch.algorithms.entities import Coordinate, Zone, ZoneDemand
from ridematch.algorithms.fleetDistribution import FleetConfig
from ridematch.algorithms.loadBalancing import LoadBalancingStrategy
from ridematch.services import fleetService, rebalanceScheduler
from ridematch.services.fleetService import FleetService
from tests.conftest import (
    FakeCandidateRepository,
    FakeZoneSource,
    RecordingNotifier,
    RecordingSink,
    make_driver,
    make_zone,
)

NORTH = Coordinate(43.75, -79.40)
SOUTH = Coordinate(43.60, -79.40)
EAST = Coordinate(43.66, -79.30)


def _imbalanced_inputs():
    """North holds all 12 idle drivers; south and east each need 5."""
    zones = [make_zone("north", NORTH), make_zone("south", SOUTH), make_zone("east", EAST)]
    drivers = [make_driver(f"north-{i:02d}", location=NORTH, zone_id="north") for i in range(12)]
    demand = [ZoneDemand("north", 2), ZoneDemand("south", 5), ZoneDemand("east", 5)]
    return drivers, zones, demand


def _service(event_log, *, fail_for=frozenset(), candidates=None, zones=None, **kwargs):
    drivers, zone_list, demand = _imbalanced_inputs()
    sink = RecordingSink(event_log)
    service = FleetService(
        candidates or FakeCandidateRepository(drivers),
        zones or FakeZoneSource(zone_list, demand),
        RecordingNotifier(event_log, fail_for=fail_for),
        sink,
        config=kwargs.pop("config", FleetConfig()),
        **kwargs,
    )
    return service, sink


class TestRunFleetOptimization:
    @pytest.mark.asyncio
    async def test_triggered_pass_executes_high_priority_moves(self, event_log):
        service, sink = _service(event_log)
        result = await service.run_fleet_optimization()

        assert result is not None
        assert result.rebalancing_triggered
        assert {r.target_zone_id for r in result.executed_recommendations} == {"south", "east"}
        assert sink.passes == [result]

    @pytest.mark.asyncio
    async def test_each_move_is_recorded_before_notification(self, event_log):
        service, _ = _service(event_log)
        result = await service.run_fleet_optimization()

        assert len(event_log) == 2 * len(result.executed_recommendations)
        for i, rec in enumerate(result.executed_recommendations):
            assert event_log[2 * i] == ("record", rec.driver_id)
            assert event_log[2 * i + 1] == ("notify", rec.driver_id)

    @pytest.mark.asyncio
    async def test_notification_failure_does_not_stop_others(self, event_log):
        dry_run, _ = _service([])
        first = (await dry_run.run_fleet_optimization()).executed_recommendations[0].driver_id

        service, _ = _service(event_log, fail_for=frozenset({first}))
        result = await service.run_fleet_optimization()

        executed = [r.driver_id for r in result.executed_recommendations]
        assert first not in executed
        assert len(executed) == 1
        assert ("record", first) in event_log

    @pytest.mark.asyncio
    async def test_execution_capped(self, event_log):
        service, _ = _service(event_log, max_executed=1)
        result = await service.run_fleet_optimization()
        assert len(result.executed_recommendations) == 1

    @pytest.mark.asyncio
    async def test_balanced_fleet_executes_nothing(self, event_log):
        zones = [make_zone("north", NORTH)]
        drivers = [make_driver("n1", location=NORTH, zone_id="north")]
        service, sink = _service(
            event_log,
            candidates=FakeCandidateRepository(drivers),
            zones=FakeZoneSource(zones, [ZoneDemand("north", 1)]),
        )
        result = await service.run_fleet_optimization()

        assert result.optimization_score == 100.0
        assert not result.rebalancing_triggered
        assert event_log == []
        assert len(sink.passes) == 1

    @pytest.mark.asyncio
    async def test_input_failure_skips_pass(self, event_log):
        service, sink = _service(
            event_log, candidates=FakeCandidateRepository(error=ConnectionError("db down"))
        )
        assert await service.run_fleet_optimization() is None
        assert sink.passes == []

    @pytest.mark.asyncio
    async def test_no_zones_skips_pass(self, event_log):
        service, _ = _service(event_log, zones=FakeZoneSource([], []))
        assert await service.run_fleet_optimization() is None

    @pytest.mark.asyncio
    async def test_deficit_zone_without_location_does_not_fail_pass(self, event_log):
        zones = [make_zone("north", NORTH), Zone(zone_id="south")]
        drivers = [make_driver(f"north-{i:02d}", location=NORTH, zone_id="north") for i in range(10)]
        service, sink = _service(
            event_log,
            candidates=FakeCandidateRepository(drivers),
            zones=FakeZoneSource(zones, [ZoneDemand("north", 1), ZoneDemand("south", 9)]),
        )

        result = await service.run_fleet_optimization()

        assert result is not None
        assert result.recommendations == ()
        assert event_log == []
        assert sink.passes == [result]

    @pytest.mark.asyncio
    async def test_optimizer_failure_skips_pass(self, event_log, monkeypatch):
        def _broken(*args, **kwargs):
            raise ValueError("bad zone geometry")

        monkeypatch.setattr(fleetService, "optimize_fleet_distribution", _broken)
        service, sink = _service(event_log)

        assert await service.run_fleet_optimization() is None
        assert sink.passes == []
        assert not service.is_running

    @pytest.mark.asyncio
    async def test_overlapping_pass_is_skipped(self, event_log):
        release = asyncio.Event()

        class SlowZones(FakeZoneSource):
            async def get_zones(self):
                await release.wait()
                return await super().get_zones()

        _, zones, demand = _imbalanced_inputs()
        service, _ = _service(event_log, zones=SlowZones(zones, demand))

        first = asyncio.create_task(service.run_fleet_optimization())
        await asyncio.sleep(0)
        assert service.is_running

        assert await service.run_fleet_optimization() is None

        release.set()
        assert await first is not None
        assert not service.is_running


class TestLoadBalancing:
    @pytest.mark.asyncio
    async def test_fleet_utilization(self, event_log):
        drivers = [
            make_driver("n1", location=NORTH, zone_id="north", current_load=3),
            make_driver("n2", location=NORTH, zone_id="north", current_load=0),
        ]
        service, _ = _service(event_log, candidates=FakeCandidateRepository(drivers))

        metrics = await service.get_fleet_utilization()

        assert metrics.overall == pytest.approx(0.5)
        assert metrics.by_zone == {"north": 0.5, "south": 0.0, "east": 0.0}

    @pytest.mark.asyncio
    async def test_fleet_utilization_propagates_input_failure(self, event_log):
        service, _ = _service(
            event_log, candidates=FakeCandidateRepository(error=ConnectionError("db down"))
        )
        with pytest.raises(ConnectionError):
            await service.get_fleet_utilization()

    def test_balance_candidates(self, event_log):
        service, _ = _service(event_log)
        drivers = [make_driver("busy", current_load=2), make_driver("idle")]
        strategy = LoadBalancingStrategy("s1", "round_robin")
        assert [d.driver_id for d in service.balance_candidates(drivers, NORTH, strategy)] == [
            "idle",
            "busy",
        ]

    def test_broken_strategy_keeps_order(self, event_log):
        service, _ = _service(event_log)
        drivers = [make_driver("busy", current_load=2), make_driver("idle")]
        strategy = LoadBalancingStrategy(
            "s1", "weighted_round_robin", parameters={"weights": {"rating": "high"}}
        )
        result = service.balance_candidates(drivers, NORTH, strategy)
        assert [d.driver_id for d in result] == ["busy", "idle"]


class TestRebalanceScheduler:
    @pytest.mark.asyncio
    async def test_runs_passes_until_stopped(self, event_log):
        service, sink = _service(event_log)
        await rebalanceScheduler.start_rebalance_scheduler(service, interval_seconds=0.01)
        try:
            for _ in range(100):
                if len(sink.passes) >= 2:
                    break
                await asyncio.sleep(0.01)
            assert rebalanceScheduler.is_scheduler_running()
        finally:
            await rebalanceScheduler.stop_rebalance_scheduler()

        assert len(sink.passes) >= 2
        assert not rebalanceScheduler.is_scheduler_running()
