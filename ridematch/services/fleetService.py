"""
Fleet Service -- periodic zone rebalancing
==========================================

Runs one optimization pass over the live fleet:

  1. Load the fleet snapshot, zones and latest demand concurrently.
  2. Compute the distribution and recommendations (pure optimizer).
  3. When the pass is triggered, execute up to N high-priority
     recommendations.  Each is written to the rebalancing sink before the
     driver is notified, so the audit trail never misses a sent move.
  4. Log the pass summary to the sink.

Only one pass runs at a time; a pass requested while another is in flight
is skipped.

The service also reports fleet utilization and reorders candidate lists
with a load balancing strategy.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Optional, Sequence

from ridematch.algorithms.entities import (
    Coordinate,
    DriverCandidate,
    FleetOptimizationResult,
    RebalancingRecommendation,
)
from ridematch.algorithms.fleetDistribution import (
    DEFAULT_FLEET_CONFIG,
    FleetConfig,
    optimize_fleet_distribution,
    select_for_execution,
    should_trigger_rebalancing,
)
from ridematch.algorithms.loadBalancing import (
    FleetUtilization,
    LoadBalancingStrategy,
    apply_load_balancing,
    fleet_utilization_metrics,
)
from ridematch.core.config import settings
from ridematch.events.matchEvents import emit_fleet_pass_completed, emit_recommendation_sent
from ridematch.services.ports import (
    CandidateRepository,
    DriverNotifier,
    RebalancingSink,
    ZoneSource,
)

logger = logging.getLogger(__name__)


def config_from_settings() -> FleetConfig:
    return dataclasses.replace(
        DEFAULT_FLEET_CONFIG,
        rebalancing_score_threshold=settings.rebalancing_score_threshold,
        unmet_demand_ratio_threshold=settings.unmet_demand_ratio_threshold,
    )


class FleetService:
    """Keeps driver supply aligned with zone demand."""

    def __init__(
        self,
        candidates: CandidateRepository,
        zones: ZoneSource,
        notifier: DriverNotifier,
        sink: RebalancingSink,
        *,
        config: Optional[FleetConfig] = None,
        max_executed: int = settings.max_executed_recommendations,
    ) -> None:
        self.candidates = candidates
        self.zones = zones
        self.notifier = notifier
        self.sink = sink
        self.config = config or config_from_settings()
        self.max_executed = max_executed
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    async def run_fleet_optimization(self) -> Optional[FleetOptimizationResult]:
        """Run a single optimization pass.

        Returns:
            The pass result, or ``None`` when the pass was skipped because
            another one is running or its inputs could not be loaded.
        """
        if self._lock.locked():
            logger.warning("Fleet optimization already running; skipping this pass")
            return None

        async with self._lock:
            try:
                fleet, zones, demand = await asyncio.gather(
                    self.candidates.list_fleet_drivers(),
                    self.zones.get_zones(),
                    self.zones.get_zone_demand(),
                )
            except Exception:
                logger.exception("Fleet optimization inputs unavailable; pass skipped")
                return None

            if not zones:
                logger.info("No zones configured; fleet optimization skipped")
                return None

            try:
                result = optimize_fleet_distribution(fleet, zones, demand, self.config)
            except Exception:
                logger.exception("Fleet optimization failed; pass skipped")
                return None
            triggered = should_trigger_rebalancing(result, self.config)

            executed: list[RebalancingRecommendation] = []
            if triggered:
                logger.info(
                    "Rebalancing triggered (score=%.1f, unmet=%.1f/%.1f, recommendations=%d)",
                    result.optimization_score,
                    result.unmet_demand,
                    result.total_demand,
                    len(result.recommendations),
                )
                for recommendation in select_for_execution(result, self.max_executed):
                    if await self._execute(recommendation):
                        executed.append(recommendation)

            result = dataclasses.replace(
                result,
                rebalancing_triggered=triggered,
                executed_recommendations=tuple(executed),
            )

            try:
                await self.sink.log_rebalancing_pass(result)
            except Exception:
                logger.exception("Failed to log rebalancing pass")

            emit_fleet_pass_completed(
                result.optimization_score,
                recommendations=len(result.recommendations),
                executed=len(executed),
                triggered=triggered,
            )
            return result

    # -- Load balancing ------------------------------------------------------

    async def get_fleet_utilization(self) -> FleetUtilization:
        """Overall and per-zone utilization of the current fleet.

        Raises:
            DataSourceUnavailable: The fleet or zones could not be loaded.
        """
        fleet, zones = await asyncio.gather(
            self.candidates.list_fleet_drivers(),
            self.zones.get_zones(),
        )
        return fleet_utilization_metrics(fleet, zones)

    def balance_candidates(
        self,
        drivers: Sequence[DriverCandidate],
        pickup: Coordinate,
        strategy: Optional[LoadBalancingStrategy],
    ) -> list[DriverCandidate]:
        """Reorder ``drivers`` by ``strategy``; the input order is kept on failure."""
        try:
            return apply_load_balancing(drivers, strategy, pickup)
        except Exception:
            logger.exception(
                "Load balancing strategy %s failed; keeping candidate order",
                strategy.strategy_id if strategy else None,
            )
            return list(drivers)

    async def _execute(self, recommendation: RebalancingRecommendation) -> bool:
        try:
            await self.sink.record_rebalancing_action(recommendation)
        except Exception:
            logger.exception(
                "Failed to record rebalancing action for driver %s; not notifying",
                recommendation.driver_id,
            )
            return False

        try:
            await self.notifier.notify_driver(recommendation.driver_id, recommendation)
        except Exception:
            logger.exception(
                "Failed to notify driver %s of rebalancing to zone %s",
                recommendation.driver_id,
                recommendation.target_zone_id,
            )
            return False

        emit_recommendation_sent(
            recommendation.driver_id,
            recommendation.target_zone_id,
            recommendation.priority.value,
        )
        return True
