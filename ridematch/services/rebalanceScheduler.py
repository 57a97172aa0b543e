"""
Fleet Rebalance Scheduler
=========================

Background task that runs a fleet optimization pass every
``fleet_optimization_interval_seconds``.

Usage (integrated into the FastAPI lifespan)::

    from ridematch.services.rebalanceScheduler import (
        start_rebalance_scheduler,
        stop_rebalance_scheduler,
    )

    await start_rebalance_scheduler(fleet_service)
    ...
    await stop_rebalance_scheduler()

The scheduler uses asyncio.create_task and sleeps between runs.  A pass
that overlaps a manually triggered one is skipped by the service itself.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from ridematch.core.config import settings
from ridematch.services.fleetService import FleetService

logger = logging.getLogger(__name__)

# Internal state
_scheduler_task: asyncio.Task | None = None
_running: bool = False


async def _run_scheduler(service: FleetService, interval_seconds: float) -> None:
    """Main loop: run a pass, then sleep for ``interval_seconds``."""
    logger.info("Rebalance scheduler started (interval=%ss)", interval_seconds)

    while _running:
        try:
            await service.run_fleet_optimization()
        except Exception:
            logger.exception("Error in rebalance scheduler pass")

        await asyncio.sleep(interval_seconds)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

async def start_rebalance_scheduler(
    service: FleetService,
    interval_seconds: Optional[float] = None,
) -> None:
    """Start the background rebalancing task."""
    global _scheduler_task, _running

    if _scheduler_task is not None:
        logger.warning("Rebalance scheduler is already running")
        return

    if interval_seconds is None:
        interval_seconds = settings.fleet_optimization_interval_seconds

    _running = True
    _scheduler_task = asyncio.create_task(_run_scheduler(service, interval_seconds))


async def stop_rebalance_scheduler() -> None:
    """Stop the background rebalancing task."""
    global _scheduler_task, _running

    _running = False

    if _scheduler_task is not None:
        _scheduler_task.cancel()
        try:
            await _scheduler_task
        except asyncio.CancelledError:
            pass
        _scheduler_task = None
        logger.info("Rebalance scheduler stopped")


def is_scheduler_running() -> bool:
    return _scheduler_task is not None and not _scheduler_task.done()
