"""Ridematch API -- Main Application Entry Point

Creates the FastAPI application, configures logging and CORS middleware,
registers the matching and fleet routers under the /api/v1 prefix, and
starts the periodic fleet rebalancing task when it is enabled.

Run with::

    uvicorn ridematch.main:app --host 0.0.0.0 --port 8000 --reload
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ridematch.core.config import settings

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan: startup / shutdown hooks
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager.

    Startup:
      - Start the fleet rebalancing scheduler when enabled.

    Shutdown:
      - Stop the scheduler, close Redis, and dispose the database engine.
    """
    from ridematch.adapters.redisLocations import close_redis
    from ridematch.api.deps import engine, get_fleet_service
    from ridematch.services.rebalanceScheduler import (
        start_rebalance_scheduler,
        stop_rebalance_scheduler,
    )

    if settings.fleet_scheduler_enabled:
        await start_rebalance_scheduler(get_fleet_service())

    yield

    await stop_rebalance_scheduler()
    await close_redis()
    await engine.dispose()


# ---------------------------------------------------------------------------
# Application instance
# ---------------------------------------------------------------------------

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# CORS middleware
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@app.get("/health", tags=["Health"])
async def health():
    """Lightweight health check for load balancers and readiness probes."""
    return {"status": "ok", "version": settings.app_version}


# ---------------------------------------------------------------------------
# Register API route modules
# ---------------------------------------------------------------------------

from ridematch.api.routes import fleet, matching  # noqa: E402

_prefix = settings.api_v1_prefix

app.include_router(matching.router, prefix=_prefix)
app.include_router(fleet.router, prefix=_prefix)
