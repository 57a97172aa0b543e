"""
Shared FastAPI dependencies for the ridematch API.

Provides the async engine and session factory, and builds the matching
and fleet services wired to the production adapters.  Tests replace the
service dependencies through ``app.dependency_overrides``.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from ridematch.adapters.redisLocations import RedisGeoCandidateRepository
from ridematch.adapters.sqlStore import (
    SqlCandidateRepository,
    SqlExperimentSource,
    SqlOutcomeStore,
    SqlRebalancingSink,
    SqlZoneSource,
)
from ridematch.core.config import settings
from ridematch.integrations.fcm import FcmDriverNotifier
from ridematch.services.fleetService import FleetService
from ridematch.services.matchingService import MatchingService
from ridematch.services.ports import CandidateRepository

# ---------------------------------------------------------------------------
# Async engine & session factory
# ---------------------------------------------------------------------------
# The engine is created once at module import time.  Adapters open a
# short-lived ``AsyncSession`` from the factory for every call.
# ---------------------------------------------------------------------------

engine = create_async_engine(
    settings.database_url,
    echo=settings.sql_echo,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    pool_pre_ping=True,
)

async_session_factory = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


def _candidate_repository() -> CandidateRepository:
    if settings.driver_location_source == "redis":
        return RedisGeoCandidateRepository(async_session_factory)
    return SqlCandidateRepository(async_session_factory)


# ---------------------------------------------------------------------------
# Service dependencies
# ---------------------------------------------------------------------------

def get_matching_service() -> MatchingService:
    return MatchingService(
        _candidate_repository(),
        SqlOutcomeStore(async_session_factory),
        SqlExperimentSource(async_session_factory),
    )


@lru_cache(maxsize=1)
def get_fleet_service() -> FleetService:
    """Process-wide fleet service.

    A single instance is shared by the API and the background scheduler so
    that overlapping passes are detected.
    """
    tokens = SqlCandidateRepository(async_session_factory)
    return FleetService(
        _candidate_repository(),
        SqlZoneSource(async_session_factory),
        FcmDriverNotifier(tokens.get_device_token),
        SqlRebalancingSink(async_session_factory),
    )


# ---------------------------------------------------------------------------
# Annotated type aliases for convenience
# ---------------------------------------------------------------------------
MatchingServiceDep = Annotated[MatchingService, Depends(get_matching_service)]
FleetServiceDep = Annotated[FleetService, Depends(get_fleet_service)]
