"""
Live driver positions -- Redis geo set
======================================

Drivers push their position into a Redis geo set (GEOADD); candidate
lookups use GEOSEARCH around the pickup point and join the hits with the
driver profiles stored in SQL.  Positions from Redis take precedence over
the last position stored on the profile row.

Architecture:
  - **Redis geo set** (``settings.redis_driver_geo_key``): latest position
    of every online driver, member = driver id.
  - **PostgreSQL** ``driver_profiles``: status, vehicle, performance and
    preference documents.
"""

from __future__ import annotations

import logging
from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from ridematch.adapters.sqlStore import SessionFactory, driver_from_record
from ridematch.algorithms.entities import Coordinate, DriverCandidate
from ridematch.core.config import settings
from ridematch.core.exceptions import DataSourceUnavailable
from ridematch.models import DriverProfileRecord, DriverStatus

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Redis connection
# ---------------------------------------------------------------------------

_redis_pool: aioredis.Redis | None = None


async def get_redis() -> aioredis.Redis:
    """Lazily initialize and return the shared Redis connection pool."""
    global _redis_pool
    if _redis_pool is None:
        _redis_pool = aioredis.from_url(
            settings.redis_url,
            decode_responses=True,
        )
    return _redis_pool


async def close_redis() -> None:
    """Gracefully close the Redis connection pool.  Call on app shutdown."""
    global _redis_pool
    if _redis_pool is not None:
        await _redis_pool.close()
        _redis_pool = None
        logger.info("Redis connection pool closed")


# ---------------------------------------------------------------------------
# Candidate repository
# ---------------------------------------------------------------------------

class RedisGeoCandidateRepository:
    def __init__(
        self,
        session_factory: SessionFactory,
        redis: Optional[aioredis.Redis] = None,
        geo_key: str = settings.redis_driver_geo_key,
    ) -> None:
        self.session_factory = session_factory
        self._redis = redis
        self.geo_key = geo_key

    async def _client(self) -> aioredis.Redis:
        if self._redis is None:
            self._redis = await get_redis()
        return self._redis

    async def update_driver_location(self, driver_id: str, location: Coordinate) -> None:
        redis = await self._client()
        # GEOADD key longitude latitude member
        await redis.geoadd(self.geo_key, (location.longitude, location.latitude, driver_id))
        logger.debug(
            "Updated location for driver %s: (%.6f, %.6f)",
            driver_id,
            location.latitude,
            location.longitude,
        )

    async def remove_driver(self, driver_id: str) -> None:
        redis = await self._client()
        await redis.zrem(self.geo_key, driver_id)

    async def _load_profiles(
        self, driver_ids: list[str], *, available_only: bool
    ) -> dict[str, DriverProfileRecord]:
        stmt = select(DriverProfileRecord).where(DriverProfileRecord.driver_id.in_(driver_ids))
        if available_only:
            stmt = stmt.where(DriverProfileRecord.status == DriverStatus.AVAILABLE)
        else:
            stmt = stmt.where(DriverProfileRecord.status != DriverStatus.OFFLINE)
        try:
            async with self.session_factory() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as exc:
            raise DataSourceUnavailable("driver_store", str(exc)) from exc
        return {row.driver_id: row for row in rows}

    async def find_available_drivers(
        self, center: Coordinate, radius_km: float
    ) -> list[DriverCandidate]:
        """Available drivers within the radius, closest first."""
        redis = await self._client()
        try:
            hits = await redis.geosearch(
                self.geo_key,
                longitude=center.longitude,
                latitude=center.latitude,
                radius=radius_km,
                unit="km",
                sort="ASC",
                withdist=True,
                withcoord=True,
            )
        except RedisError as exc:
            raise DataSourceUnavailable("driver_locations", str(exc)) from exc

        if not hits:
            return []

        positions: dict[str, Coordinate] = {}
        for member_id, _distance, (lng, lat) in hits:
            positions[member_id] = Coordinate(latitude=float(lat), longitude=float(lng))

        profiles = await self._load_profiles(list(positions), available_only=True)

        candidates: list[DriverCandidate] = []
        for driver_id, location in positions.items():
            record = profiles.get(driver_id)
            if record is None:
                continue
            candidates.append(driver_from_record(record, location=location))
        return candidates

    async def list_fleet_drivers(self) -> list[DriverCandidate]:
        """Every on-shift driver that has a live position."""
        redis = await self._client()
        try:
            # A geo set is a sorted set; ZRANGE lists its members
            driver_ids = await redis.zrange(self.geo_key, 0, -1)
            if not driver_ids:
                return []
            coords = await redis.geopos(self.geo_key, *driver_ids)
        except RedisError as exc:
            raise DataSourceUnavailable("driver_locations", str(exc)) from exc

        positions = {
            driver_id: Coordinate(latitude=float(pos[1]), longitude=float(pos[0]))
            for driver_id, pos in zip(driver_ids, coords)
            if pos is not None
        }
        profiles = await self._load_profiles(list(positions), available_only=False)
        return [
            driver_from_record(record, location=positions[driver_id])
            for driver_id, record in profiles.items()
        ]
