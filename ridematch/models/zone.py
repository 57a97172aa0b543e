"""
SQLAlchemy models for zones, zone demand snapshots, and the rebalancing
audit trail (actions sent to drivers and per-pass summaries).
"""

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import Boolean, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, JSONType, TimestampMixin, UUIDPrimaryKeyMixin


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ZoneRecord(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "zones"

    zone_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    # Geometry: list of [latitude, longitude] pairs
    polygon: Mapped[list[list[float]]] = mapped_column(JSONType, nullable=False, default=list)
    center_latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    center_longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    priority: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    demand_multiplier: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    min_drivers: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_drivers: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<ZoneRecord(zone_id={self.zone_id}, name={self.name})>"


class ZoneDemandSnapshot(UUIDPrimaryKeyMixin, Base):
    __tablename__ = "zone_demand_snapshots"

    zone_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    demand: Mapped[float] = mapped_column(Float, nullable=False)
    supply: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    average_wait_minutes: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )


class RebalancingActionRecord(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "rebalancing_actions"

    driver_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    source_zone_id: Mapped[str] = mapped_column(String(64), nullable=False)
    target_zone_id: Mapped[str] = mapped_column(String(64), nullable=False)
    target_latitude: Mapped[float] = mapped_column(Float, nullable=False)
    target_longitude: Mapped[float] = mapped_column(Float, nullable=False)
    priority: Mapped[str] = mapped_column(String(16), nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    estimated_travel_minutes: Mapped[float] = mapped_column(Float, nullable=False)
    confidence: Mapped[float] = mapped_column(Float, nullable=False)
    estimated_impact: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="sent")

    def __repr__(self) -> str:
        return (
            f"<RebalancingActionRecord(driver_id={self.driver_id}, "
            f"{self.source_zone_id}->{self.target_zone_id})>"
        )


class RebalancingLogRecord(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "rebalancing_logs"

    optimization_score: Mapped[float] = mapped_column(Float, nullable=False)
    total_drivers: Mapped[int] = mapped_column(Integer, nullable=False)
    active_drivers: Mapped[int] = mapped_column(Integer, nullable=False)
    average_utilization: Mapped[float] = mapped_column(Float, nullable=False)
    total_demand: Mapped[float] = mapped_column(Float, nullable=False)
    unmet_demand: Mapped[float] = mapped_column(Float, nullable=False)
    recommendations_count: Mapped[int] = mapped_column(Integer, nullable=False)
    executed_count: Mapped[int] = mapped_column(Integer, nullable=False)
    triggered: Mapped[bool] = mapped_column(Boolean, nullable=False)
    zone_status: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)
