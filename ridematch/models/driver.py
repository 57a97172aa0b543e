"""
SQLAlchemy model for driver_profiles.

The nested driver attributes (characteristics, vehicle features,
performance, availability) are stored as JSON documents; the adapters
convert rows into ``DriverCandidate`` snapshots.
"""

import enum
from typing import Any, Optional

from sqlalchemy import Enum, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, JSONType, TimestampMixin, UUIDPrimaryKeyMixin


class DriverStatus(str, enum.Enum):
    OFFLINE = "offline"
    AVAILABLE = "available"
    BUSY = "busy"


class DriverProfileRecord(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "driver_profiles"

    driver_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)

    # Status
    status: Mapped[DriverStatus] = mapped_column(
        Enum(DriverStatus, name="driver_status"),
        nullable=False,
        default=DriverStatus.OFFLINE,
    )

    # Vehicle & track record
    vehicle_type: Mapped[str] = mapped_column(String(32), nullable=False, default="standard")
    rating: Mapped[float] = mapped_column(Float, nullable=False, default=5.0)
    completed_rides: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Last known location
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    zone_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # Load
    current_load: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=3)

    # Profile documents
    characteristics: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    vehicle_features: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    performance: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    availability: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    # Push notifications
    device_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<DriverProfileRecord(driver_id={self.driver_id}, "
            f"status={self.status}, zone={self.zone_id})>"
        )
