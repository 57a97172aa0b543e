"""
SQLAlchemy models for match_outcomes and experiment_variants.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import Boolean, DateTime, Enum, Float, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ridematch.algorithms.entities import CompletionStatus

from .base import Base, JSONType, TimestampMixin, UUIDPrimaryKeyMixin


class MatchOutcomeRecord(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Append-only; one row per match request."""

    __tablename__ = "match_outcomes"

    match_request_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    selected_driver_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    # Ratings
    passenger_rating: Mapped[float] = mapped_column(Float, nullable=False)
    driver_rating: Mapped[float] = mapped_column(Float, nullable=False)

    completion_status: Mapped[CompletionStatus] = mapped_column(
        Enum(CompletionStatus, name="completion_status"),
        nullable=False,
    )

    alternative_driver_ids: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    actual_arrival_minutes: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    actual_fare: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    issues: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)

    # Request context used for similarity
    vehicle_type: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    urgency: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)

    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return (
            f"<MatchOutcomeRecord(match_request_id={self.match_request_id}, "
            f"driver={self.selected_driver_id}, status={self.completion_status})>"
        )


class ExperimentVariantRecord(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "experiment_variants"

    variant_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    algorithm: Mapped[str] = mapped_column(String(64), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    traffic_percentage: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    parameters: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    def __repr__(self) -> str:
        return f"<ExperimentVariantRecord(variant_id={self.variant_id}, active={self.is_active})>"
