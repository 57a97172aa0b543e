"""
Ridematch SQLAlchemy Models
===========================

Central import point for all ORM models. Import ``Base`` from here for
the ``create_all`` convenience in tests.

Usage::

    from ridematch.models import Base, DriverProfileRecord, ZoneRecord
"""

# -- Base & Mixins --
from .base import Base, JSONType, TimestampMixin, UUIDPrimaryKeyMixin

# -- Drivers --
from .driver import DriverProfileRecord, DriverStatus

# -- Matching --
from .matching import ExperimentVariantRecord, MatchOutcomeRecord

# -- Zones & rebalancing --
from .zone import (
    RebalancingActionRecord,
    RebalancingLogRecord,
    ZoneDemandSnapshot,
    ZoneRecord,
)

__all__ = [
    "Base",
    "JSONType",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "DriverProfileRecord",
    "DriverStatus",
    "ExperimentVariantRecord",
    "MatchOutcomeRecord",
    "RebalancingActionRecord",
    "RebalancingLogRecord",
    "ZoneDemandSnapshot",
    "ZoneRecord",
]
