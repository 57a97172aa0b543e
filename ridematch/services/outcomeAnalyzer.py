"""
Historical Outcome Analyzer
===========================

Fetches a driver's recent outcomes for the scorer.  The lookup runs on
the hot path of every match, so it is bounded by a short timeout and
fails open: a slow or broken outcome store yields ``None`` and the
scorer falls back to a neutral multiplier for that driver only.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from ridematch.algorithms.entities import OutcomeRecord
from ridematch.services.ports import OutcomeStore

logger = logging.getLogger(__name__)


class HistoricalOutcomeAnalyzer:
    def __init__(
        self,
        store: OutcomeStore,
        *,
        timeout_seconds: float = 0.1,
        limit: int = 20,
    ) -> None:
        self.store = store
        self.timeout_seconds = timeout_seconds
        self.limit = limit

    async def history_for(self, driver_id: str) -> Optional[list[OutcomeRecord]]:
        """Recent outcomes for ``driver_id``, or ``None`` if unavailable."""
        try:
            return await asyncio.wait_for(
                self.store.query_outcomes(driver_id, self.limit),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Outcome lookup for driver %s timed out after %.2fs",
                driver_id,
                self.timeout_seconds,
            )
            return None
        except Exception:
            logger.exception("Outcome lookup failed for driver %s", driver_id)
            return None
