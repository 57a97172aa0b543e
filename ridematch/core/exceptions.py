"""
Domain exceptions shared by the matching and rebalancing services.

Route handlers translate these into HTTP errors; adapters raise
``DataSourceUnavailable`` when their backing store cannot be reached.
"""

from __future__ import annotations


class MatchingError(Exception):
    """Base class for all engine errors."""


class InvalidRequest(MatchingError):
    def __init__(self, message: str) -> None:
        super().__init__(f"Invalid match request: {message}")


class InvalidOutcome(MatchingError):
    def __init__(self, message: str) -> None:
        super().__init__(f"Invalid outcome record: {message}")


class DataSourceUnavailable(MatchingError):
    def __init__(self, source: str, reason: str | None = None) -> None:
        self.source = source
        self.reason = reason
        message = f"Data source '{source}' is unavailable"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
