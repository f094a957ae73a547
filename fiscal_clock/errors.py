"""
Error taxonomy.

NetworkError and ApiError are retried by the fetch client.
InsufficientDataError is raised after a successful fetch and is never retried.
ConfigurationError is fatal at registration time.
"""

from __future__ import annotations


class FiscalClockError(Exception):
    """Base class for all dashboard errors."""

    kind = "error"


class NetworkError(FiscalClockError):
    """Transport failure or timeout reaching an upstream endpoint."""

    kind = "network"


class ApiError(FiscalClockError):
    """Endpoint reachable but returned a non-2xx status or an unparseable body."""

    kind = "api"

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class InsufficientDataError(FiscalClockError):
    """Well-formed response with too few records to build a snapshot."""

    kind = "insufficient_data"


class ConfigurationError(FiscalClockError):
    """Invalid metric graph or settings."""

    kind = "configuration"
