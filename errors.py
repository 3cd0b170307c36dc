"""Exception hierarchy for the history tracker.

Each layer raises its own error type so callers can decide what is fatal
for a reconciliation cycle and what only affects one day or one country.
"""
from __future__ import annotations


class TrackerError(Exception):
    """Base exception for all tracker failures."""


class ConfigError(TrackerError):
    """Raised for invalid runtime configuration."""


class UpstreamFetchError(TrackerError):
    """Raised when the upstream data source cannot be reached or parsed."""


class StorageError(TrackerError):
    """Raised for storage backend read/write failures."""


class NotFoundError(TrackerError):
    """Raised when a country lookup matches nothing."""


class ShiftDetectionError(TrackerError):
    """Raised when the bellwether snapshot needed for date-shift detection is unavailable."""
