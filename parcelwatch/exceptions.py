"""
Exception hierarchy for ParcelWatch.
"""

from typing import Optional


class ParcelWatchError(Exception):
    """Base exception for all ParcelWatch errors."""


class ConfigurationError(ParcelWatchError):
    """Missing or invalid startup configuration."""


class FetchError(ParcelWatchError):
    """Tracking provider could not return tracking info."""

    def __init__(self, message: str, *, tracking_number: str = ""):
        self.tracking_number = tracking_number
        super().__init__(message)


class ProviderError(FetchError):
    """
    Transient provider failure (network, unexpected HTTP status, bad payload).

    The next poll cycle retries automatically.
    """

    def __init__(
        self,
        message: str,
        *,
        tracking_number: str = "",
        status_code: Optional[int] = None,
    ):
        self.status_code = status_code
        super().__init__(message, tracking_number=tracking_number)


class TrackingNotFoundError(FetchError):
    """Provider does not know the tracking number (yet)."""


class PersistenceError(ParcelWatchError):
    """Tracking store unavailable or rejected a write."""
