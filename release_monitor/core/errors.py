"""
Error taxonomy for the release monitoring system.
"""

from typing import Optional


class ReleaseMonitorError(Exception):
    """Base class for all release monitor errors."""


class FetchError(ReleaseMonitorError):
    """GitHub was unreachable or kept failing after retries."""
    
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AdvisorError(ReleaseMonitorError):
    """Commentary could not be generated."""


class DeliveryError(ReleaseMonitorError):
    """A message could not be delivered after retries."""


class PermanentDeliveryError(DeliveryError):
    """The destination itself is invalid and should be dropped."""


class LedgerError(ReleaseMonitorError):
    """A durable store operation failed."""
