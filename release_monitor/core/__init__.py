"""
Core module for the release monitoring system.
"""

from .config import Settings, get_settings
from .errors import (
    ReleaseMonitorError, FetchError, AdvisorError,
    DeliveryError, PermanentDeliveryError, LedgerError
)
from .models import *

__all__ = [
    "Settings", "get_settings",
    "ReleaseMonitorError", "FetchError", "AdvisorError",
    "DeliveryError", "PermanentDeliveryError", "LedgerError",
]
