"""
Pipeline orchestration and scheduling for release monitoring.
"""

from .pipeline import ReleasePipeline
from .scheduler import Scheduler

__all__ = ["ReleasePipeline", "Scheduler"]
