"""
Data models for the release monitoring system.
"""

from datetime import datetime, timezone
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator
from enum import Enum

__all__ = [
    "utc_now",
    "TrackedRepository", "Destination", "Release", "ReleasesResponse",
    "ProcessedMarker", "RevalidationToken", "Setting",
    "ReleaseStatus", "DeliveryOutcome", "ReleaseOutcome", "CycleReport",
]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TrackedRepository(BaseModel):
    """A GitHub repository whose releases are watched."""
    owner: str
    name: str
    track_prereleases: bool = False
    
    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"


class Destination(BaseModel):
    """A Telegram chat that receives release notifications."""
    id: int
    label: str = ""
    locale: str = "en"


class Release(BaseModel):
    """GitHub release as returned by the releases API."""
    id: int
    tag_name: str
    name: str = ""
    body: str = ""
    draft: bool = False
    prerelease: bool = False
    html_url: str = ""
    published_at: Optional[datetime] = None
    
    @field_validator("name", "body", "html_url", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return "" if value is None else value
    
    @field_validator("published_at")
    @classmethod
    def _assume_utc(cls, value):
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class ReleasesResponse(BaseModel):
    """Result of a conditional releases fetch."""
    status_code: int
    etag: str = ""
    releases: List[Release] = Field(default_factory=list)
    unchanged: bool = False


class ProcessedMarker(BaseModel):
    """Durable record that a release has been handled."""
    repo_owner: str
    repo_name: str
    release_id: int
    tag_name: str = ""
    published_at: Optional[datetime] = None
    recorded_at: Optional[datetime] = None


class RevalidationToken(BaseModel):
    """Stored ETag for a repository's releases list."""
    repo_owner: str
    repo_name: str
    etag: str
    updated_at: Optional[datetime] = None


class Setting(BaseModel):
    """Generic key/value pair for auxiliary state."""
    key: str
    value: str


class ReleaseStatus(str, Enum):
    """How a release was handled during a cycle."""
    DELIVERED = "delivered"
    SKIPPED_OLD = "skipped_old"
    ALREADY_PROCESSED = "already_processed"
    NO_DESTINATIONS = "no_destinations"
    UNDELIVERED = "undelivered"
    FAILED = "failed"


class DeliveryOutcome(BaseModel):
    """Result of sending one notification to one destination."""
    destination_id: int
    success: bool
    permanent: bool = False
    error_message: Optional[str] = None


class ReleaseOutcome(BaseModel):
    """Result of processing one release."""
    repository: str
    release_id: int
    tag_name: str
    status: ReleaseStatus
    deliveries: List[DeliveryOutcome] = Field(default_factory=list)


class CycleReport(BaseModel):
    """Ingestion cycle execution tracking."""
    run_id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    status: str = "running"  # running, completed, failed, cancelled
    
    repositories_checked: int = 0
    repositories_unchanged: int = 0
    repositories_failed: int = 0
    releases_delivered: int = 0
    releases_skipped: int = 0
    destinations_pruned: int = 0
    
    error_message: Optional[str] = None
    outcomes: List[ReleaseOutcome] = Field(default_factory=list)
