"""
GitHub API client for release ingestion.

Releases are fetched with ``If-None-Match`` so that unchanged release lists
cost a single 304 round trip and no downstream processing.
"""

import threading
import time
from typing import List, Optional

import requests
import structlog
from pydantic import ValidationError

from ..core.errors import FetchError
from ..core.models import Release, ReleasesResponse

logger = structlog.get_logger(__name__)


class GitHubReleaseClient:
    """Client for the GitHub releases endpoint with ETag revalidation."""
    
    BASE_URL = "https://api.github.com"
    USER_AGENT = "ReleaseMonitor/1.0"
    
    def __init__(
        self,
        token: Optional[str] = None,
        base_url: Optional[str] = None,
        per_page: int = 5,
        max_retries: int = 3,
        backoff_base: float = 1.0,
        timeout: float = 10.0,
        cancel_event: Optional[threading.Event] = None,
        session: Optional[requests.Session] = None,
        logger=None,
    ):
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.per_page = per_page
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.timeout = timeout
        self.cancel_event = cancel_event
        self.logger = logger or structlog.get_logger(__name__)
        
        self.session = session or requests.Session()
        self.session.headers.update({
            "User-Agent": self.USER_AGENT,
            "Accept": "application/vnd.github+json"
        })
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"
    
    def fetch_releases(self, owner: str, name: str, prior_etag: str = "") -> ReleasesResponse:
        """
        Fetch the most recent releases of a repository.
        
        Args:
            owner: Repository owner
            name: Repository name
            prior_etag: ETag from the previous successful fetch, if any
            
        Returns:
            ReleasesResponse; ``unchanged`` is set when GitHub answers 304
            
        Raises:
            FetchError: on non-retryable errors or when retries are exhausted
        """
        url = f"{self.base_url}/repos/{owner}/{name}/releases"
        headers = {}
        if prior_etag:
            headers["If-None-Match"] = prior_etag
        
        response = self._get_with_retry(url, params={"per_page": self.per_page}, headers=headers)
        
        if response.status_code == 304:
            self.logger.debug("Releases not modified", repo=f"{owner}/{name}")
            return ReleasesResponse(
                status_code=304,
                etag=response.headers.get("ETag") or prior_etag,
                unchanged=True
            )
        
        if response.status_code != 200:
            raise FetchError(
                f"github api error: {response.status_code} {response.text[:200]}",
                status_code=response.status_code
            )
        
        try:
            payload = response.json()
            releases = [Release.model_validate(item) for item in payload]
        except (ValueError, TypeError, ValidationError) as e:
            raise FetchError(f"failed to decode releases for {owner}/{name}: {e}") from e
        
        self.logger.debug("Fetched releases", repo=f"{owner}/{name}", count=len(releases))
        
        return ReleasesResponse(
            status_code=response.status_code,
            etag=response.headers.get("ETag", ""),
            releases=releases
        )
    
    def filter_and_sort(self, releases: List[Release], include_prereleases: bool) -> List[Release]:
        """Drop drafts, unwanted prereleases and unpublished releases; oldest first."""
        filtered = []
        
        for release in releases:
            if release.draft:
                continue
            if release.prerelease and not include_prereleases:
                continue
            if release.published_at is None:
                continue
            filtered.append(release)
        
        filtered.sort(key=lambda r: r.published_at)
        return filtered
    
    def _get_with_retry(self, url: str, params: dict, headers: dict) -> requests.Response:
        """GET with retries on network errors, 429 and 5xx."""
        last_error = None
        
        for attempt in range(self.max_retries + 1):
            try:
                response = self.session.get(url, params=params, headers=headers, timeout=self.timeout)
            except requests.RequestException as e:
                last_error = FetchError(f"request failed: {e}")
                self.logger.warning("GitHub request failed", url=url, attempt=attempt + 1, error=str(e))
                if attempt < self.max_retries:
                    self._sleep((attempt + 1) * self.backoff_base)
                continue
            
            # Success, 304 or client error: no retry
            if response.status_code < 500 and response.status_code != 429:
                return response
            
            last_error = FetchError(f"server error: {response.status_code}", status_code=response.status_code)
            self.logger.warning("GitHub returned retryable status",
                                url=url,
                                status_code=response.status_code,
                                attempt=attempt + 1)
            
            if attempt < self.max_retries:
                backoff = (attempt + 1) * self.backoff_base
                if response.status_code == 429:
                    backoff *= 2
                self._sleep(backoff)
        
        raise last_error
    
    def _sleep(self, seconds: float) -> None:
        if self.cancel_event is None:
            time.sleep(seconds)
            return
        if self.cancel_event.wait(seconds):
            raise FetchError("fetch cancelled")
    
    def health_check(self) -> bool:
        """Check GitHub API connectivity and remaining rate limit."""
        try:
            response = self.session.get(f"{self.base_url}/rate_limit", timeout=self.timeout)
            
            if response.status_code != 200:
                self.logger.error("GitHub health check failed", status_code=response.status_code)
                return False
            
            core = response.json().get("resources", {}).get("core", {})
            self.logger.info("GitHub health check passed",
                             remaining=core.get("remaining"),
                             limit=core.get("limit"))
            return True
            
        except Exception as e:
            self.logger.error("GitHub health check failed", error=str(e))
            return False
