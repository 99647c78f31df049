from datetime import datetime, timezone
from typing import Dict, List
from unittest.mock import Mock

import pytest

from release_monitor.core.models import Release, ReleasesResponse
from release_monitor.ingestion.github_client import GitHubReleaseClient
from release_monitor.storage.database import ReleaseLedger


def make_response(status_code=200, json_data=None, headers=None, text=""):
    """Build a stand-in for ``requests.Response``."""
    response = Mock()
    response.status_code = status_code
    response.headers = headers or {}
    response.text = text
    if isinstance(json_data, Exception):
        response.json.side_effect = json_data
    else:
        response.json.return_value = json_data
    return response


def make_release(release_id, tag, published_at, body="", draft=False, prerelease=False):
    return Release(
        id=release_id,
        tag_name=tag,
        name=tag,
        body=body,
        draft=draft,
        prerelease=prerelease,
        html_url=f"https://github.com/acme/widget/releases/tag/{tag}",
        published_at=published_at
    )


class FakeSource(GitHubReleaseClient):
    """GitHub client returning canned releases per repository."""
    
    def __init__(self):
        super().__init__(session=Mock(headers={}))
        self.releases: Dict[str, List[Release]] = {}
        self.etags: Dict[str, str] = {}
        self.errors: Dict[str, Exception] = {}
        self.calls = []
    
    def fetch_releases(self, owner, name, prior_etag=""):
        full_name = f"{owner}/{name}"
        self.calls.append((full_name, prior_etag))
        
        if full_name in self.errors:
            raise self.errors[full_name]
        
        etag = self.etags.get(full_name, "")
        if prior_etag and prior_etag == etag:
            return ReleasesResponse(status_code=304, etag=etag, unchanged=True)
        
        return ReleasesResponse(
            status_code=200,
            etag=etag,
            releases=list(self.releases.get(full_name, []))
        )


class FakePublisher:
    """Delivery channel that records messages instead of sending them."""
    
    def __init__(self):
        self.sent = []
        self.failures: Dict[int, Exception] = {}
    
    def send(self, destination_id, message):
        if destination_id in self.failures:
            raise self.failures[destination_id]
        self.sent.append((destination_id, message))
        return True
    
    def health_check(self):
        return True


@pytest.fixture
def ledger(tmp_path):
    return ReleaseLedger(str(tmp_path / "releases.db"))


@pytest.fixture
def source():
    return FakeSource()


@pytest.fixture
def publisher():
    return FakePublisher()


@pytest.fixture
def fixed_now():
    return datetime(2024, 1, 16, 0, 0, tzinfo=timezone.utc)
