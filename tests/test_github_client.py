from datetime import datetime, timezone
from unittest.mock import Mock, patch

import pytest
import requests

from release_monitor.core.errors import FetchError
from release_monitor.ingestion.github_client import GitHubReleaseClient

from conftest import make_release, make_response

RELEASES_JSON = [
    {
        "id": 2,
        "tag_name": "v1.1.0",
        "name": "v1.1.0",
        "body": "- Fix crash on startup",
        "draft": False,
        "prerelease": False,
        "html_url": "https://github.com/acme/widget/releases/tag/v1.1.0",
        "published_at": "2024-01-15T10:00:00Z"
    },
    {
        "id": 1,
        "tag_name": "v1.0.0",
        "name": None,
        "body": None,
        "draft": False,
        "prerelease": False,
        "html_url": "https://github.com/acme/widget/releases/tag/v1.0.0",
        "published_at": "2024-01-10T10:00:00Z"
    },
]


@pytest.fixture
def session():
    mock_session = Mock()
    mock_session.headers = {}
    return mock_session


@pytest.fixture
def client(session):
    return GitHubReleaseClient(token="ghp_test", session=session, backoff_base=0)


class TestFetchReleases:
    
    def test_parses_releases_and_etag(self, client, session):
        session.get.return_value = make_response(200, RELEASES_JSON, headers={"ETag": 'W/"abc"'})
        
        result = client.fetch_releases("acme", "widget")
        
        assert not result.unchanged
        assert result.etag == 'W/"abc"'
        assert [r.tag_name for r in result.releases] == ["v1.1.0", "v1.0.0"]
        assert result.releases[1].body == ""
        assert result.releases[0].published_at == datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)
        
        args, kwargs = session.get.call_args
        assert args[0] == "https://api.github.com/repos/acme/widget/releases"
        assert kwargs["params"] == {"per_page": 5}
        assert "If-None-Match" not in kwargs["headers"]
    
    def test_sets_auth_header(self, client, session):
        assert session.headers["Authorization"] == "Bearer ghp_test"
        assert session.headers["Accept"] == "application/vnd.github+json"
    
    def test_sends_stored_etag(self, client, session):
        session.get.return_value = make_response(304, headers={})
        
        result = client.fetch_releases("acme", "widget", prior_etag='W/"abc"')
        
        assert result.unchanged
        assert result.releases == []
        assert result.etag == 'W/"abc"'
        assert session.get.call_args[1]["headers"]["If-None-Match"] == 'W/"abc"'
    
    def test_not_modified_prefers_returned_etag(self, client, session):
        session.get.return_value = make_response(304, headers={"ETag": 'W/"def"'})
        
        assert client.fetch_releases("acme", "widget", 'W/"abc"').etag == 'W/"def"'
    
    def test_retries_server_errors(self, client, session):
        session.get.side_effect = [
            make_response(502),
            make_response(500),
            make_response(200, RELEASES_JSON, headers={"ETag": "x"}),
        ]
        
        result = client.fetch_releases("acme", "widget")
        
        assert len(result.releases) == 2
        assert session.get.call_count == 3
    
    def test_retries_network_errors(self, client, session):
        session.get.side_effect = [
            requests.ConnectionError("boom"),
            make_response(200, [], headers={}),
        ]
        
        assert client.fetch_releases("acme", "widget").releases == []
        assert session.get.call_count == 2
    
    def test_gives_up_after_retries(self, client, session):
        session.get.return_value = make_response(503)
        
        with pytest.raises(FetchError) as exc_info:
            client.fetch_releases("acme", "widget")
        
        assert exc_info.value.status_code == 503
        assert session.get.call_count == 4
    
    def test_client_errors_are_not_retried(self, client, session):
        session.get.return_value = make_response(404, {"message": "Not Found"}, text="Not Found")
        
        with pytest.raises(FetchError) as exc_info:
            client.fetch_releases("acme", "missing")
        
        assert exc_info.value.status_code == 404
        assert session.get.call_count == 1
    
    def test_rate_limit_backs_off_longer(self, session):
        client = GitHubReleaseClient(session=session, backoff_base=1.0)
        session.get.side_effect = [
            make_response(500),
            make_response(429),
            make_response(200, [], headers={}),
        ]
        
        with patch("release_monitor.ingestion.github_client.time.sleep") as mock_sleep:
            client.fetch_releases("acme", "widget")
        
        assert [c.args[0] for c in mock_sleep.call_args_list] == [1.0, 4.0]
    
    def test_cancellation_interrupts_backoff(self, session):
        cancel_event = Mock()
        cancel_event.wait.return_value = True
        client = GitHubReleaseClient(session=session, cancel_event=cancel_event)
        session.get.return_value = make_response(500)
        
        with pytest.raises(FetchError, match="cancelled"):
            client.fetch_releases("acme", "widget")
        
        assert session.get.call_count == 1
    
    def test_malformed_payload(self, client, session):
        session.get.return_value = make_response(200, ValueError("bad json"), headers={})
        
        with pytest.raises(FetchError, match="failed to decode"):
            client.fetch_releases("acme", "widget")


class TestFilterAndSort:
    
    def test_filters_and_orders_oldest_first(self, client):
        newest = make_release(3, "v3", datetime(2024, 1, 3, tzinfo=timezone.utc))
        oldest = make_release(1, "v1", datetime(2024, 1, 1, tzinfo=timezone.utc))
        draft = make_release(4, "v4", datetime(2024, 1, 4, tzinfo=timezone.utc), draft=True)
        pre = make_release(2, "v2-rc1", datetime(2024, 1, 2, tzinfo=timezone.utc), prerelease=True)
        unpublished = make_release(5, "v5", None)
        
        releases = [newest, draft, pre, oldest, unpublished]
        
        assert [r.id for r in client.filter_and_sort(releases, False)] == [1, 3]
        assert [r.id for r in client.filter_and_sort(releases, True)] == [1, 2, 3]
    
    def test_empty(self, client):
        assert client.filter_and_sort([], True) == []


class TestHealthCheck:
    
    def test_healthy(self, client, session):
        session.get.return_value = make_response(200, {"resources": {"core": {"remaining": 4999, "limit": 5000}}})
        
        assert client.health_check() is True
        assert session.get.call_args[0][0] == "https://api.github.com/rate_limit"
    
    def test_unhealthy(self, client, session):
        session.get.side_effect = requests.ConnectionError("down")
        
        assert client.health_check() is False
