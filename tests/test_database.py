from datetime import datetime, timezone

import pytest

from release_monitor.core.errors import LedgerError


class TestRepositories:
    
    def test_add_and_list_sorted(self, ledger):
        ledger.add_repository("kubernetes", "kubernetes", track_prereleases=True)
        ledger.add_repository("golang", "go")
        
        repositories = ledger.list_repositories()
        
        assert [r.full_name for r in repositories] == ["golang/go", "kubernetes/kubernetes"]
        assert repositories[1].track_prereleases is True
    
    def test_add_is_upsert(self, ledger):
        ledger.add_repository("golang", "go")
        ledger.add_repository("golang", "go", track_prereleases=True)
        
        repositories = ledger.list_repositories()
        assert len(repositories) == 1
        assert repositories[0].track_prereleases is True
    
    def test_remove(self, ledger):
        ledger.add_repository("golang", "go")
        
        assert ledger.remove_repository("golang", "go") is True
        assert ledger.remove_repository("golang", "go") is False
        assert ledger.list_repositories() == []


class TestDestinations:
    
    def test_add_list_remove(self, ledger):
        ledger.add_destination(200, "ops")
        ledger.add_destination(-100)
        
        destinations = ledger.list_destinations()
        assert [d.id for d in destinations] == [-100, 200]
        assert destinations[1].label == "ops"
        assert destinations[0].locale == "en"
        
        assert ledger.remove_destination(200) is True
        assert ledger.remove_destination(200) is False


class TestReleaseState:
    
    def test_processed_markers(self, ledger):
        published = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)
        
        assert not ledger.is_processed("acme", "widget", 1)
        ledger.mark_processed("acme", "widget", 1, "v1.2.0", published)
        ledger.mark_processed("acme", "widget", 1, "v1.2.0", published)
        
        assert ledger.is_processed("acme", "widget", 1)
        assert not ledger.is_processed("acme", "other", 1)
        assert ledger.get_stats()["processed_releases"] == 1
    
    def test_processed_marker_details(self, ledger):
        published = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)
        ledger.mark_processed("acme", "widget", 1, "v1.2.0", published)
        
        marker = ledger.get_processed("acme", "widget", 1)
        
        assert marker.tag_name == "v1.2.0"
        assert marker.published_at == published
        assert marker.recorded_at is not None
        assert ledger.get_processed("acme", "widget", 2) is None
    
    def test_revalidation_token(self, ledger):
        assert ledger.get_revalidation_token("acme", "widget") is None
        
        ledger.put_etag("acme", "widget", 'W/"a"')
        token = ledger.get_revalidation_token("acme", "widget")
        
        assert token.etag == 'W/"a"'
        assert token.updated_at is not None
    
    def test_etags(self, ledger):
        assert ledger.get_etag("acme", "widget") == ""
        
        ledger.put_etag("acme", "widget", 'W/"a"')
        ledger.put_etag("acme", "widget", 'W/"b"')
        
        assert ledger.get_etag("acme", "widget") == 'W/"b"'
    
    def test_settings(self, ledger):
        assert ledger.get_setting("last_update_id", "0") == "0"
        ledger.set_setting("last_update_id", "42")
        assert ledger.get_setting("last_update_id") == "42"
        
        ledger.set_setting("admin_update_offset", "7")
        assert [(s.key, s.value) for s in ledger.list_settings()] == [
            ("admin_update_offset", "7"),
            ("last_update_id", "42"),
        ]
    
    def test_state_survives_reopen(self, ledger):
        from release_monitor.storage.database import ReleaseLedger
        
        ledger.add_repository("golang", "go")
        ledger.put_etag("golang", "go", "x")
        
        reopened = ReleaseLedger(str(ledger.db_path))
        
        assert [r.full_name for r in reopened.list_repositories()] == ["golang/go"]
        assert reopened.get_etag("golang", "go") == "x"
    
    def test_out_of_range_ids_become_ledger_errors(self, ledger):
        with pytest.raises(LedgerError):
            ledger.add_destination(99999999999999999999999)
        
        assert ledger.list_destinations() == []
    
    def test_sqlite_errors_become_ledger_errors(self, ledger):
        with ledger.get_connection() as conn:
            conn.execute("DROP TABLE chats")
        
        with pytest.raises(LedgerError):
            ledger.list_destinations()
