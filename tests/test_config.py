from release_monitor.core.config import Settings
from release_monitor.main import seed_ledger

import structlog


def make_settings(**values):
    return Settings(_env_file=None, **values)


class TestSettings:
    
    def test_defaults(self, monkeypatch):
        for name in ("POLL_INTERVAL_MINUTES", "TIMEZONE", "MAX_BULLETS", "MAX_CHANGELOG_CHARS", "ADVISOR_ENABLED"):
            monkeypatch.delenv(name, raising=False)
        
        settings = make_settings()
        
        assert settings.poll_interval_minutes == 10
        assert settings.poll_interval_seconds == 600
        assert settings.timezone == "Europe/Amsterdam"
        assert settings.max_bullets == 8
        assert settings.max_changelog_chars == 2500
        assert settings.advisor_enabled is False
    
    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("POLL_INTERVAL_MINUTES", "5")
        monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "123:abc")
        
        settings = make_settings()
        
        assert settings.poll_interval_seconds == 300
        assert settings.telegram_bot_token == "123:abc"
    
    def test_allowed_user_ids(self):
        settings = make_settings(ALLOWED_USER_IDS="123, 456,abc,,0")
        
        assert settings.allowed_user_ids == [123, 456]
    
    def test_initial_repositories(self):
        settings = make_settings(INITIAL_REPOSITORIES="golang/go, kubernetes/kubernetes:pre,bad,/x")
        
        assert settings.initial_repositories == [
            ("golang", "go", False),
            ("kubernetes", "kubernetes", True),
        ]


class TestSeedLedger:
    
    def test_seeds_chat_and_repositories(self, ledger):
        settings = make_settings(DEFAULT_CHAT_ID=-100, INITIAL_REPOSITORIES="golang/go:pre")
        
        seed_ledger(settings, ledger, structlog.get_logger())
        
        assert [d.id for d in ledger.list_destinations()] == [-100]
        repositories = ledger.list_repositories()
        assert [(r.full_name, r.track_prereleases) for r in repositories] == [("golang/go", True)]
