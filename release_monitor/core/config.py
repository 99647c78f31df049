"""
Configuration management for the release monitoring system.
"""

from pathlib import Path
from typing import List, Tuple
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""
    
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )
    
    # GitHub Configuration
    github_token: str = Field("", alias="GITHUB_TOKEN")
    github_api_url: str = Field("https://api.github.com", alias="GITHUB_API_URL")
    
    # Telegram Configuration
    telegram_bot_token: str = Field("", alias="TELEGRAM_BOT_TOKEN")
    telegram_api_url: str = Field("https://api.telegram.org", alias="TELEGRAM_API_URL")
    default_chat_id: int = Field(0, alias="DEFAULT_CHAT_ID")
    allowed_user_ids_raw: str = Field("", alias="ALLOWED_USER_IDS")
    
    # OpenRouter Configuration
    advisor_enabled: bool = Field(False, alias="ADVISOR_ENABLED")
    openrouter_api_key: str = Field("", alias="OPENROUTER_API_KEY")
    openrouter_model: str = Field("anthropic/claude-3-haiku", alias="OPENROUTER_MODEL")
    advisor_timeout_seconds: float = Field(15.0, alias="ADVISOR_TIMEOUT_SECONDS", gt=0)
    
    # Pipeline Configuration
    poll_interval_minutes: int = Field(10, alias="POLL_INTERVAL_MINUTES", ge=1)
    timezone: str = Field("Europe/Amsterdam", alias="TIMEZONE")
    max_changelog_chars: int = Field(2500, alias="MAX_CHANGELOG_CHARS", ge=1)
    max_bullets: int = Field(8, alias="MAX_BULLETS", ge=1)
    max_release_age_days: int = Field(7, alias="MAX_RELEASE_AGE_DAYS", ge=0)
    initial_repositories_raw: str = Field("", alias="INITIAL_REPOSITORIES")
    
    # Storage and logging
    db_path: str = Field("./releases.db", alias="DB_PATH")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_format: str = Field("console", alias="LOG_FORMAT")
    
    @property
    def allowed_user_ids(self) -> List[int]:
        """Admin user ids parsed from the comma separated setting."""
        ids = []
        for part in self.allowed_user_ids_raw.split(","):
            part = part.strip()
            if not part:
                continue
            try:
                user_id = int(part)
            except ValueError:
                continue
            if user_id != 0:
                ids.append(user_id)
        return ids
    
    @property
    def initial_repositories(self) -> List[Tuple[str, str, bool]]:
        """
        Repositories to seed on startup.
        
        Entries are ``owner/name`` separated by commas; a ``:pre`` suffix
        enables prerelease tracking for that repository.
        """
        repositories = []
        for entry in self.initial_repositories_raw.split(","):
            entry = entry.strip()
            if not entry:
                continue
            
            track_prereleases = False
            if entry.endswith(":pre"):
                track_prereleases = True
                entry = entry[:-len(":pre")]
            
            parts = entry.split("/")
            if len(parts) != 2 or not parts[0] or not parts[1]:
                continue
            repositories.append((parts[0], parts[1], track_prereleases))
        return repositories
    
    @property
    def poll_interval_seconds(self) -> float:
        return self.poll_interval_minutes * 60.0
    
    @property
    def db_file(self) -> Path:
        """Get the database file path."""
        return Path(self.db_path)


def get_settings() -> Settings:
    """Load settings from the environment and the ``.env`` file."""
    return Settings()
