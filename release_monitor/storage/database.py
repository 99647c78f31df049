"""
SQLite ledger for tracked repositories, destinations and release state.
"""
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Dict
from contextlib import contextmanager

import structlog

from ..core.errors import LedgerError
from ..core.models import (
    Destination, ProcessedMarker, RevalidationToken, Setting, TrackedRepository, utc_now
)

logger = structlog.get_logger(__name__)


class ReleaseLedger:
    """SQLite database owning all persisted state of the monitor."""
    
    def __init__(self, db_path: str = "releases.db"):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self._init_database()
    
    def _init_database(self):
        """Initialize database tables."""
        with self.get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS repos (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    owner TEXT NOT NULL,
                    name TEXT NOT NULL,
                    track_prereleases INTEGER NOT NULL DEFAULT 0,
                    UNIQUE(owner, name)
                )
            """)
            
            conn.execute("""
                CREATE TABLE IF NOT EXISTS chats (
                    id INTEGER PRIMARY KEY,
                    title TEXT,
                    language TEXT DEFAULT 'en'
                )
            """)
            
            # One row per release that has been broadcast or deliberately skipped
            conn.execute("""
                CREATE TABLE IF NOT EXISTS processed_releases (
                    repo_owner TEXT NOT NULL,
                    repo_name TEXT NOT NULL,
                    release_id INTEGER NOT NULL,
                    tag_name TEXT,
                    published_at TEXT,
                    created_at TEXT DEFAULT (datetime('now')),
                    PRIMARY KEY (repo_owner, repo_name, release_id)
                )
            """)
            
            conn.execute("""
                CREATE TABLE IF NOT EXISTS etags (
                    repo_owner TEXT NOT NULL,
                    repo_name TEXT NOT NULL,
                    etag TEXT NOT NULL,
                    updated_at TEXT DEFAULT (datetime('now')),
                    PRIMARY KEY (repo_owner, repo_name)
                )
            """)
            
            conn.execute("""
                CREATE TABLE IF NOT EXISTS settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            """)
            
            conn.commit()
            logger.info("Database initialized successfully", db_path=str(self.db_path))
    
    @contextmanager
    def get_connection(self):
        """Get database connection with proper cleanup."""
        with self._lock:
            try:
                conn = sqlite3.connect(self.db_path)
            except sqlite3.Error as e:
                raise LedgerError(f"failed to open database {self.db_path}: {e}") from e
            conn.row_factory = sqlite3.Row  # Enable dict-like access
            try:
                yield conn
            except (sqlite3.Error, OverflowError) as e:
                # OverflowError: integers outside SQLite's 64-bit range
                conn.rollback()
                raise LedgerError(str(e)) from e
            finally:
                conn.close()
    
    # Repository operations
    
    def add_repository(self, owner: str, name: str, track_prereleases: bool = False) -> None:
        """Add or update a tracked repository."""
        with self.get_connection() as conn:
            conn.execute("""
                INSERT INTO repos (owner, name, track_prereleases)
                VALUES (?, ?, ?)
                ON CONFLICT(owner, name) DO UPDATE SET
                    track_prereleases = excluded.track_prereleases
            """, (owner, name, int(track_prereleases)))
            conn.commit()
        logger.info("Stored repository", repo=f"{owner}/{name}",
                    track_prereleases=track_prereleases)
    
    def remove_repository(self, owner: str, name: str) -> bool:
        """Stop tracking a repository. Returns True if a row was removed."""
        with self.get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM repos WHERE owner = ? AND name = ?",
                (owner, name)
            )
            conn.commit()
            return cursor.rowcount > 0
    
    def list_repositories(self) -> List[TrackedRepository]:
        """Get all tracked repositories ordered by owner and name."""
        with self.get_connection() as conn:
            cursor = conn.execute("""
                SELECT owner, name, track_prereleases
                FROM repos
                ORDER BY owner, name
            """)
            return [
                TrackedRepository(
                    owner=row["owner"],
                    name=row["name"],
                    track_prereleases=bool(row["track_prereleases"])
                )
                for row in cursor.fetchall()
            ]
    
    # Destination operations
    
    def add_destination(self, chat_id: int, label: str = "", locale: str = "en") -> None:
        """Register a chat for notifications."""
        with self.get_connection() as conn:
            conn.execute("""
                INSERT OR REPLACE INTO chats (id, title, language)
                VALUES (?, ?, ?)
            """, (chat_id, label, locale))
            conn.commit()
        logger.info("Stored destination", chat_id=chat_id)
    
    def remove_destination(self, chat_id: int) -> bool:
        """Unregister a chat. Returns True if a row was removed."""
        with self.get_connection() as conn:
            cursor = conn.execute("DELETE FROM chats WHERE id = ?", (chat_id,))
            conn.commit()
            return cursor.rowcount > 0
    
    def list_destinations(self) -> List[Destination]:
        """Get all registered chats ordered by id."""
        with self.get_connection() as conn:
            cursor = conn.execute("SELECT id, title, language FROM chats ORDER BY id")
            return [
                Destination(
                    id=row["id"],
                    label=row["title"] or "",
                    locale=row["language"] or "en"
                )
                for row in cursor.fetchall()
            ]
    
    # Processed release operations
    
    def mark_processed(self, repo_owner: str, repo_name: str, release_id: int,
                       tag_name: str, published_at: Optional[datetime]) -> None:
        """Record that a release must never be broadcast again."""
        published = published_at.isoformat() if published_at else None
        recorded = utc_now().isoformat()
        
        with self.get_connection() as conn:
            conn.execute("""
                INSERT OR REPLACE INTO processed_releases
                (repo_owner, repo_name, release_id, tag_name, published_at, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (repo_owner, repo_name, release_id, tag_name, published, recorded))
            conn.commit()
    
    def get_processed(self, repo_owner: str, repo_name: str, release_id: int) -> Optional[ProcessedMarker]:
        """Get the processed marker of a release, if any."""
        with self.get_connection() as conn:
            cursor = conn.execute("""
                SELECT repo_owner, repo_name, release_id, tag_name, published_at, created_at
                FROM processed_releases
                WHERE repo_owner = ? AND repo_name = ? AND release_id = ?
            """, (repo_owner, repo_name, release_id))
            row = cursor.fetchone()
    
            if not row:
                return None
    
            return ProcessedMarker(
                repo_owner=row["repo_owner"],
                repo_name=row["repo_name"],
                release_id=row["release_id"],
                tag_name=row["tag_name"] or "",
                published_at=row["published_at"],
                recorded_at=row["created_at"]
            )
    
    def is_processed(self, repo_owner: str, repo_name: str, release_id: int) -> bool:
        """Check whether a release has a processed marker."""
        return self.get_processed(repo_owner, repo_name, release_id) is not None
    
    # ETag operations
    
    def get_revalidation_token(self, repo_owner: str, repo_name: str) -> Optional[RevalidationToken]:
        with self.get_connection() as conn:
            cursor = conn.execute("""
                SELECT repo_owner, repo_name, etag, updated_at
                FROM etags
                WHERE repo_owner = ? AND repo_name = ?
            """, (repo_owner, repo_name))
            row = cursor.fetchone()
    
            if not row:
                return None
    
            return RevalidationToken(
                repo_owner=row["repo_owner"],
                repo_name=row["repo_name"],
                etag=row["etag"],
                updated_at=row["updated_at"]
            )
    
    def get_etag(self, repo_owner: str, repo_name: str) -> str:
        """Get the stored ETag for a repository, or an empty string."""
        token = self.get_revalidation_token(repo_owner, repo_name)
        return token.etag if token else ""
    
    def put_etag(self, repo_owner: str, repo_name: str, etag: str) -> None:
        """Store the latest ETag for a repository."""
        updated = utc_now().isoformat()
        
        with self.get_connection() as conn:
            conn.execute("""
                INSERT OR REPLACE INTO etags (repo_owner, repo_name, etag, updated_at)
                VALUES (?, ?, ?, ?)
            """, (repo_owner, repo_name, etag, updated))
            conn.commit()
    
    # Settings operations
    
    def get_setting(self, key: str, default: str = "") -> str:
        with self.get_connection() as conn:
            cursor = conn.execute("SELECT value FROM settings WHERE key = ?", (key,))
            row = cursor.fetchone()
            return row["value"] if row else default
    
    def list_settings(self) -> List[Setting]:
        """Get all stored settings ordered by key."""
        with self.get_connection() as conn:
            cursor = conn.execute("SELECT key, value FROM settings ORDER BY key")
            return [Setting(key=row["key"], value=row["value"]) for row in cursor.fetchall()]
    
    def set_setting(self, key: str, value: str) -> None:
        with self.get_connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
                (key, value)
            )
            conn.commit()
    
    def get_stats(self) -> Dict[str, int]:
        """Get database statistics."""
        with self.get_connection() as conn:
            stats = {}
            
            for table, label in (
                ("repos", "repositories"),
                ("chats", "destinations"),
                ("processed_releases", "processed_releases"),
                ("etags", "etags"),
            ):
                cursor = conn.execute(f"SELECT COUNT(*) as count FROM {table}")
                stats[label] = cursor.fetchone()["count"]
            
            return stats
