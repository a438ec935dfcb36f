"""
SQLite key-value store for small persisted preferences.

Only the Spotify token fields live here; everything else in a session is
in-memory.
"""
import logging
import sqlite3
from contextlib import contextmanager
from typing import Optional

from config import PREFERENCES_DB_PATH

logger = logging.getLogger(__name__)


class Preferences:
    """String key-value pairs in a single sqlite table."""

    def __init__(self, db_path: str = PREFERENCES_DB_PATH):
        self.db_path = db_path
        self.init_db()

    def init_db(self):
        """Initialize the database with the preferences table."""
        with self.get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS preferences (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.commit()

    @contextmanager
    def get_connection(self):
        """Get a database connection."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def get(self, key: str) -> Optional[str]:
        with self.get_connection() as conn:
            row = conn.execute(
                "SELECT value FROM preferences WHERE key = ?", (key,)
            ).fetchone()
        return row["value"] if row else None

    def set(self, key: str, value: str) -> None:
        with self.get_connection() as conn:
            conn.execute("""
                INSERT INTO preferences (key, value, updated_at)
                VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = CURRENT_TIMESTAMP
            """, (key, value))
            conn.commit()

    def delete(self, key: str) -> None:
        with self.get_connection() as conn:
            conn.execute("DELETE FROM preferences WHERE key = ?", (key,))
            conn.commit()
