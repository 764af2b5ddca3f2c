"""
SQLite storage. One file, one connection, no ORM.

Tables:
- feed_cursors: last committed cursor per watched feed

Feed threads share the connection, so every statement runs under a lock.
"""

import sqlite3
import threading
from pathlib import Path

from models import FeedCursor, WatchedResource


class Storage:
    def __init__(self, db_path: Path):
        if str(db_path) != ":memory:":
            db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.row_factory = sqlite3.Row
        self._migrate()

    def _migrate(self):
        """Create tables if they don't exist. No migration framework needed."""
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS feed_cursors (
                feed TEXT PRIMARY KEY,
                position INTEGER,
                etag TEXT,
                updated_at TEXT NOT NULL DEFAULT (datetime('now'))
            );
        """)
        self._conn.commit()

    def get_cursor(self, resource: WatchedResource) -> FeedCursor | None:
        """Last committed cursor for a feed, or None if it was never watched."""
        with self._lock:
            row = self._conn.execute(
                "SELECT position, etag FROM feed_cursors WHERE feed = ?",
                (str(resource),),
            ).fetchone()
        if row is None:
            return None
        return FeedCursor.from_dict(dict(row))

    def set_cursor(self, resource: WatchedResource, cursor: FeedCursor):
        row = cursor.to_dict()
        with self._lock:
            self._conn.execute(
                """INSERT INTO feed_cursors (feed, position, etag, updated_at)
                   VALUES (?, ?, ?, datetime('now'))
                   ON CONFLICT(feed)
                   DO UPDATE SET position = excluded.position,
                                 etag = excluded.etag,
                                 updated_at = excluded.updated_at""",
                (str(resource), row["position"], row["etag"]),
            )
            self._conn.commit()

    def list_cursors(self) -> list[dict]:
        """All persisted cursors, for `main.py cursors`."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT feed, position, etag, updated_at FROM feed_cursors ORDER BY feed"
            ).fetchall()
        return [dict(r) for r in rows]

    def close(self):
        with self._lock:
            self._conn.close()
