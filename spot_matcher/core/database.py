"""
Thread-safe SQLite result cache for spot-matcher.

Completed conversions are stored per playlist key so that converting the
same playlist again can be answered without touching YouTube. The cache is
a performance optimization: nothing in the matching pipeline depends on it.

Schema:
    schema_version:     Single row with the schema version
    conversions:        One row per playlist key (counts, timestamps)
    conversion_tracks:  One row per track result, ordered by position

Usage:
    db = Database(output_dir / "results.db")

    db.save_results("37i9dQZF1DXcBWIGoYBM5M", job.track_results())
    cached = db.load_results("37i9dQZF1DXcBWIGoYBM5M")
"""

import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Generator

from spot_matcher.core.exceptions import DatabaseError


DATABASE_VERSION = 1


_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS conversions (
    playlist_key TEXT PRIMARY KEY,
    total INTEGER NOT NULL,
    found INTEGER NOT NULL,
    created_at TEXT,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS conversion_tracks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    playlist_key TEXT NOT NULL,
    position INTEGER NOT NULL,
    name TEXT,
    artist TEXT,
    youtube_video_id TEXT,
    is_official INTEGER DEFAULT 0,
    data TEXT NOT NULL,  -- JSON blob of the full track result
    FOREIGN KEY (playlist_key) REFERENCES conversions(playlist_key) ON DELETE CASCADE,
    UNIQUE(playlist_key, position)
);

CREATE INDEX IF NOT EXISTS idx_conversion_tracks_key ON conversion_tracks(playlist_key);
"""


class Database:
    """
    Thread-safe SQLite store for completed conversions.

    Uses a single persistent connection with thread locking for safety.
    All public methods acquire self._lock before executing.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self._lock = threading.Lock()
        self._conn: sqlite3.Connection | None = None

        if not db_path.parent.exists():
            raise DatabaseError(
                f"Parent directory does not exist: {db_path.parent}",
                details={"path": str(db_path.parent)}
            )

        try:
            self._init_database()
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to initialize database: {e}",
                details={"path": str(db_path)}
            ) from e

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Get the persistent database connection as a context manager.

        The connection is created once and reused for all operations.
        sqlite3 errors raised inside the block are wrapped in DatabaseError.
        """
        if self._conn is None:
            self._conn = sqlite3.connect(
                str(self.db_path),
                timeout=30.0,
                check_same_thread=False  # We handle thread safety with _lock
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield self._conn
        except sqlite3.Error as e:
            self._conn.rollback()
            raise DatabaseError(
                f"Database operation failed: {e}",
                details={"path": str(self.db_path), "original_error": str(e)}
            ) from e

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def _init_database(self) -> None:
        with self._get_connection() as conn:
            conn.executescript(_SCHEMA_SQL)

            cursor = conn.execute("SELECT version FROM schema_version LIMIT 1")
            row = cursor.fetchone()

            if row is None:
                conn.execute("INSERT INTO schema_version (version) VALUES (?)", (DATABASE_VERSION,))
            elif row[0] != DATABASE_VERSION:
                raise DatabaseError(
                    f"Database version mismatch: expected {DATABASE_VERSION}, got {row[0]}",
                    details={"expected": DATABASE_VERSION, "actual": row[0]}
                )
            conn.commit()

    def _now_iso(self) -> str:
        return datetime.now(timezone.utc).isoformat()

    # =========================================================================
    # Conversion Results
    # =========================================================================

    def save_results(self, playlist_key: str, track_results: list[dict[str, Any]]) -> None:
        """
        Store the track results of a completed conversion.

        Replaces any previous results for the same key.

        Args:
            playlist_key: Spotify playlist id (or any caller-chosen key).
            track_results: Track results as produced by Job.track_results(),
                           in track order.
        """
        found = sum(1 for result in track_results if result.get("youtubeVideoId"))
        now = self._now_iso()

        with self._lock:
            with self._get_connection() as conn:
                conn.execute("""
                    INSERT INTO conversions (playlist_key, total, found, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT(playlist_key) DO UPDATE SET
                        total = excluded.total,
                        found = excluded.found,
                        updated_at = excluded.updated_at
                """, (playlist_key, len(track_results), found, now, now))

                conn.execute(
                    "DELETE FROM conversion_tracks WHERE playlist_key = ?", (playlist_key,)
                )
                conn.executemany("""
                    INSERT INTO conversion_tracks (
                        playlist_key, position, name, artist, youtube_video_id,
                        is_official, data
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """, [
                    (
                        playlist_key,
                        position,
                        result.get("name"),
                        result.get("artist"),
                        result.get("youtubeVideoId"),
                        1 if result.get("isOfficial") else 0,
                        json.dumps(result),
                    )
                    for position, result in enumerate(track_results)
                ])
                conn.commit()

    def load_results(self, playlist_key: str) -> list[dict[str, Any]] | None:
        """
        Load cached track results for a playlist key.

        Returns:
            The stored track results in track order, or None if the key
            has never been saved.
        """
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    "SELECT 1 FROM conversions WHERE playlist_key = ?", (playlist_key,)
                )
                if cursor.fetchone() is None:
                    return None

                cursor = conn.execute("""
                    SELECT data FROM conversion_tracks
                    WHERE playlist_key = ?
                    ORDER BY position
                """, (playlist_key,))
                rows = cursor.fetchall()

        try:
            return [json.loads(row["data"]) for row in rows]
        except json.JSONDecodeError as e:
            raise DatabaseError(
                f"Corrupt cached results for {playlist_key}",
                details={"playlist_key": playlist_key, "original_error": str(e)}
            ) from e

    def delete_results(self, playlist_key: str) -> bool:
        """Delete cached results. Returns True if something was deleted."""
        with self._lock:
            with self._get_connection() as conn:
                conn.execute(
                    "DELETE FROM conversion_tracks WHERE playlist_key = ?", (playlist_key,)
                )
                cursor = conn.execute(
                    "DELETE FROM conversions WHERE playlist_key = ?", (playlist_key,)
                )
                conn.commit()
                return cursor.rowcount > 0

    def list_playlists(self) -> list[dict[str, Any]]:
        """List cached conversions, most recently updated first."""
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute("""
                    SELECT playlist_key, total, found, created_at, updated_at
                    FROM conversions
                    ORDER BY updated_at DESC
                """)
                return [dict(row) for row in cursor.fetchall()]
