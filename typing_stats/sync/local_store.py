"""SQLite-backed local store for daily statistics."""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional

from ..config import Config
from .daily_stats import DailyStats
from .protocols import StoreError

__all__ = ["LocalStore", "LocalStoreError"]

logger = logging.getLogger(__name__)


class LocalStoreError(StoreError):
    """Local database error."""

    pass


class LocalStore:
    """Stores one JSON-encoded DailyStats row per day.

    Rows that fail to decode are skipped on load so a single corrupt record
    never hides the rest of the history.
    """

    def __init__(self, db_path: Optional[Path] = None):
        """Initialize the store.

        Args:
            db_path: Path to SQLite database file. Defaults to data dir.
        """
        if db_path is None:
            db_path = Config.get_data_dir() / "typing_stats.db"

        self.db_path = db_path
        self._local = threading.local()
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        if not hasattr(self._local, "connection"):
            self._local.connection = sqlite3.connect(str(self.db_path))
            self._local.connection.row_factory = sqlite3.Row
        return self._local.connection

    @contextmanager
    def _cursor(self) -> Iterator[sqlite3.Cursor]:
        """Context manager for database cursor.

        Raises:
            LocalStoreError: On any SQLite failure
        """
        try:
            conn = self._get_connection()
            cursor = conn.cursor()
        except sqlite3.Error as e:
            raise LocalStoreError(f"Cannot open {self.db_path}: {e}") from e
        try:
            yield cursor
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise LocalStoreError(str(e)) from e
        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()

    def _init_db(self) -> None:
        """Initialize the database schema."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        with self._cursor() as cursor:
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS daily_stats (
                    day_id TEXT PRIMARY KEY,
                    payload TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )

    def load_all(self) -> dict[str, DailyStats]:
        """Load every decodable record, keyed by day id."""
        with self._cursor() as cursor:
            cursor.execute("SELECT day_id, payload FROM daily_stats")
            rows = cursor.fetchall()

        result: dict[str, DailyStats] = {}
        for row in rows:
            stats = self._decode(row["day_id"], row["payload"])
            if stats is not None:
                result[stats.day_id] = stats

        logger.debug(f"Loaded {len(result)} of {len(rows)} local records")
        return result

    def get(self, day_id: str) -> Optional[DailyStats]:
        """Load a single day, or None if absent or undecodable."""
        with self._cursor() as cursor:
            cursor.execute(
                "SELECT day_id, payload FROM daily_stats WHERE day_id = ?",
                (day_id,),
            )
            row = cursor.fetchone()
        if row is None:
            return None
        return self._decode(row["day_id"], row["payload"])

    @staticmethod
    def _decode(day_id: str, payload: str) -> Optional[DailyStats]:
        try:
            stats = DailyStats.from_json(payload)
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Skipping corrupt local record {day_id}: {e}")
            return None
        if stats.day_id != day_id:
            logger.warning(
                f"Skipping local record {day_id}: payload is for {stats.day_id}"
            )
            return None
        return stats

    def save(self, stats: DailyStats) -> None:
        """Insert or replace the row for ``stats.day_id``."""
        now = datetime.now(timezone.utc).isoformat()
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO daily_stats (day_id, payload, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(day_id) DO UPDATE SET
                    payload = excluded.payload,
                    updated_at = excluded.updated_at
                """,
                (stats.day_id, stats.to_json(), now),
            )

    def count(self) -> int:
        with self._cursor() as cursor:
            cursor.execute("SELECT COUNT(*) FROM daily_stats")
            return cursor.fetchone()[0]

    def close(self) -> None:
        """Close the database connection."""
        if hasattr(self._local, "connection"):
            self._local.connection.close()
            del self._local.connection
