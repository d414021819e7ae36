"""Tests for the SQLite local store."""

import sqlite3
import tempfile
from datetime import datetime, timezone
from pathlib import Path

import pytest

from typing_stats.sync.daily_stats import DailyStats
from typing_stats.sync.local_store import LocalStore, LocalStoreError
from typing_stats.sync.protocols import LocalStoreProtocol, StoreError

NOW = datetime(2025, 12, 27, 12, 0, tzinfo=timezone.utc)


def make_stats(day_id: str, keystrokes: int = 0, words: int = 0) -> DailyStats:
    stats = DailyStats.new(day_id, NOW)
    stats.increment(keystrokes, "device-a", NOW)
    stats.increment_words(words, "device-a", NOW)
    return stats


class TestLocalStore:
    """Tests for LocalStore."""

    def setup_method(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = Path(self.temp_dir) / "test_stats.db"
        self.store = LocalStore(db_path=self.db_path)

    def teardown_method(self):
        """Clean up."""
        self.store.close()

    def test_implements_protocol(self):
        assert isinstance(self.store, LocalStoreProtocol)

    def test_empty_store(self):
        assert self.store.load_all() == {}
        assert self.store.count() == 0

    def test_save_and_load(self):
        stats = make_stats("2025-12-27", keystrokes=120, words=20)

        self.store.save(stats)
        loaded = self.store.load_all()

        assert list(loaded) == ["2025-12-27"]
        assert loaded["2025-12-27"] == stats

    def test_save_replaces_existing_day(self):
        stats = make_stats("2025-12-27", keystrokes=10)
        self.store.save(stats)

        stats.increment(15, "device-a", NOW)
        self.store.save(stats)

        assert self.store.count() == 1
        assert self.store.get("2025-12-27").total_keystrokes == 25

    def test_get_missing_day(self):
        assert self.store.get("2025-01-01") is None

    def test_persists_across_instances(self):
        self.store.save(make_stats("2025-12-26", keystrokes=5))
        self.store.save(make_stats("2025-12-27", keystrokes=7))
        self.store.close()

        reopened = LocalStore(db_path=self.db_path)
        try:
            loaded = reopened.load_all()
        finally:
            reopened.close()

        assert sorted(loaded) == ["2025-12-26", "2025-12-27"]
        assert loaded["2025-12-27"].total_keystrokes == 7

    def _insert_raw(self, day_id: str, payload: str) -> None:
        conn = sqlite3.connect(str(self.db_path))
        conn.execute(
            "INSERT INTO daily_stats (day_id, payload, updated_at) VALUES (?, ?, ?)",
            (day_id, payload, NOW.isoformat()),
        )
        conn.commit()
        conn.close()

    def test_corrupt_row_is_skipped(self):
        self.store.save(make_stats("2025-12-27", keystrokes=3))
        self._insert_raw("2025-12-26", "{not json")

        loaded = self.store.load_all()

        assert list(loaded) == ["2025-12-27"]
        assert self.store.get("2025-12-26") is None

    def test_row_with_mismatched_day_is_skipped(self):
        self._insert_raw("2025-12-25", make_stats("2025-12-24", keystrokes=1).to_json())

        assert self.store.load_all() == {}

    def test_old_payload_without_words(self):
        self._insert_raw(
            "2025-06-01",
            '{"id": "2025-06-01", "counter": {"counts": {"old": 9}}, '
            '"created_at": "2025-06-01T00:00:00+00:00", '
            '"modified_at": "2025-06-01T00:00:00+00:00"}',
        )

        loaded = self.store.load_all()

        assert loaded["2025-06-01"].total_keystrokes == 9
        assert loaded["2025-06-01"].total_words == 0

    def test_sqlite_errors_are_wrapped(self):
        conn = self.store._get_connection()
        conn.execute("DROP TABLE daily_stats")

        with pytest.raises(LocalStoreError):
            self.store.load_all()

    def test_error_hierarchy(self):
        assert issubclass(LocalStoreError, StoreError)
