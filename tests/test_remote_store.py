"""Tests for the remote stats store client."""

import gzip
import json
from datetime import datetime, timezone
from unittest.mock import Mock

import pytest
import requests
import responses
from responses import matchers

from typing_stats.sync.daily_stats import DailyStats
from typing_stats.sync.http_client import RemoteAuthError, RemoteStoreError
from typing_stats.sync.protocols import RemoteStoreProtocol, StoreError
from typing_stats.sync.remote_store import RemoteStore
from typing_stats.sync.retry import RetryConfig

API_URL = "https://stats.example.com/api"
NOW = datetime(2025, 12, 27, 12, 0, tzinfo=timezone.utc)


def make_stats(day_id: str, keystrokes: int = 10, device: str = "a") -> DailyStats:
    stats = DailyStats.new(day_id, NOW)
    stats.increment(keystrokes, device, NOW)
    return stats


class TestRemoteStore:
    """Tests for RemoteStore."""

    def setup_method(self):
        """Set up test fixtures."""
        self.scheduler = Mock()
        self.store = RemoteStore(
            api_url=API_URL,
            token="test-token",
            device_id="test-device",
            scheduler=self.scheduler,
            retry_config=RetryConfig(max_retries=0),
        )

    def teardown_method(self):
        """Clean up."""
        self.store.close()

    def test_implements_protocol(self):
        assert isinstance(self.store, RemoteStoreProtocol)

    def test_error_hierarchy(self):
        assert issubclass(RemoteAuthError, RemoteStoreError)
        assert issubclass(RemoteStoreError, StoreError)

    @responses.activate
    def test_load_all(self):
        responses.add(
            responses.GET,
            f"{API_URL}/stats",
            json={
                "records": [
                    make_stats("2025-12-26", 40).to_dict(),
                    make_stats("2025-12-27", 15).to_dict(),
                ],
                "cursor": "c1",
            },
            status=200,
        )

        records = self.store.load_all()

        assert sorted(records) == ["2025-12-26", "2025-12-27"]
        assert records["2025-12-26"].total_keystrokes == 40
        request = responses.calls[0].request
        assert request.headers["Authorization"] == "Bearer test-token"
        assert request.headers["X-Device-ID"] == "test-device"

    @responses.activate
    def test_load_all_skips_corrupt_records(self):
        responses.add(
            responses.GET,
            f"{API_URL}/stats",
            json={
                "records": [
                    {"id": "2025-12-25", "counter": "garbage"},
                    {"nonsense": True},
                    make_stats("2025-12-27").to_dict(),
                ]
            },
            status=200,
        )

        records = self.store.load_all()

        assert list(records) == ["2025-12-27"]

    @responses.activate
    def test_load_all_empty(self):
        responses.add(responses.GET, f"{API_URL}/stats", json={}, status=200)

        assert self.store.load_all() == {}

    @responses.activate
    def test_save_uploads_compressed_record(self):
        responses.add(responses.PUT, f"{API_URL}/stats/2025-12-27", json={}, status=200)
        stats = make_stats("2025-12-27", 99)

        self.store.save(stats)

        request = responses.calls[0].request
        assert request.headers["Content-Encoding"] == "gzip"
        body = json.loads(gzip.decompress(request.body))
        assert DailyStats.from_dict(body) == stats
        assert self.store.used_bytes() > 0

    @responses.activate
    def test_save_uncompressed(self):
        store = RemoteStore(
            api_url=API_URL,
            scheduler=Mock(),
            compress=False,
            retry_config=RetryConfig(max_retries=0),
        )
        responses.add(responses.PUT, f"{API_URL}/stats/2025-12-27", json={}, status=200)

        store.save(make_stats("2025-12-27"))

        body = json.loads(responses.calls[0].request.body)
        assert body["id"] == "2025-12-27"
        store.close()

    @responses.activate
    def test_save_prunes_oldest_days_over_quota(self):
        old_days = ["2025-12-20", "2025-12-21", "2025-12-22"]
        responses.add(
            responses.GET,
            f"{API_URL}/stats",
            json={"records": [make_stats(day).to_dict() for day in old_days]},
            status=200,
        )
        responses.add(responses.DELETE, f"{API_URL}/stats/2025-12-20", json={}, status=200)
        responses.add(responses.PUT, f"{API_URL}/stats/2025-12-23", json={}, status=200)

        new_stats = make_stats("2025-12-23")
        record_size = RemoteStore._encoded_size(new_stats.to_dict())
        self.store.quota_bytes = record_size * 3
        self.store.load_all()

        self.store.save(new_stats)

        methods = [(call.request.method, call.request.url) for call in responses.calls]
        assert methods == [
            ("GET", f"{API_URL}/stats"),
            ("DELETE", f"{API_URL}/stats/2025-12-20"),
            ("PUT", f"{API_URL}/stats/2025-12-23"),
        ]
        assert self.store.used_bytes() == record_size * 3

    @responses.activate
    def test_save_same_day_does_not_prune(self):
        responses.add(
            responses.GET,
            f"{API_URL}/stats",
            json={"records": [make_stats("2025-12-27").to_dict()]},
            status=200,
        )
        responses.add(responses.PUT, f"{API_URL}/stats/2025-12-27", json={}, status=200)
        stats = make_stats("2025-12-27")
        self.store.quota_bytes = RemoteStore._encoded_size(stats.to_dict())
        self.store.load_all()

        self.store.save(stats)

        assert [call.request.method for call in responses.calls] == ["GET", "PUT"]

    @responses.activate
    def test_auth_error(self):
        responses.add(responses.GET, f"{API_URL}/stats", status=401)

        with pytest.raises(RemoteAuthError):
            self.store.load_all()

    @responses.activate
    def test_server_error(self):
        responses.add(responses.PUT, f"{API_URL}/stats/2025-12-27", status=503)

        with pytest.raises(RemoteStoreError):
            self.store.save(make_stats("2025-12-27"))

    @responses.activate
    def test_server_error_retried(self):
        store = RemoteStore(
            api_url=API_URL,
            scheduler=Mock(),
            retry_config=RetryConfig(max_retries=1, base_delay=0.0, jitter=False),
        )
        responses.add(responses.GET, f"{API_URL}/stats", status=500)
        responses.add(responses.GET, f"{API_URL}/stats", json={"records": []}, status=200)

        assert store.load_all() == {}
        assert len(responses.calls) == 2
        store.close()

    @responses.activate
    def test_poll_changes_tracks_cursor(self):
        callback = Mock()
        self.store._callback = callback
        responses.add(
            responses.GET,
            f"{API_URL}/stats/changes",
            json={"records": [make_stats("2025-12-27", 5, "other").to_dict()], "cursor": "c1"},
            status=200,
            match=[matchers.query_param_matcher({})],
        )
        responses.add(
            responses.GET,
            f"{API_URL}/stats/changes",
            json={"records": [], "cursor": "c2"},
            status=200,
            match=[matchers.query_param_matcher({"since": "c1"})],
        )

        first = self.store.poll_changes()
        second = self.store.poll_changes()

        assert [s.day_id for s in first] == ["2025-12-27"]
        assert second == []
        callback.assert_called_once()
        delivered = callback.call_args.args[0]
        assert delivered[0].counter.value_for("other") == 5

    def test_observe_changes_schedules_poll_job(self):
        callback = Mock()

        self.store.observe_changes(callback)

        self.scheduler.add_job.assert_called_once()
        kwargs = self.scheduler.add_job.call_args.kwargs
        assert kwargs["id"] == RemoteStore.POLL_JOB_ID
        assert kwargs["replace_existing"] is True

    def test_stop_observing_removes_job(self):
        self.store.observe_changes(Mock())

        self.store.stop_observing()

        self.scheduler.remove_job.assert_called_with(RemoteStore.POLL_JOB_ID)
        assert self.store._callback is None

    @responses.activate
    def test_poll_job_logs_failures(self):
        responses.add(responses.GET, f"{API_URL}/stats/changes", status=500)

        # Must not raise inside the scheduler thread
        self.store._poll_job()

    @responses.activate
    def test_is_reachable(self):
        responses.add(responses.GET, f"{API_URL}/health", json={"ok": True}, status=200)

        assert self.store.is_reachable() is True

    def test_closed_client_raises(self):
        self.store.close()

        with pytest.raises(RemoteStoreError):
            self.store.load_all()


class TestRemoteStoreFailures:
    """Failures that must surface as RemoteStoreError."""

    def setup_method(self):
        """Set up test fixtures."""
        self.store = RemoteStore(
            api_url=API_URL,
            scheduler=Mock(),
            retry_config=RetryConfig(max_retries=0),
        )

    def teardown_method(self):
        """Clean up."""
        self.store.close()

    def test_url_without_scheme(self):
        store = RemoteStore(
            api_url="localhost:9/api",
            scheduler=Mock(),
            retry_config=RetryConfig(max_retries=0),
        )

        with pytest.raises(RemoteStoreError):
            store.load_all()
        store.close()

    @responses.activate
    def test_redirect_loop(self):
        responses.add(
            responses.GET,
            f"{API_URL}/stats",
            body=requests.exceptions.TooManyRedirects("loop"),
        )

        with pytest.raises(RemoteStoreError):
            self.store.load_all()

    @responses.activate
    def test_json_array_body(self):
        responses.add(responses.GET, f"{API_URL}/stats", json=[], status=200)

        with pytest.raises(RemoteStoreError):
            self.store.load_all()

    @responses.activate
    def test_records_not_a_list(self):
        responses.add(responses.GET, f"{API_URL}/stats", json={"records": 5}, status=200)

        with pytest.raises(RemoteStoreError):
            self.store.load_all()

    @responses.activate
    def test_changes_body_not_an_object(self):
        responses.add(responses.GET, f"{API_URL}/stats/changes", json="nope", status=200)

        with pytest.raises(RemoteStoreError):
            self.store.poll_changes()

    @responses.activate
    def test_fail_fast_makes_one_attempt(self):
        store = RemoteStore(api_url=API_URL, scheduler=Mock(), timeout=30)
        responses.add(responses.PUT, f"{API_URL}/stats/2025-12-27", status=503)

        store.fail_fast(5)
        with pytest.raises(RemoteStoreError):
            store.save(make_stats("2025-12-27"))

        assert len(responses.calls) == 1
        assert store.timeout == 5
        store.close()
