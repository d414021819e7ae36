"""Remote key-value store client - shares daily records between devices."""

import json
import logging
import threading
from typing import Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config import DEFAULT_POLL_INTERVAL, DEFAULT_QUOTA_BYTES
from .daily_stats import DailyStats
from .http_client import BaseApiClient, RemoteStoreError
from .protocols import RemoteChangeCallback

__all__ = ["RemoteStore"]

logger = logging.getLogger(__name__)


class RemoteStore(BaseApiClient):
    """Client for the per-user remote stats store.

    API contract (relative to ``api_url``):

    - ``GET stats`` -> ``{"records": [...], "cursor": "..."}``
    - ``GET stats/changes?since=<cursor>`` -> same shape, changed records only
    - ``PUT stats/<day_id>`` stores one record
    - ``DELETE stats/<day_id>`` drops one record

    The store is capacity bounded. When a write would exceed ``quota_bytes``
    the oldest days are deleted first, so readers must tolerate old days
    disappearing from the remote side.
    """

    POLL_JOB_ID = "remote_poll_job"

    def __init__(
        self,
        api_url: str,
        token: Optional[str] = None,
        device_id: Optional[str] = None,
        quota_bytes: int = DEFAULT_QUOTA_BYTES,
        poll_interval_seconds: int = DEFAULT_POLL_INTERVAL,
        scheduler: Optional[BackgroundScheduler] = None,
        **kwargs,
    ):
        """Initialize the remote store.

        Args:
            api_url: Remote store base URL
            token: API token for authentication
            device_id: This installation's device id
            quota_bytes: Maximum serialized size of all stored records
            poll_interval_seconds: How often to poll for remote changes
            scheduler: Optional shared scheduler for the polling job
            **kwargs: Passed through to BaseApiClient
        """
        super().__init__(api_url, token=token, device_id=device_id, **kwargs)
        self.quota_bytes = quota_bytes
        self.poll_interval_seconds = poll_interval_seconds
        self._scheduler = scheduler or BackgroundScheduler(daemon=True)
        self._owns_scheduler = scheduler is None
        self._callback: Optional[RemoteChangeCallback] = None
        self._lock = threading.Lock()
        self._cursor: Optional[str] = None
        # Serialized size per known remote day, used for quota accounting
        self._sizes: dict[str, int] = {}

    @staticmethod
    def _encoded_size(payload: dict) -> int:
        return len(json.dumps(payload, sort_keys=True).encode("utf-8"))

    def _decode_records(self, raw_records: list) -> dict[str, DailyStats]:
        if raw_records is None:
            return {}
        if not isinstance(raw_records, list):
            raise RemoteStoreError(
                f"Expected a list of records, got {type(raw_records).__name__}"
            )
        records: dict[str, DailyStats] = {}
        for raw in raw_records:
            try:
                stats = DailyStats.from_dict(raw)
            except (ValueError, KeyError, TypeError, AttributeError) as e:
                logger.warning(f"Skipping corrupt remote record: {e}")
                continue
            records[stats.day_id] = stats
            with self._lock:
                self._sizes[stats.day_id] = self._encoded_size(raw)
        return records

    def load_all(self) -> dict[str, DailyStats]:
        """Fetch every record currently held remotely."""
        response = self._request("GET", "stats")
        records = self._decode_records(response.get("records", []))
        with self._lock:
            self._cursor = response.get("cursor") or self._cursor
            # Days the server no longer has are not counted against the quota
            self._sizes = {k: v for k, v in self._sizes.items() if k in records}
        logger.info(f"Loaded {len(records)} remote records")
        return records

    def save(self, stats: DailyStats) -> None:
        """Upload one record, pruning the oldest days if over quota."""
        payload = stats.to_dict()
        size = self._encoded_size(payload)
        self._make_room(stats.day_id, size)
        self._request("PUT", f"stats/{stats.day_id}", data=payload, compress=True)
        with self._lock:
            self._sizes[stats.day_id] = size

    def _make_room(self, day_id: str, size: int) -> None:
        with self._lock:
            others = {k: v for k, v in self._sizes.items() if k != day_id}
        used = sum(others.values())
        if used + size <= self.quota_bytes:
            return

        for old_id in sorted(others):
            if used + size <= self.quota_bytes:
                break
            try:
                self._request("DELETE", f"stats/{old_id}")
            except RemoteStoreError as e:
                logger.warning(f"Failed to prune remote record {old_id}: {e}")
                break
            used -= others[old_id]
            with self._lock:
                self._sizes.pop(old_id, None)
            logger.info(f"Pruned remote record {old_id} to stay under quota")

    def used_bytes(self) -> int:
        with self._lock:
            return sum(self._sizes.values())

    # Change notification

    def poll_changes(self) -> list[DailyStats]:
        """Fetch records changed since the last cursor and notify the observer."""
        with self._lock:
            params = {"since": self._cursor} if self._cursor else None
        response = self._request("GET", "stats/changes", params=params, retry=False)
        records = list(self._decode_records(response.get("records", [])).values())
        with self._lock:
            self._cursor = response.get("cursor") or self._cursor

        if records:
            logger.debug(f"Received {len(records)} changed remote records")
            if self._callback:
                self._callback(records)
        return records

    def _poll_job(self) -> None:
        try:
            self.poll_changes()
        except RemoteStoreError as e:
            logger.warning(f"Remote change poll failed: {e}")

    def observe_changes(self, callback: RemoteChangeCallback) -> None:
        """Start polling for changes, delivering them to ``callback``."""
        self._callback = callback
        self._scheduler.add_job(
            self._poll_job,
            trigger=IntervalTrigger(seconds=self.poll_interval_seconds),
            id=self.POLL_JOB_ID,
            replace_existing=True,
        )
        if not self._scheduler.running:
            self._scheduler.start()
        logger.info(
            f"Observing remote changes (interval: {self.poll_interval_seconds}s)"
        )

    def stop_observing(self) -> None:
        """Stop the polling job."""
        self._callback = None
        if self._owns_scheduler:
            if self._scheduler.running:
                self._scheduler.shutdown(wait=False)
            return
        try:
            self._scheduler.remove_job(self.POLL_JOB_ID)
        except JobLookupError:
            pass

    def close(self) -> None:
        self.stop_observing()
        super().close()
