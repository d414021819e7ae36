"""Stats repository - merges local and remote state and persists changes.

The repository owns the in-memory cache of DailyStats keyed by day id. Two
independent sources mutate it: local keystroke deltas and remote change
notifications. Every mutation goes through one lock, and because G-Counter
merges commute the interleaving of those sources never changes the result.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Iterable, Optional, Union

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger

from ..config import DEFAULT_DEBOUNCE_SECONDS
from .daily_stats import DailyStats, day_id_days_ago, short_display_string, today_id
from .delta import DeltaTracker
from .protocols import LocalStoreProtocol, RemoteStoreProtocol, StoreError

__all__ = [
    "MetricKind",
    "MetricSummary",
    "StatsSnapshot",
    "StatsRepository",
    "ROLLING_WINDOWS",
]

logger = logging.getLogger(__name__)

SAVE_JOB_ID = "debounced_save_job"
ROLLING_WINDOWS = (7, 30)
RECENT_DAYS = 7


class MetricKind(Enum):
    """The two counters tracked per day."""

    KEYSTROKES = "keystrokes"
    WORDS = "words"

    def total(self, stats: DailyStats) -> int:
        if self is MetricKind.WORDS:
            return stats.total_words
        return stats.total_keystrokes


@dataclass(frozen=True)
class MetricSummary:
    """Derived statistics for one metric."""

    today: int = 0
    yesterday: int = 0
    seven_day_avg: int = 0
    thirty_day_avg: int = 0
    record: int = 0
    record_day_id: Optional[str] = None

    @property
    def record_date(self) -> str:
        """Record day formatted for display (e.g. "12/26"), or "" if none."""
        if self.record_day_id is None:
            return ""
        return short_display_string(self.record_day_id)


@dataclass(frozen=True)
class StatsSnapshot:
    """Read-only view published to the presentation layer after each change."""

    today: Optional[DailyStats] = None
    keystrokes: MetricSummary = field(default_factory=MetricSummary)
    words: MetricSummary = field(default_factory=MetricSummary)
    recent: tuple = ()

    def metric(self, kind: MetricKind) -> MetricSummary:
        return self.words if kind is MetricKind.WORDS else self.keystrokes


SnapshotListener = Callable[[StatsSnapshot], None]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class StatsRepository:
    """Central coordinator for stats data.

    Handles the local store, the remote store and CRDT merging. Local
    increments are persisted after a short debounce; remote merges are
    written to the local store immediately.
    """

    def __init__(
        self,
        local: LocalStoreProtocol,
        remote: Optional[RemoteStoreProtocol],
        device_id: str,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        scheduler: Optional[BackgroundScheduler] = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        """Initialize the repository.

        Args:
            local: On-device store
            remote: Shared store, or None when remote sync is disabled
            device_id: This installation's identity in every G-Counter
            debounce_seconds: Quiet period before local increments are saved
            scheduler: Optional shared scheduler for the debounced save job
            clock: Source of the current time (day boundaries use its local date)
        """
        self.local = local
        self.remote = remote
        self.device_id = device_id
        self.debounce_seconds = debounce_seconds
        self._clock = clock

        self._scheduler = scheduler or BackgroundScheduler(daemon=True)
        self._owns_scheduler = scheduler is None

        self._lock = threading.RLock()
        self._cache: dict[str, DailyStats] = {}
        self._loaded = False
        self._snapshot = StatsSnapshot()
        self._listeners: list[SnapshotListener] = []

        self._save_lock = threading.Lock()
        self._pending_days: set[str] = set()
        # Held for every store write so writes of a day land in cache order
        self._io_lock = threading.Lock()

        self._keystroke_tracker = DeltaTracker()
        self._word_tracker = DeltaTracker()

    # -- Lifecycle ------------------------------------------------------------

    def start(self) -> None:
        """Start the scheduler that runs debounced saves."""
        if not self._scheduler.running:
            self._scheduler.start()

    def close(self) -> None:
        """Flush pending changes and stop the scheduler if we own it."""
        self.force_save()
        if self._owns_scheduler and self._scheduler.running:
            self._scheduler.shutdown(wait=False)

    def load_initial(self) -> None:
        """Load both stores and merge them into the cache.

        Local records are folded in first, then remote ones. Safe to call
        more than once; later calls do nothing.
        """
        with self._lock:
            if self._loaded:
                logger.debug("Initial data already loaded")
                return

        local_records = self._load_from(self.local, "local")
        remote_records = self._load_from(self.remote, "remote") if self.remote else {}

        now = self._clock()
        with self._lock:
            if self._loaded:
                return
            merged: dict[str, DailyStats] = {
                day_id: stats.copy() for day_id, stats in local_records.items()
            }
            for day_id, remote_stats in remote_records.items():
                existing = merged.get(day_id)
                if existing is None:
                    merged[day_id] = remote_stats.copy()
                else:
                    existing.merge(remote_stats, now)

            # Deltas may have arrived while the stores were loading
            for day_id, stats in merged.items():
                current = self._cache.get(day_id)
                if current is None:
                    self._cache[day_id] = stats
                else:
                    current.merge(stats, now)

            self._loaded = True
            snapshot = self._recompute(now)

        logger.info(
            f"Loaded {len(local_records)} local and {len(remote_records)} remote "
            f"records ({len(merged)} days)"
        )
        self._notify(snapshot)

    @staticmethod
    def _load_from(store, name: str) -> dict[str, DailyStats]:
        try:
            return store.load_all()
        except StoreError as e:
            logger.warning(f"Failed to load {name} stats: {e}")
        except Exception:
            logger.exception(f"Unexpected error loading {name} stats")
        return {}

    # -- Local activity -------------------------------------------------------

    def observe_counts(
        self, keystrokes: Optional[int] = None, words: Optional[int] = None
    ) -> None:
        """Feed cumulative readings from the keystroke monitor.

        Readings are converted to positive deltas; a reading lower than the
        previous one resets the baseline.
        """
        if keystrokes is not None:
            delta = self._keystroke_tracker.observe(keystrokes)
            if delta:
                self.apply_delta(MetricKind.KEYSTROKES, delta)
        if words is not None:
            delta = self._word_tracker.observe(words)
            if delta:
                self.apply_delta(MetricKind.WORDS, delta)

    def apply_delta(self, kind: Union[MetricKind, str], amount: int) -> None:
        """Add ``amount`` to today's counter for ``kind``.

        Non-positive amounts are ignored.
        """
        kind = MetricKind(kind)
        if amount <= 0:
            return

        now = self._clock()
        day_id = today_id(now)
        with self._lock:
            stats = self._cache.get(day_id)
            is_new = stats is None
            if is_new:
                stats = DailyStats.new(day_id, now)
            if kind is MetricKind.WORDS:
                stats.increment_words(amount, self.device_id, now)
            else:
                stats.increment(amount, self.device_id, now)
            if is_new:
                self._cache[day_id] = stats
                logger.info(f"Started new day {day_id}")
            snapshot = self._recompute(now)

        self._notify(snapshot)
        self.schedule_save(day_id)

    def record_keystrokes(self, count: int) -> None:
        self.apply_delta(MetricKind.KEYSTROKES, count)

    def record_words(self, count: int) -> None:
        self.apply_delta(MetricKind.WORDS, count)

    # -- Remote changes -------------------------------------------------------

    def handle_remote_changes(self, records: Iterable[DailyStats]) -> None:
        """Merge records received from another device.

        Each merged day is written to the local store right away. Days the
        remote side has already dropped simply never show up here.
        """
        now = self._clock()
        with self._lock:
            merged: list[str] = []
            for remote_stats in records:
                current = self._cache.get(remote_stats.day_id)
                if current is None:
                    self._cache[remote_stats.day_id] = remote_stats.copy()
                else:
                    current.merge(remote_stats, now)
                merged.append(remote_stats.day_id)
            if not merged:
                return
            snapshot = self._recompute(now)

        logger.debug(f"Merged {len(merged)} remote records")
        for day_id in sorted(set(merged)):
            self._persist(day_id, remote=False)
        self._notify(snapshot)

    # -- Persistence ----------------------------------------------------------

    def schedule_save(self, day_id: Optional[str] = None) -> None:
        """Persist ``day_id`` (default: today) once the debounce window passes.

        Replaces any save already scheduled, so a burst of increments
        results in a single write.
        """
        day_id = day_id or today_id(self._clock())
        with self._save_lock:
            self._pending_days.add(day_id)
            self.start()
            self._scheduler.add_job(
                self._flush_pending,
                trigger=DateTrigger(
                    run_date=_utc_now() + timedelta(seconds=self.debounce_seconds)
                ),
                id=SAVE_JOB_ID,
                replace_existing=True,
                misfire_grace_time=None,
            )

    def _flush_pending(self) -> None:
        with self._save_lock:
            days = sorted(self._pending_days)
            self._pending_days.clear()
        for day_id in days:
            self._persist(day_id)

    def force_save(self) -> None:
        """Cancel the pending debounce and persist today's record now.

        Call on shutdown.
        """
        with self._save_lock:
            try:
                self._scheduler.remove_job(SAVE_JOB_ID)
            except JobLookupError:
                pass
            days = set(self._pending_days)
            self._pending_days.clear()
        days.add(today_id(self._clock()))
        for day_id in sorted(days):
            self._persist(day_id)

    def _persist(self, day_id: str, remote: bool = True) -> None:
        """Write the cached record for ``day_id`` to the stores.

        The copy is taken while holding the I/O lock, so a write that
        started earlier can never replace a newer merged row.
        """
        with self._io_lock:
            with self._lock:
                stats = self._cache.get(day_id)
                stats = stats.copy() if stats is not None else None
            if stats is None:
                return
            logger.debug(
                f"Saving {day_id}: {stats.total_keystrokes} keystrokes, "
                f"{stats.total_words} words"
            )
            self._save_to(self.local, stats, "locally")
            if remote and self.remote is not None:
                self._save_to(self.remote, stats, "remotely")

    @staticmethod
    def _save_to(store, stats: DailyStats, where: str) -> None:
        try:
            store.save(stats)
        except StoreError as e:
            logger.warning(f"Failed to save {stats.day_id} {where}: {e}")
        except Exception:
            logger.exception(f"Unexpected error saving {stats.day_id} {where}")

    # -- Derived statistics ---------------------------------------------------

    def compute_derived_stats(self, now: Optional[datetime] = None) -> StatsSnapshot:
        """Recompute and publish the snapshot for ``now`` (default: clock)."""
        with self._lock:
            snapshot = self._recompute(now or self._clock())
        self._notify(snapshot)
        return snapshot

    def _recompute(self, now: datetime) -> StatsSnapshot:
        """Build a snapshot from the cache. Caller holds the lock."""
        today = self._cache.get(today_id(now))
        recent_ids = sorted(self._cache, reverse=True)[:RECENT_DAYS]
        self._snapshot = StatsSnapshot(
            today=today.copy() if today is not None else None,
            keystrokes=self._summarize(MetricKind.KEYSTROKES, now),
            words=self._summarize(MetricKind.WORDS, now),
            recent=tuple(self._cache[day_id].copy() for day_id in recent_ids),
        )
        return self._snapshot

    def _summarize(self, kind: MetricKind, now: datetime) -> MetricSummary:
        today = self._cache.get(today_id(now))
        yesterday = self._cache.get(day_id_days_ago(1, now))
        averages = {days: self._rolling_average(kind, days, now) for days in ROLLING_WINDOWS}

        # Ties go to the earliest day
        record_stats: Optional[DailyStats] = None
        for day_id in sorted(self._cache):
            stats = self._cache[day_id]
            if record_stats is None or kind.total(stats) > kind.total(record_stats):
                record_stats = stats

        return MetricSummary(
            today=kind.total(today) if today else 0,
            yesterday=kind.total(yesterday) if yesterday else 0,
            seven_day_avg=averages[7],
            thirty_day_avg=averages[30],
            record=kind.total(record_stats) if record_stats else 0,
            record_day_id=record_stats.day_id if record_stats else None,
        )

    def _rolling_average(self, kind: MetricKind, days: int, now: datetime) -> int:
        """Average over the ``days`` days before today that have a record."""
        present = [
            self._cache[day_id]
            for day_id in (day_id_days_ago(offset, now) for offset in range(1, days + 1))
            if day_id in self._cache
        ]
        if not present:
            return 0
        return sum(kind.total(stats) for stats in present) // len(present)

    # -- Read access ----------------------------------------------------------

    @property
    def snapshot(self) -> StatsSnapshot:
        with self._lock:
            return self._snapshot

    @property
    def today_stats(self) -> Optional[DailyStats]:
        return self.snapshot.today

    def get(self, day_id: str) -> Optional[DailyStats]:
        with self._lock:
            stats = self._cache.get(day_id)
            return stats.copy() if stats is not None else None

    def get_all_stats(self) -> list[DailyStats]:
        """All cached records, most recent day first."""
        with self._lock:
            return [self._cache[day_id].copy() for day_id in sorted(self._cache, reverse=True)]

    def subscribe(self, listener: SnapshotListener) -> None:
        """Call ``listener`` with every new snapshot."""
        with self._lock:
            self._listeners.append(listener)

    def unsubscribe(self, listener: SnapshotListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _notify(self, snapshot: StatsSnapshot) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Stats listener failed")
