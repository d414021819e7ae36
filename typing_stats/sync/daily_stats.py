"""Per-day keystroke and word statistics backed by G-Counters."""

import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from .gcounter import GCounter

__all__ = [
    "DailyStats",
    "DayMismatchError",
    "day_id_for",
    "today_id",
    "day_id_days_ago",
    "date_from_day_id",
    "display_string",
    "short_display_string",
]

logger = logging.getLogger(__name__)

DAY_ID_FORMAT = "%Y-%m-%d"


class DayMismatchError(ValueError):
    """Attempted to merge records belonging to different days."""

    pass


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _local_date(moment: datetime) -> date:
    """Calendar date of ``moment`` in the local timezone.

    Naive datetimes are taken to already be local time.
    """
    return moment.astimezone().date()


def day_id_for(day: date) -> str:
    """Day key (YYYY-MM-DD) for a calendar date."""
    return day.strftime(DAY_ID_FORMAT)


def today_id(now: Optional[datetime] = None) -> str:
    """Day key for the local calendar day of ``now`` (default: current time)."""
    return day_id_for(_local_date(now or _utc_now()))


def day_id_days_ago(days: int, now: Optional[datetime] = None) -> str:
    """Day key for the local day ``days`` before ``now``."""
    return day_id_for(_local_date(now or _utc_now()) - timedelta(days=days))


def date_from_day_id(day_id: str) -> Optional[date]:
    try:
        return datetime.strptime(day_id, DAY_ID_FORMAT).date()
    except (TypeError, ValueError):
        return None


def display_string(day_id: str) -> str:
    """Format a day key for display, e.g. "Dec 27"."""
    day = date_from_day_id(day_id)
    if day is None:
        return day_id
    return f"{day.strftime('%b')} {day.day}"


def short_display_string(day_id: str) -> str:
    """Short display format, e.g. "12/26"."""
    day = date_from_day_id(day_id)
    if day is None:
        return day_id
    return f"{day.month}/{day.day}"


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class DailyStats:
    """Keystroke and word counters for a single calendar day.

    ``created_at`` is fixed when the record is first created; ``modified_at``
    moves forward on every local increment and every merge.
    """

    day_id: str
    counter: GCounter = field(default_factory=GCounter)
    word_counter: GCounter = field(default_factory=GCounter)
    created_at: datetime = field(default_factory=_utc_now)
    modified_at: datetime = field(default_factory=_utc_now)

    @classmethod
    def new(cls, day_id: Optional[str] = None, now: Optional[datetime] = None) -> "DailyStats":
        """Create an empty record for ``day_id`` (default: the local day of ``now``)."""
        now = now or _utc_now()
        return cls(
            day_id=day_id or today_id(now),
            created_at=now,
            modified_at=now,
        )

    @property
    def total_keystrokes(self) -> int:
        """Total keystrokes across all devices for this day."""
        return self.counter.total

    @property
    def total_words(self) -> int:
        """Total words across all devices for this day."""
        return self.word_counter.total

    def increment(self, amount: int, device_id: str, now: Optional[datetime] = None) -> None:
        """Increment the keystroke count for ``device_id``."""
        self.counter.increment(device_id, amount)
        self.modified_at = now or _utc_now()

    def increment_words(self, amount: int, device_id: str, now: Optional[datetime] = None) -> None:
        """Increment the word count for ``device_id``."""
        self.word_counter.increment(device_id, amount)
        self.modified_at = now or _utc_now()

    def merge(self, other: "DailyStats", now: Optional[datetime] = None) -> None:
        """Merge another replica of the same day into this one.

        Raises:
            DayMismatchError: If ``other`` belongs to a different day
        """
        if other.day_id != self.day_id:
            raise DayMismatchError(
                f"Cannot merge {other.day_id} into {self.day_id}"
            )
        self.counter.merge(other.counter)
        self.word_counter.merge(other.word_counter)
        self.modified_at = now or _utc_now()

    def copy(self) -> "DailyStats":
        return DailyStats(
            day_id=self.day_id,
            counter=self.counter.copy(),
            word_counter=self.word_counter.copy(),
            created_at=self.created_at,
            modified_at=self.modified_at,
        )

    # Serialization

    def to_dict(self) -> dict:
        return {
            "id": self.day_id,
            "counter": self.counter.to_dict(),
            "word_counter": self.word_counter.to_dict(),
            "created_at": self.created_at.isoformat(),
            "modified_at": self.modified_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DailyStats":
        """Decode a stored record.

        Records written before word counting existed have no
        ``word_counter``; they decode with an empty one. Unknown keys are
        ignored.

        Raises:
            KeyError: If a required field is missing
            ValueError: If a field is malformed
        """
        day_id = data["id"]
        if date_from_day_id(day_id) is None:
            raise ValueError(f"Invalid day id: {day_id!r}")

        word_data = data.get("word_counter")
        return cls(
            day_id=day_id,
            counter=GCounter.from_dict(data["counter"]),
            word_counter=GCounter.from_dict(word_data) if word_data else GCounter(),
            created_at=_parse_timestamp(data["created_at"]),
            modified_at=_parse_timestamp(data["modified_at"]),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)

    @classmethod
    def from_json(cls, payload: str) -> "DailyStats":
        return cls.from_dict(json.loads(payload))
