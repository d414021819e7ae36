"""Convert cumulative counter readings into positive deltas."""

import threading

__all__ = ["DeltaTracker"]


class DeltaTracker:
    """Remembers the last cumulative reading of an external counter.

    A reading below the previous one (the source restarted or reset) becomes
    the new baseline and yields no delta.
    """

    def __init__(self, baseline: int = 0):
        self._last = baseline
        self._lock = threading.Lock()

    @property
    def last(self) -> int:
        return self._last

    def observe(self, cumulative: int) -> int:
        """Record a new reading and return the positive delta (or 0)."""
        with self._lock:
            delta = cumulative - self._last
            self._last = cumulative
        return delta if delta > 0 else 0

    def reset(self, baseline: int = 0) -> None:
        with self._lock:
            self._last = baseline
