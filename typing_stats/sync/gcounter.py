"""Grow-only counter (state-based CRDT) keyed by device identity."""

from dataclasses import dataclass, field

__all__ = ["GCounter"]


@dataclass
class GCounter:
    """Grow-only counter.

    Each device only ever increments its own entry. Two counters merge by
    taking the per-device maximum, which makes merge commutative,
    associative and idempotent, so replicas converge no matter how often or
    in which order they exchange state.
    """

    counts: dict[str, int] = field(default_factory=dict)

    def increment(self, device_id: str, amount: int = 1) -> None:
        """Add ``amount`` to this device's entry.

        Args:
            device_id: Identity of the device doing the counting
            amount: Non-negative increment (0 is a no-op)

        Raises:
            ValueError: If amount is negative
        """
        if amount < 0:
            raise ValueError(f"GCounter cannot decrement (amount={amount})")
        if amount == 0:
            return
        self.counts[device_id] = self.counts.get(device_id, 0) + amount

    def merge(self, other: "GCounter") -> None:
        """Merge another counter's state into this one (per-device max)."""
        for device_id, count in other.counts.items():
            self.counts[device_id] = max(self.counts.get(device_id, 0), count)

    @property
    def total(self) -> int:
        """Total count across all devices."""
        return sum(self.counts.values())

    def value_for(self, device_id: str) -> int:
        return self.counts.get(device_id, 0)

    def copy(self) -> "GCounter":
        return GCounter(counts=dict(self.counts))

    def to_dict(self) -> dict:
        return {"counts": dict(self.counts)}

    @classmethod
    def from_dict(cls, data: dict) -> "GCounter":
        """Decode a counter.

        Raises:
            ValueError: If an entry is not a non-negative integer
        """
        counts = {}
        for device_id, count in (data.get("counts") or {}).items():
            if isinstance(count, bool) or not isinstance(count, int) or count < 0:
                raise ValueError(f"Invalid count for device {device_id!r}: {count!r}")
            counts[str(device_id)] = count
        return cls(counts=counts)

    def __str__(self) -> str:
        return f"GCounter(total={self.total}, devices={len(self.counts)})"
