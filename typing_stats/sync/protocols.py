"""Protocol types for StatsRepository dependencies.

Defines the interfaces that StatsRepository requires from its stores,
enabling easier testing and looser coupling.
"""

from typing import Callable, Protocol, runtime_checkable

from .daily_stats import DailyStats

__all__ = [
    "StoreError",
    "LocalStoreProtocol",
    "RemoteStoreProtocol",
    "RemoteChangeCallback",
]


class StoreError(Exception):
    """A store could not be read or written."""

    pass


RemoteChangeCallback = Callable[[list[DailyStats]], None]


@runtime_checkable
class LocalStoreProtocol(Protocol):
    """Durable on-device storage of daily records."""

    def load_all(self) -> dict[str, DailyStats]: ...

    def save(self, stats: DailyStats) -> None: ...


@runtime_checkable
class RemoteStoreProtocol(Protocol):
    """Capacity-bounded key-value store shared between the user's devices."""

    def load_all(self) -> dict[str, DailyStats]: ...

    def save(self, stats: DailyStats) -> None: ...

    def observe_changes(self, callback: RemoteChangeCallback) -> None: ...

    def stop_observing(self) -> None: ...
