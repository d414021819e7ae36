"""Sync module - CRDT stats model, stores and the repository that merges them."""

from .gcounter import GCounter
from .daily_stats import DailyStats, DayMismatchError
from .delta import DeltaTracker
from .local_store import LocalStore, LocalStoreError
from .remote_store import RemoteStore
from .http_client import RemoteStoreError, RemoteAuthError
from .retry import RetryConfig, retry_with_backoff
from .protocols import LocalStoreProtocol, RemoteStoreProtocol, StoreError
from .repository import MetricKind, MetricSummary, StatsRepository, StatsSnapshot

__all__ = [
    "GCounter",
    "DailyStats",
    "DayMismatchError",
    "DeltaTracker",
    "LocalStore",
    "LocalStoreError",
    "RemoteStore",
    "RemoteStoreError",
    "RemoteAuthError",
    "RetryConfig",
    "retry_with_backoff",
    "LocalStoreProtocol",
    "RemoteStoreProtocol",
    "StoreError",
    "MetricKind",
    "MetricSummary",
    "StatsRepository",
    "StatsSnapshot",
]
