"""
Durable snapshot storage for Quota Guard.
"""

from .models import UsageSnapshot
from .repository import (
    InMemorySnapshotStore,
    SnapshotStore,
    SqliteSnapshotStore,
    StoreError,
    initialize_schema,
)

__all__ = [
    "InMemorySnapshotStore",
    "SnapshotStore",
    "SqliteSnapshotStore",
    "StoreError",
    "UsageSnapshot",
    "initialize_schema",
]
