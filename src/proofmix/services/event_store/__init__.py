"""
Event Store - Persistent Storage for Events, Campaigns and Widget Configs.

Key Components:
- SQLiteEventStore: SQLite implementation with WAL mode for concurrent access
- MigrationRunner: Versioned schema migrations applied on startup
- Protocol classes: EventStore, GraduationLease, StoreStats

Usage:
    from proofmix.services.event_store import SQLiteEventStore

    store = SQLiteEventStore()
    await store.initialize()

    snapshot = await store.load_snapshot("widget-1")
    await store.increment_view(event.id)
"""

from .migrations import MigrationRunner
from .protocol import (
    STORE_ERRORS,
    EventStore,
    GraduationLease,
    StoreError,
    StoreStats,
    WidgetNotFoundError,
)
from .sqlite import SQLiteEventStore

__all__ = [
    # Store implementation
    "SQLiteEventStore",
    "MigrationRunner",
    # Protocol
    "EventStore",
    "GraduationLease",
    "StoreStats",
    # Errors
    "STORE_ERRORS",
    "StoreError",
    "WidgetNotFoundError",
]
