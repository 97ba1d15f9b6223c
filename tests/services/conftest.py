"""Fixtures for store-backed service tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio

from proofmix.services.event_store import SQLiteEventStore


@pytest.fixture
def temp_db_path(tmp_path: Path) -> Path:
    """Create a temporary database path."""
    return tmp_path / "test_events.db"


@pytest_asyncio.fixture
async def store(temp_db_path: Path) -> AsyncGenerator[SQLiteEventStore, None]:
    """Create and initialize a test store."""
    store = SQLiteEventStore(db_path=temp_db_path)
    await store.initialize()
    yield store
    await store.close()
