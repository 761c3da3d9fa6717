"""
Unit tests for storage layer.

Tests schema creation, entry insertion, windowed retrieval and purging.
"""

import os
import tempfile
from datetime import datetime, timedelta

import pytest

from ai_gateway.core.usage import OperationKind
from ai_gateway.storage.db import get_connection
from ai_gateway.storage.models import CostEntry
from ai_gateway.storage.repository import (
    InMemoryCostEntryStore,
    SQLiteCostEntryStore,
    initialize_schema,
)


def _entry(timestamp: datetime, cost: float = 0.01, model_id: str = "m", **kwargs) -> CostEntry:
    return CostEntry(
        timestamp=timestamp,
        model_id=model_id,
        operation=kwargs.pop("operation", OperationKind.TEXT),
        input_units=kwargs.pop("input_units", 10),
        output_units=kwargs.pop("output_units", 20),
        image_count=kwargs.pop("image_count", 0),
        estimated_cost=cost,
        request_id=kwargs.pop("request_id", "req"),
        user_id=kwargs.pop("user_id", None),
    )


class TestStorageSchema:
    """Test database schema creation and structure."""

    def test_schema_creation(self):
        """Verify table is created correctly."""
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = os.path.join(temp_dir, "test.db")
            initialize_schema(db_path)

            conn = get_connection(db_path)
            try:
                cursor = conn.execute("""
                    SELECT name FROM sqlite_master
                    WHERE type='table' AND name='cost_entry'
                """)
                tables = cursor.fetchall()
                assert len(tables) == 1

                cursor = conn.execute("PRAGMA table_info(cost_entry)")
                column_names = [col[1] for col in cursor.fetchall()]
                assert column_names == [
                    'id', 'timestamp', 'model_id', 'operation', 'input_units',
                    'output_units', 'image_count', 'estimated_cost', 'request_id', 'user_id',
                ]
            finally:
                conn.close()

    def test_schema_creation_is_idempotent(self):
        """Verify initializing twice is harmless."""
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = os.path.join(temp_dir, "test.db")
            initialize_schema(db_path)
            initialize_schema(db_path)


class TestInMemoryStore:
    """Test the in-memory store."""

    def test_append_and_window(self):
        """Windows are inclusive at both ends and keep insertion order."""
        store = InMemoryCostEntryStore()
        base = datetime(2024, 5, 1, 12, 0, 0)
        for i in range(5):
            store.append(_entry(base + timedelta(hours=i), request_id=f"r{i}"))

        window = store.entries_between(base + timedelta(hours=1), base + timedelta(hours=3))
        assert [e.request_id for e in window] == ["r1", "r2", "r3"]
        assert len(store.entries_between()) == 5
        assert len(store) == 5

    def test_purge_before(self):
        """Entries strictly older than the cutoff are removed."""
        store = InMemoryCostEntryStore()
        base = datetime(2024, 5, 1)
        store.append(_entry(base - timedelta(days=1)))
        store.append(_entry(base))
        store.append(_entry(base + timedelta(days=1)))

        assert store.purge_before(base) == 1
        assert len(store) == 2


class TestSQLiteStore:
    """Test the SQLite store."""

    def setup_method(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.db_path = os.path.join(self.temp_dir.name, "ledger.db")
        self.store = SQLiteCostEntryStore(self.db_path)

    def teardown_method(self):
        self.temp_dir.cleanup()

    def test_round_trip_preserves_fields(self):
        """Verify every field survives persistence."""
        timestamp = datetime(2024, 5, 1, 9, 30, 15, 123456)
        entry = _entry(
            timestamp, cost=0.08, model_id="stability.stable-diffusion-xl-v1",
            operation=OperationKind.IMAGE, input_units=0, output_units=0,
            image_count=2, request_id="req-1", user_id="user-1",
        )
        self.store.append(entry)

        assert self.store.entries_between() == [entry]

    def test_window_query(self):
        """Verify inclusive window bounds."""
        base = datetime(2024, 5, 1, 12, 0, 0)
        for i in range(4):
            self.store.append(_entry(base + timedelta(days=i), request_id=f"r{i}"))

        window = self.store.entries_between(base + timedelta(days=1), base + timedelta(days=2))
        assert [e.request_id for e in window] == ["r1", "r2"]

        since = self.store.entries_between(start=base + timedelta(days=2))
        assert [e.request_id for e in since] == ["r2", "r3"]

    def test_purge_before(self):
        base = datetime(2024, 5, 1)
        self.store.append(_entry(base - timedelta(days=100), request_id="old"))
        self.store.append(_entry(base, request_id="new"))

        assert self.store.purge_before(base - timedelta(days=90)) == 1
        assert [e.request_id for e in self.store.entries_between()] == ["new"]

    def test_persists_across_instances(self):
        """Verify entries survive a new store on the same file."""
        self.store.append(_entry(datetime(2024, 5, 1), request_id="kept"))

        reopened = SQLiteCostEntryStore(self.db_path)
        assert [e.request_id for e in reopened.entries_between()] == ["kept"]

    def test_missing_table_without_schema_creation(self):
        """A store that skips schema creation fails on an empty database."""
        import sqlite3

        path = os.path.join(self.temp_dir.name, "bare.db")
        store = SQLiteCostEntryStore(path, create_schema=False)
        with pytest.raises(sqlite3.OperationalError):
            store.entries_between()
