"""
Repository pattern for cost ledger storage.

Defines the store interface the ledger appends to, with an in-memory
default and a durable SQLite implementation.
"""

from datetime import datetime
from typing import List, Optional, Protocol

from ai_gateway.core.usage import OperationKind

from .db import DEFAULT_DB_PATH, get_connection
from .models import CostEntry


class CostEntryStore(Protocol):
    """Append-only storage for cost entries."""

    def append(self, entry: CostEntry) -> None:
        ...

    def entries_between(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[CostEntry]:
        """Entries with ``start <= timestamp <= end`` in insertion order."""
        ...

    def purge_before(self, cutoff: datetime) -> int:
        """Delete entries older than ``cutoff``; return how many were removed."""
        ...


class InMemoryCostEntryStore:
    """Process-local store; the default backing for the ledger."""

    def __init__(self) -> None:
        self._entries: List[CostEntry] = []

    def append(self, entry: CostEntry) -> None:
        self._entries.append(entry)

    def entries_between(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[CostEntry]:
        return [
            entry for entry in self._entries
            if (start is None or entry.timestamp >= start)
            and (end is None or entry.timestamp <= end)
        ]

    def purge_before(self, cutoff: datetime) -> int:
        initial_count = len(self._entries)
        self._entries = [e for e in self._entries if e.timestamp >= cutoff]
        return initial_count - len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)


_COLUMNS = (
    "timestamp, model_id, operation, input_units, output_units, "
    "image_count, estimated_cost, request_id, user_id"
)


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the cost_entry table if it doesn't exist.

    This creates an append-only ledger. Rows are only ever removed by the
    retention sweep.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS cost_entry (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                timestamp TEXT NOT NULL,
                model_id TEXT NOT NULL,
                operation TEXT NOT NULL,
                input_units INTEGER NOT NULL DEFAULT 0,
                output_units INTEGER NOT NULL DEFAULT 0,
                image_count INTEGER NOT NULL DEFAULT 0,
                estimated_cost REAL NOT NULL,
                request_id TEXT NOT NULL,
                user_id TEXT
            )
        """)
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_cost_entry_timestamp ON cost_entry (timestamp)"
        )
        conn.commit()
    finally:
        conn.close()


class SQLiteCostEntryStore:
    """Durable store backed by a SQLite table.

    Each operation opens its own connection so the store can be shared
    across threads.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH, create_schema: bool = True):
        """Initialize the store with a database path.

        Args:
            db_path: Path to SQLite database file
            create_schema: Create the table on construction if missing
        """
        self.db_path = db_path
        if create_schema:
            initialize_schema(db_path)

    def append(self, entry: CostEntry) -> None:
        """Insert a single entry; the write is committed atomically."""
        conn = get_connection(self.db_path)
        try:
            conn.execute(
                f"INSERT INTO cost_entry ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    entry.timestamp.isoformat(),
                    entry.model_id,
                    entry.operation.value,
                    entry.input_units,
                    entry.output_units,
                    entry.image_count,
                    entry.estimated_cost,
                    entry.request_id,
                    entry.user_id,
                ),
            )
            conn.commit()
        finally:
            conn.close()

    def entries_between(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[CostEntry]:
        conn = get_connection(self.db_path)
        try:
            query = f"SELECT {_COLUMNS} FROM cost_entry"
            params = []
            conditions = []

            if start is not None:
                conditions.append("timestamp >= ?")
                params.append(start.isoformat())
            if end is not None:
                conditions.append("timestamp <= ?")
                params.append(end.isoformat())

            if conditions:
                query += " WHERE " + " AND ".join(conditions)
            query += " ORDER BY id ASC"

            cursor = conn.execute(query, params)
            return [_row_to_entry(row) for row in cursor.fetchall()]
        finally:
            conn.close()

    def purge_before(self, cutoff: datetime) -> int:
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                "DELETE FROM cost_entry WHERE timestamp < ?", (cutoff.isoformat(),)
            )
            conn.commit()
            return cursor.rowcount
        finally:
            conn.close()


def _row_to_entry(row) -> CostEntry:
    return CostEntry(
        timestamp=datetime.fromisoformat(row[0]),
        model_id=row[1],
        operation=OperationKind(row[2]),
        input_units=row[3],
        output_units=row[4],
        image_count=row[5],
        estimated_cost=row[6],
        request_id=row[7],
        user_id=row[8],
    )
