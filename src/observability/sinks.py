"""Where delivery records end up: memory (tests) or a DuckDB file."""

from __future__ import annotations

import threading
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

import duckdb

from .models import DeliveryRecord

_COLUMNS: tuple[tuple[str, str], ...] = (
    ("logged_at", "timestamptz not null"),
    ("occurred_at", "timestamptz not null"),
    ("outcome", "varchar not null"),
    ("handler", "varchar not null"),
    ("units", "integer not null"),
    ("lines", "integer not null"),
    ("attempt_count", "integer not null"),
    ("error", "varchar"),
)


class DeliverySink(Protocol):
    def write(self, record: DeliveryRecord) -> None: ...

    def close(self) -> None: ...


class InMemoryDeliverySink:
    """Keeps records in a list; `snapshot()` returns a copy."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: list[DeliveryRecord] = []

    def write(self, record: DeliveryRecord) -> None:
        with self._lock:
            self._records.append(record)

    def close(self) -> None:
        return

    def snapshot(self) -> Sequence[DeliveryRecord]:
        with self._lock:
            return list(self._records)


class DuckDBDeliverySink:
    """Appends one row per delivery record to a DuckDB table.

    Members:
    - Database file: `path`
    - Table name: `table` (created on open when missing)
    """

    def __init__(self, *, path: str | Path, table: str = "delivery_records") -> None:
        """Open (or create) the database file and make sure the table exists."""
        self.path = Path(path)
        self.table = table
        self._lock = threading.Lock()
        self._conn = duckdb.connect(str(self.path))

        columns = ", ".join(f"{name} {kind}" for name, kind in _COLUMNS)
        names = ", ".join(name for name, _ in _COLUMNS)
        placeholders = ", ".join("?" for _ in _COLUMNS)
        self._insert_sql = f"insert into {table} ({names}) values ({placeholders})"
        with self._lock:
            self._conn.execute(f"create table if not exists {table} ({columns})")

    def write(self, record: DeliveryRecord) -> None:
        row = [getattr(record, name) for name, _ in _COLUMNS]
        with self._lock:
            self._conn.execute(self._insert_sql, row)

    def count_by_outcome(self) -> dict[str, int]:
        """Stored record count per outcome label."""
        with self._lock:
            rows = self._conn.execute(f"select outcome, count(*) from {self.table} group by outcome").fetchall()
        return {outcome: int(n) for outcome, n in rows}

    def close(self) -> None:
        with self._lock:
            self._conn.close()
