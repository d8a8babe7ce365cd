"""
Pytest configuration for the warehouse features demo.

Provides fixtures for:
- Settings override for integration tests
- Database connection management (real PostgreSQL, integration only)
- An in-memory store with simulated procedure latency (unit tests)
"""

from __future__ import annotations

import asyncio
import operator
import os
import threading
import time
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, Generator, List, Optional, Sequence, Tuple

import psycopg
import pytest
from psycopg import sql

from warehouse_demo.config import Settings
from warehouse_demo.domain.models import ThresholdCondition
from warehouse_demo.domain.tables import TableSpec
from warehouse_demo.errors import EngineError
from warehouse_demo.infrastructure.db_factory import build_dsn, ensure_database
from warehouse_demo.infrastructure.store import WarehouseStore
from warehouse_demo.pipelines.worker import WORKERS

OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
    "=": operator.eq,
    "<>": operator.ne,
}


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "sf_de_features"),
        db_schema=os.getenv("DB_SCHEMA", "de_sch_test"),
        worker_latency_seconds=0.5,
        log_level="DEBUG",
    )


@pytest.fixture(scope="session")
def test_dsn(test_settings: Settings) -> str:
    """
    Database connection string for tests.
    """
    return build_dsn(test_settings)


@pytest.fixture(scope="session")
def db_connection_available(test_settings: Settings) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        ensure_database(test_settings)
    except Exception:
        return False
    return True


@pytest.fixture(scope="function")
def store(
    test_settings: Settings, test_dsn: str, db_connection_available: bool
) -> Generator[WarehouseStore, None, None]:
    """
    Real store on a dedicated test schema, dropped after each test.

    Skips tests if database is not available.
    """
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")

    warehouse = WarehouseStore(test_dsn, test_settings.db_schema)
    try:
        yield warehouse
    finally:
        warehouse.close()
        with psycopg.connect(test_dsn, autocommit=True) as conn:
            conn.execute(
                sql.SQL("DROP SCHEMA IF EXISTS {} CASCADE").format(
                    sql.Identifier(test_settings.db_schema)
                )
            )


def _stamped_columns(spec: TableSpec) -> Tuple[str, ...]:
    return tuple(c.name for c in spec.columns if c.default == "clock_timestamp()")

class FakeStore:
    """
    In-memory stand-in for WarehouseStore.

    Tables are lists of dict rows. Worker procedures are simulated from the
    worker registry: sleep `latency` (or a per-procedure override), then copy
    the first source row into the processed table stamped with `now()`.
    Statements it cannot interpret are recorded in `statements`.
    """

    def __init__(self, latency: float = 0.0, schema: str = "de_sch_test") -> None:
        self.schema = schema
        self.latency = latency
        self.latencies: Dict[str, float] = {}
        self.failing_procedures: Dict[str, Exception] = {}
        self.fail_condition: Optional[Exception] = None
        self.fetch_one_result: Optional[Tuple[Any, ...]] = None
        self.fetch_all_result: List[Tuple[Any, ...]] = []
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.columns: Dict[str, Tuple[str, ...]] = {}
        self.statements: List[Any] = []
        self.procedure_calls: List[str] = []
        self.writes: List[Tuple[str, int]] = []
        self.async_pool_open = False
        self.async_pool_size: Optional[int] = None
        self.closed = False
        self._listeners: Dict[str, List[Callable[[str, int], None]]] = defaultdict(list)
        self._lock = threading.Lock()
        self.write_lock = threading.RLock()
        self.stamped: Dict[str, Tuple[str, ...]] = {}
        self._last_now: Optional[datetime] = None

    # Statements
    def now(self) -> datetime:
        with self._lock:
            now = datetime.now(timezone.utc)
            if self._last_now is not None and now <= self._last_now:
                now = self._last_now + timedelta(microseconds=1)
            self._last_now = now
            return now

    def execute(self, statement: Any, params: Optional[Sequence[Any]] = None) -> int:
        self.statements.append(statement)
        return -1

    def fetch_one(self, statement: Any, params: Optional[Sequence[Any]] = None):
        self.statements.append(statement)
        return self.fetch_one_result

    def fetch_all(self, statement: Any, params: Optional[Sequence[Any]] = None):
        self.statements.append(statement)
        return list(self.fetch_all_result)

    # Schema
    def ensure_schema(self) -> None:
        return None

    def replace_table(self, spec: TableSpec) -> None:
        self.tables[spec.name] = []
        self.columns[spec.name] = spec.column_names
        self.stamped[spec.name] = _stamped_columns(spec)

    def ensure_table(self, spec: TableSpec) -> None:
        self.tables.setdefault(spec.name, [])
        self.columns.setdefault(spec.name, spec.column_names)
        self.stamped.setdefault(spec.name, _stamped_columns(spec))

    def table_columns(self, table: str) -> List[str]:
        if table not in self.columns:
            raise EngineError(f"Table '{self.schema}.{table}' does not exist or not authorized.")
        return list(self.columns[table])

    # Rows
    def insert_rows(self, table: str, columns: Sequence[str], rows: Sequence[Sequence[Any]]) -> int:
        if table not in self.tables:
            raise EngineError(f"Table '{table}' does not exist or not authorized.")
        with self.write_lock:
            for row in rows:
                record = dict(zip(columns, row))
                for column in self.stamped.get(table, ()):
                    record.setdefault(column, self.now())
                self.tables[table].append(record)
        self.notify_write(table, len(rows))
        return len(rows)

    def fetch_rows(self, table: str, order_by: str = "id") -> List[Dict[str, Any]]:
        return sorted(self.tables[table], key=lambda r: r[order_by])

    def count_rows(self, table: str) -> int:
        return len(self.tables[table])

    def condition_holds(self, condition: ThresholdCondition, since: Optional[datetime]) -> bool:
        if self.fail_condition is not None:
            raise self.fail_condition
        compare = OPERATORS[condition.operator]
        for row in self.tables.get(condition.table, []):
            value = Decimal(str(row[condition.column]))
            fresh = since is None or row[condition.timestamp_column] >= since
            if fresh and compare(value, condition.threshold):
                return True
        return False

    # Write hooks
    def add_write_listener(self, table: str, listener: Callable[[str, int], None]) -> None:
        with self._lock:
            self._listeners[table.lower()].append(listener)

    def remove_write_listener(self, table: str, listener: Callable[[str, int], None]) -> None:
        with self._lock:
            listeners = self._listeners.get(table.lower(), [])
            if listener in listeners:
                listeners.remove(listener)

    def listener_count(self, table: str) -> int:
        with self._lock:
            return len(self._listeners.get(table.lower(), []))

    def notify_write(self, table: str, row_count: int) -> None:
        self.writes.append((table, row_count))
        with self._lock:
            listeners = list(self._listeners.get(table.lower(), ()))
        for listener in listeners:
            listener(table, row_count)

    # Procedures
    def _latency_for(self, name: str) -> float:
        return self.latencies.get(name, self.latency)

    def _complete_procedure(self, name: str) -> None:
        if name in self.failing_procedures:
            raise self.failing_procedures[name]
        worker = next(w for w in WORKERS.values() if w.procedure == name)
        source = self.fetch_rows(worker.source_table)[0]
        row = {c: source[c] for c in ("id",) + worker.value_columns}
        row["processed_at"] = self.now()
        self.tables[worker.processed_table].append(row)

    def call_procedure(self, name: str) -> None:
        self.procedure_calls.append(name)
        time.sleep(self._latency_for(name))
        self._complete_procedure(name)

    async def open_async_pool(self, size: int) -> None:
        self.async_pool_open = True
        self.async_pool_size = size

    async def close_async_pool(self) -> None:
        self.async_pool_open = False

    async def call_procedure_async(self, name: str) -> None:
        if not self.async_pool_open:
            raise RuntimeError("Async pool is not open; call open_async_pool() first.")
        self.procedure_calls.append(name)
        await asyncio.sleep(self._latency_for(name))
        self._complete_procedure(name)

    # Lifecycle
    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def seeded_fake_store(fake_store: FakeStore, test_settings: Settings) -> FakeStore:
    """Fake store after `setup()`: tables created and seeded, procedures recorded."""
    from warehouse_demo import orchestrator

    orchestrator.setup(fake_store, test_settings)
    return fake_store
