"""
Explicit store handle over the warehouse database.

Every orchestrator operation receives a `WarehouseStore` instead of reaching
for a module-level connection. The store is the only place that talks to the
engine: it renders identifiers safely, turns driver errors into EngineError,
and fires write listeners after rows it inserted are committed (the hook the
event-triggered alerts hang off).

Example
-------
    store = WarehouseStore.from_settings()
    with store:
        store.ensure_schema()
        store.replace_table(source_table("sales"))
        store.insert_rows("source_sales", ["id", "amount"], [(1, 1000)])
"""

from __future__ import annotations

import threading
from collections import defaultdict
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Dict, Generator, List, Optional, Sequence, Tuple, Union

import asyncpg
import psycopg
from psycopg import Connection, sql
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from warehouse_demo.config import Settings, get_settings
from warehouse_demo.domain.models import ProcessedRecord, ThresholdCondition
from warehouse_demo.domain.tables import TableSpec, VALUE_COLUMNS, processed_table
from warehouse_demo.errors import EngineError
from warehouse_demo.infrastructure.db_factory import (
    build_dsn,
    create_async_pool,
    create_sync_pool,
)
from warehouse_demo.utils.logging import get_logger

log = get_logger(__name__)

Statement = Union[str, sql.Composable]
WriteListener = Callable[[str, int], None]


def table_ddl(spec: TableSpec, if_not_exists: bool = False) -> sql.Composed:
    """Render CREATE TABLE for a catalog entry."""
    columns = []
    for column in spec.columns:
        part = sql.SQL("{} {}").format(sql.Identifier(column.name), sql.SQL(column.sql_type))
        if column.default is not None:
            part = sql.SQL("{} DEFAULT {}").format(part, sql.SQL(column.default))
        columns.append(part)
    template = "CREATE TABLE IF NOT EXISTS {} ({})" if if_not_exists else "CREATE TABLE {} ({})"
    return sql.SQL(template).format(sql.Identifier(spec.name), sql.SQL(", ").join(columns))


def condition_query(
    condition: ThresholdCondition, since: Optional[datetime]
) -> Tuple[sql.Composed, List[Any]]:
    """
    Render the EXISTS check for a threshold condition.

    `since` is the watermark; None means the rule has never been evaluated
    successfully and every row qualifies.
    """
    clauses = [
        sql.SQL("{} {} %s").format(
            sql.Identifier(condition.column), sql.SQL(condition.operator)
        )
    ]
    params: List[Any] = [condition.threshold]
    if since is not None:
        clauses.append(sql.SQL("{} >= %s").format(sql.Identifier(condition.timestamp_column)))
        params.append(since)
    query = sql.SQL("SELECT EXISTS (SELECT 1 FROM {} WHERE {})").format(
        sql.Identifier(condition.table), sql.SQL(" AND ").join(clauses)
    )
    return query, params


class WarehouseStore:
    """
    Handle on one schema of the warehouse database.

    Sync statements go through a small psycopg pool so the alert scheduler's
    threads can evaluate while the main thread writes. Concurrent procedure
    calls use an asyncpg pool that callers open and close around their event
    loop (`open_async_pool` / `close_async_pool`).
    """

    def __init__(self, dsn: str, schema: str, pool_max_size: int = 4) -> None:
        self.dsn = dsn
        self.schema = schema
        self._pool_max_size = pool_max_size
        self._pool: Optional[ConnectionPool] = None
        self._async_pool: Optional[asyncpg.Pool] = None
        self._call_statements: Dict[str, str] = {}
        self._listeners: Dict[str, List[WriteListener]] = defaultdict(list)
        self._lock = threading.Lock()
        # Held from stamp to commit of every insert; alert evaluations take it
        # too, so a watermark can never pass a row that is not yet visible.
        self.write_lock = threading.RLock()

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "WarehouseStore":
        settings = settings or get_settings()
        return cls(build_dsn(settings), settings.db_schema)

    # ------------------------------------------------------------------ #
    # Statement submission
    # ------------------------------------------------------------------ #

    def _get_pool(self) -> ConnectionPool:
        with self._lock:
            if self._pool is None:
                self._pool = create_sync_pool(self.dsn, self.schema, max_size=self._pool_max_size)
            return self._pool

    @contextmanager
    def connection(self) -> Generator[Connection, None, None]:
        with self._get_pool().connection() as conn:
            yield conn

    @staticmethod
    def _statement_text(statement: Statement, conn: Connection) -> str:
        text = statement.as_string(conn) if isinstance(statement, sql.Composable) else statement
        return " ".join(text.split())

    def _run(self, statement: Statement, params: Optional[Sequence[Any]], fetch: str) -> Any:
        with self.connection() as conn:
            try:
                cur = conn.execute(statement, params)
                if fetch == "all":
                    return cur.fetchall()
                if fetch == "one":
                    return cur.fetchone()
                return cur.rowcount
            except psycopg.Error as exc:
                raise EngineError(str(exc).strip(), self._statement_text(statement, conn)) from exc

    def execute(self, statement: Statement, params: Optional[Sequence[Any]] = None) -> int:
        """Run a statement and return its row count (-1 for DDL)."""
        return self._run(statement, params, fetch="none")

    def fetch_all(
        self, statement: Statement, params: Optional[Sequence[Any]] = None
    ) -> List[Tuple[Any, ...]]:
        return self._run(statement, params, fetch="all")

    def fetch_one(
        self, statement: Statement, params: Optional[Sequence[Any]] = None
    ) -> Optional[Tuple[Any, ...]]:
        return self._run(statement, params, fetch="one")

    def fetch_scalar(self, statement: Statement, params: Optional[Sequence[Any]] = None) -> Any:
        row = self.fetch_one(statement, params)
        return row[0] if row else None

    def now(self) -> datetime:
        """Engine clock; rows and watermarks are compared against this, never the local clock."""
        return self.fetch_scalar("SELECT clock_timestamp()")

    # ------------------------------------------------------------------ #
    # Schema
    # ------------------------------------------------------------------ #

    def ensure_schema(self) -> None:
        self.execute(sql.SQL("CREATE SCHEMA IF NOT EXISTS {}").format(sql.Identifier(self.schema)))

    def replace_table(self, spec: TableSpec) -> None:
        """CREATE OR REPLACE semantics: drop any prior definition and its rows."""
        self.execute(sql.SQL("DROP TABLE IF EXISTS {}").format(sql.Identifier(spec.name)))
        self.execute(table_ddl(spec))

    def ensure_table(self, spec: TableSpec) -> None:
        self.execute(table_ddl(spec, if_not_exists=True))

    def table_columns(self, table: str) -> List[str]:
        """Column names of `table` in ordinal order."""
        rows = self.fetch_all(
            "SELECT column_name FROM information_schema.columns "
            "WHERE table_schema = %s AND table_name = %s ORDER BY ordinal_position",
            (self.schema, table),
        )
        if not rows:
            raise EngineError(f"Table '{self.schema}.{table}' does not exist or not authorized.")
        return [r[0] for r in rows]

    # ------------------------------------------------------------------ #
    # Rows
    # ------------------------------------------------------------------ #

    def insert_rows(
        self, table: str, columns: Sequence[str], rows: Sequence[Sequence[Any]]
    ) -> int:
        """
        Insert rows atomically, then fire write listeners for `table`.

        Listeners run after the commit, on the caller's thread; an exception
        raised by a listener propagates to the caller.
        """
        if not rows:
            return 0
        statement = sql.SQL("INSERT INTO {} ({}) VALUES ({})").format(
            sql.Identifier(table),
            sql.SQL(", ").join(sql.Identifier(c) for c in columns),
            sql.SQL(", ").join(sql.Placeholder() * len(columns)),
        )
        with self.write_lock, self.connection() as conn:
            try:
                with conn.transaction():
                    with conn.cursor() as cur:
                        cur.executemany(statement, rows)
            except psycopg.Error as exc:
                raise EngineError(str(exc).strip(), self._statement_text(statement, conn)) from exc
        self.notify_write(table, len(rows))
        return len(rows)

    def fetch_rows(self, table: str, order_by: str = "id") -> List[Dict[str, Any]]:
        statement = sql.SQL("SELECT * FROM {} ORDER BY {}").format(
            sql.Identifier(table), sql.Identifier(order_by)
        )
        with self.connection() as conn:
            try:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(statement)
                    return cur.fetchall()
            except psycopg.Error as exc:
                raise EngineError(str(exc).strip(), self._statement_text(statement, conn)) from exc

    def count_rows(self, table: str) -> int:
        return self.fetch_scalar(
            sql.SQL("SELECT count(*) FROM {}").format(sql.Identifier(table))
        )

    def processed_records(self, domain: str) -> List[ProcessedRecord]:
        value_names = [c.name for c in VALUE_COLUMNS[domain]]
        return [
            ProcessedRecord(
                id=row["id"],
                values={name: row[name] for name in value_names},
                processed_at=row["processed_at"],
            )
            for row in self.fetch_rows(processed_table(domain).name)
        ]

    def condition_holds(self, condition: ThresholdCondition, since: Optional[datetime]) -> bool:
        query, params = condition_query(condition, since)
        return bool(self.fetch_scalar(query, params))

    # ------------------------------------------------------------------ #
    # Write hooks
    # ------------------------------------------------------------------ #

    def add_write_listener(self, table: str, listener: WriteListener) -> None:
        with self._lock:
            self._listeners[table.lower()].append(listener)

    def remove_write_listener(self, table: str, listener: WriteListener) -> None:
        with self._lock:
            listeners = self._listeners.get(table.lower(), [])
            if listener in listeners:
                listeners.remove(listener)

    def notify_write(self, table: str, row_count: int) -> None:
        """Tell listeners that `row_count` rows were committed to `table`."""
        with self._lock:
            listeners = list(self._listeners.get(table.lower(), ()))
        for listener in listeners:
            listener(table, row_count)

    # ------------------------------------------------------------------ #
    # Procedures
    # ------------------------------------------------------------------ #

    def call_procedure(self, name: str) -> None:
        self.execute(sql.SQL("CALL {}()").format(sql.Identifier(name)))

    def _call_statement(self, name: str) -> str:
        if name not in self._call_statements:
            with self.connection() as conn:
                statement = sql.SQL("CALL {}()").format(sql.Identifier(name))
                self._call_statements[name] = statement.as_string(conn)
        return self._call_statements[name]

    async def open_async_pool(self, size: int) -> None:
        """Open the asyncpg pool on the running event loop."""
        if self._async_pool is None:
            self._async_pool = await create_async_pool(self.dsn, self.schema, size)

    async def close_async_pool(self) -> None:
        if self._async_pool is not None:
            pool, self._async_pool = self._async_pool, None
            await pool.close()

    async def call_procedure_async(self, name: str) -> None:
        """CALL a procedure on its own pooled connection, without blocking the loop."""
        if self._async_pool is None:
            raise RuntimeError("Async pool is not open; call open_async_pool() first.")
        statement = self._call_statement(name)
        async with self._async_pool.acquire() as conn:
            try:
                await conn.execute(statement)
            except asyncpg.PostgresError as exc:
                raise EngineError(str(exc).strip(), statement) from exc

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def close(self) -> None:
        with self._lock:
            if self._pool is not None:
                self._pool.close()
                self._pool = None

    def __enter__(self) -> "WarehouseStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = ["WarehouseStore", "WriteListener", "condition_query", "table_ddl"]
