"""
Database connection factory utilities for the warehouse features demo.

Builds DSNs from settings and creates the connections the store handle needs:
a psycopg connection pool for sequential statements (shared with the alert
scheduler's threads) and an asyncpg pool for concurrent procedure calls.

Connection establishment retries transient failures using tenacity. Nothing
else is retried: statement failures surface as EngineError.
"""

from __future__ import annotations

from typing import Optional

import asyncpg
import psycopg
from psycopg import Connection, sql
from psycopg_pool import ConnectionPool, PoolTimeout
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from warehouse_demo.config import Settings, get_settings
from warehouse_demo.utils.logging import get_logger

log = get_logger(__name__)


def build_dsn(settings: Optional[Settings] = None, database: Optional[str] = None) -> str:
    """Compose a DSN string from settings, optionally for another database."""
    settings = settings or get_settings()
    return (
        f"postgresql://{settings.db_user}:{settings.db_password}"
        f"@{settings.db_host}:{settings.db_port}/{database or settings.db_name}"
    )


def search_path_option(schema: str) -> str:
    return f"-c search_path={schema},public"


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((psycopg.OperationalError, psycopg.InterfaceError)),
    reraise=True,
)
def get_sync_connection(dsn: Optional[str] = None, autocommit: bool = True) -> Connection:
    """
    Acquire a dedicated synchronous connection with automatic retry.

    Retries up to 3 times with exponential backoff for transient connection errors.

    Raises
    ------
    psycopg.OperationalError
        If connection fails after all retry attempts.
    """
    return psycopg.connect(dsn or build_dsn(), autocommit=autocommit)


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type(PoolTimeout),
    reraise=True,
)
def create_sync_pool(
    dsn: str, schema: str, min_size: int = 1, max_size: int = 4, timeout: float = 30.0
) -> ConnectionPool:
    """
    Create an autocommit psycopg pool whose connections resolve names in `schema`.

    Autocommit mirrors the platform's statement-level commits: a row inserted
    by one statement is visible to the next, and to alert evaluations running
    on other pooled connections.

    Waits for `min_size` connections before returning, retrying up to 3 times
    when the server does not answer within `timeout`.
    """
    pool = ConnectionPool(
        conninfo=dsn,
        min_size=min_size,
        max_size=max_size,
        timeout=timeout,
        kwargs={"autocommit": True, "options": search_path_option(schema)},
        open=True,
    )
    # wait() closes the pool before raising PoolTimeout, so each attempt starts fresh.
    pool.wait(timeout=timeout)
    return pool


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((OSError, ConnectionError, asyncpg.CannotConnectNowError)),
    reraise=True,
)
async def create_async_pool(dsn: str, schema: str, size: int) -> asyncpg.Pool:
    """
    Create an asyncpg pool with `size` connections opened up front.

    All connections are established before returning so concurrently launched
    procedure calls start together instead of queueing on pool growth.
    """
    return await asyncpg.create_pool(
        dsn,
        min_size=size,
        max_size=size,
        server_settings={"search_path": f"{schema},public"},
    )


def ensure_database(settings: Optional[Settings] = None) -> bool:
    """
    Create the demo database if it does not exist.

    Connects to the maintenance database because CREATE DATABASE cannot run
    inside the target database. Returns True when the database was created.
    """
    settings = settings or get_settings()
    maintenance_dsn = build_dsn(settings, database=settings.db_maintenance_name)
    with get_sync_connection(maintenance_dsn) as conn:
        exists = conn.execute(
            "SELECT 1 FROM pg_database WHERE datname = %s", (settings.db_name,)
        ).fetchone()
        if exists:
            return False
        conn.execute(sql.SQL("CREATE DATABASE {}").format(sql.Identifier(settings.db_name)))
    log.info("[SETUP] Database created", extra={"database": settings.db_name})
    return True


__all__ = [
    "build_dsn",
    "create_async_pool",
    "create_sync_pool",
    "ensure_database",
    "get_sync_connection",
    "search_path_option",
]
