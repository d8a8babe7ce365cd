"""
Infrastructure package for the warehouse features demo.

Centralizes database connectivity (sync pool, async pool, retries) and the
store handle. Keep this layer focused on I/O, decoupled from pipeline and
alert logic.
"""

from warehouse_demo.infrastructure.db_factory import (
    build_dsn,
    create_async_pool,
    create_sync_pool,
    ensure_database,
    get_sync_connection,
)
from warehouse_demo.infrastructure.store import WarehouseStore

__all__ = [
    "WarehouseStore",
    "build_dsn",
    "create_async_pool",
    "create_sync_pool",
    "ensure_database",
    "get_sync_connection",
]
