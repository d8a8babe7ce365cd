"""
Simulated workers: one stored procedure per domain.

Each procedure sleeps for the configured latency inside the engine, then
appends exactly one processed row copied from the domain's first source row,
stamped with the engine clock at insert time.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Dict, Iterable, Tuple

from psycopg import sql

from warehouse_demo.domain.tables import DOMAINS, VALUE_COLUMNS, processed_table, source_table
from warehouse_demo.errors import ConfigError
from warehouse_demo.infrastructure.store import WarehouseStore
from warehouse_demo.utils.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class WorkerSpec:
    domain: str
    procedure: str
    source_table: str
    processed_table: str
    value_columns: Tuple[str, ...]
    message: str


def _worker_for(domain: str) -> WorkerSpec:
    return WorkerSpec(
        domain=domain,
        procedure=f"process_{domain}",
        source_table=source_table(domain).name,
        processed_table=processed_table(domain).name,
        value_columns=tuple(c.name for c in VALUE_COLUMNS[domain]),
        message=f"{domain.capitalize()} processed",
    )


WORKERS: Dict[str, WorkerSpec] = {domain: _worker_for(domain) for domain in DOMAINS}


def get_worker(domain: str) -> WorkerSpec:
    if domain not in WORKERS:
        raise ConfigError(f"Unknown domain '{domain}'. Available: {', '.join(WORKERS)}")
    return WORKERS[domain]


def procedure_ddl(worker: WorkerSpec, latency_seconds: float) -> sql.Composed:
    """
    Render the worker procedure.

    clock_timestamp() rather than now(): now() is frozen at CALL start, which
    would stamp the row before the sleep.
    """
    columns = [sql.Identifier("id")] + [sql.Identifier(c) for c in worker.value_columns]
    column_list = sql.SQL(", ").join(columns)
    return sql.SQL(
        "CREATE OR REPLACE PROCEDURE {procedure}()\n"
        "LANGUAGE plpgsql\n"
        "AS $$\n"
        "BEGIN\n"
        "    PERFORM pg_sleep({latency});\n"
        "    INSERT INTO {processed} ({columns}, processed_at)\n"
        "    SELECT {columns}, clock_timestamp() FROM {source} ORDER BY id LIMIT 1;\n"
        "END;\n"
        "$$"
    ).format(
        procedure=sql.Identifier(worker.procedure),
        latency=sql.Literal(float(latency_seconds)),
        processed=sql.Identifier(worker.processed_table),
        columns=column_list,
        source=sql.Identifier(worker.source_table),
    )


def install_procedures(
    store: WarehouseStore, latency_seconds: float, domains: Iterable[str] = DOMAINS
) -> None:
    for domain in domains:
        worker = get_worker(domain)
        store.execute(procedure_ddl(worker, latency_seconds))
        log.debug(
            "Procedure installed",
            extra={"procedure": worker.procedure, "latency_seconds": latency_seconds},
        )


def simulate_worker(store: WarehouseStore, domain: str) -> str:
    """Run one worker to completion and return its completion message."""
    worker = get_worker(domain)
    store.call_procedure(worker.procedure)
    # The insert happened inside the engine; surface it to write listeners.
    store.notify_write(worker.processed_table, 1)
    return worker.message


async def simulate_worker_async(store: WarehouseStore, domain: str) -> str:
    worker = get_worker(domain)
    await store.call_procedure_async(worker.procedure)
    # Write hooks may block on the database or SMTP; keep them off the loop.
    await asyncio.to_thread(store.notify_write, worker.processed_table, 1)
    return worker.message


__all__ = [
    "WORKERS",
    "WorkerSpec",
    "get_worker",
    "install_procedures",
    "procedure_ddl",
    "simulate_worker",
    "simulate_worker_async",
]
