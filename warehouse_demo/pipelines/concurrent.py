"""
Concurrent pipeline: launch every worker, then wait on the await-all barrier.

Each worker's CALL runs on its own pooled asyncpg connection, so the engine
sleeps overlap and elapsed time approaches the slowest worker rather than the
sum. Workers may finish in any order.
"""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from typing import Optional, Sequence

from warehouse_demo.config import FailurePolicy, get_settings
from warehouse_demo.domain.models import PipelineModeName, PipelineRun
from warehouse_demo.domain.tables import DOMAINS
from warehouse_demo.infrastructure.store import WarehouseStore
from warehouse_demo.pipelines.abstract import AbstractPipelineMode
from warehouse_demo.pipelines.barrier import await_all
from warehouse_demo.pipelines.worker import get_worker, simulate_worker_async
from warehouse_demo.utils.logging import get_logger

log = get_logger(__name__)


class ConcurrentPipeline(AbstractPipelineMode):
    """
    Fan out all worker procedures and join on them.

    Use `execute` from synchronous code and `execute_async` from a running
    event loop.
    """

    name: str = PipelineModeName.CONCURRENT.value
    description: str = "Launch every CALL on its own connection, then await all."

    def __init__(
        self,
        domains: Sequence[str] = DOMAINS,
        timeout_seconds: Optional[float] = None,
        failure_policy: Optional[FailurePolicy] = None,
    ) -> None:
        settings = get_settings()
        self.domains = tuple(get_worker(d).domain for d in domains)
        self.timeout_seconds = (
            settings.await_timeout_seconds if timeout_seconds is None else timeout_seconds
        )
        self.failure_policy: FailurePolicy = (
            settings.failure_policy if failure_policy is None else failure_policy
        )

    async def execute_async(self, store: WarehouseStore) -> PipelineRun:
        start_time = datetime.now(timezone.utc)
        start = time.perf_counter()

        await store.open_async_pool(len(self.domains))
        try:
            tasks = {
                domain: asyncio.create_task(
                    simulate_worker_async(store, domain), name=f"worker:{domain}"
                )
                for domain in self.domains
            }
            log.info(
                "[BARRIER] All workers launched",
                extra={
                    "mode": self.name,
                    "workers": list(self.domains),
                    "timeout_seconds": self.timeout_seconds,
                    "policy": self.failure_policy,
                },
            )
            results = await await_all(
                tasks, timeout=self.timeout_seconds, policy=self.failure_policy
            )
        finally:
            await store.close_async_pool()

        elapsed = time.perf_counter() - start
        return PipelineRun(
            mode=PipelineModeName.CONCURRENT,
            start_time=start_time,
            end_time=datetime.now(timezone.utc),
            elapsed_seconds=elapsed,
            workers=list(self.domains),
            messages=[results[d] for d in self.domains],
        )

    def execute(self, store: WarehouseStore) -> PipelineRun:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return asyncio.run(self.execute_async(store))
        raise RuntimeError(
            "ConcurrentPipeline.execute() cannot be called from an async context; "
            "await execute_async() instead."
        )


__all__ = ["ConcurrentPipeline"]
