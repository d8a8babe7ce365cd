"""
Sequential pipeline: the baseline.

Workers run one after another on the sync connection; worker N+1 starts only
after worker N's row is committed. Elapsed time is at least the sum of the
worker latencies.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Sequence

from warehouse_demo.domain.models import PipelineModeName, PipelineRun
from warehouse_demo.domain.tables import DOMAINS
from warehouse_demo.infrastructure.store import WarehouseStore
from warehouse_demo.pipelines.abstract import AbstractPipelineMode
from warehouse_demo.pipelines.worker import get_worker, simulate_worker
from warehouse_demo.utils.logging import get_logger

log = get_logger(__name__)


class SequentialPipeline(AbstractPipelineMode):
    """
    Call each worker procedure and wait for it before calling the next.
    """

    name: str = PipelineModeName.SEQUENTIAL.value
    description: str = "CALL each procedure in turn (sum of latencies)."

    def __init__(self, domains: Sequence[str] = DOMAINS) -> None:
        self.domains = tuple(get_worker(d).domain for d in domains)

    def execute(self, store: WarehouseStore) -> PipelineRun:
        start_time = datetime.now(timezone.utc)
        start = time.perf_counter()

        messages = []
        for domain in self.domains:
            messages.append(simulate_worker(store, domain))
            log.info(
                f"[WORKER DONE] {domain}",
                extra={
                    "mode": self.name,
                    "domain": domain,
                    "elapsed": round(time.perf_counter() - start, 2),
                },
            )

        elapsed = time.perf_counter() - start
        return PipelineRun(
            mode=PipelineModeName.SEQUENTIAL,
            start_time=start_time,
            end_time=datetime.now(timezone.utc),
            elapsed_seconds=elapsed,
            workers=list(self.domains),
            messages=messages,
        )


__all__ = ["SequentialPipeline"]
