"""
Timing utilities for pipeline runs.

The orchestrator itself does almost no work (the engine sleeps and inserts),
so the interesting number is wall-clock time. CPU and RSS of the orchestrator
process are captured alongside to show that the await-all barrier idles
rather than spins.

Usage:
    from warehouse_demo.utils.profiler import profile_block

    with profile_block("concurrent") as stats:
        pipeline.execute(store)

    print(stats.duration_seconds, stats.cpu_percent)
"""

from __future__ import annotations

import contextlib
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Generator, Optional

import psutil


@dataclass
class ProfileStats:
    """
    Container for profiling measurements.
    """

    label: str
    started_at: Optional[datetime] = field(default=None)
    finished_at: Optional[datetime] = field(default=None)
    start_ts: float = field(default=0.0)
    end_ts: float = field(default=0.0)
    duration_seconds: float = field(default=0.0)
    peak_rss_bytes: Optional[int] = field(default=None)
    cpu_percent: Optional[float] = field(default=None)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "duration_seconds": round(self.duration_seconds, 2),
            "peak_rss_bytes": self.peak_rss_bytes,
            "cpu_percent": round(self.cpu_percent, 1) if self.cpu_percent is not None else None,
        }


@contextlib.contextmanager
def profile_block(label: str) -> Generator[ProfileStats, None, None]:
    """
    Profile a block of code.

    Measures wall-clock duration (perf_counter for the interval, UTC datetimes
    for the boundaries), process CPU percent over the block, and RSS at exit.
    Stats are filled in even when the block raises, so callers can report
    partial elapsed time for failed runs.
    """
    stats = ProfileStats(label=label)
    process = psutil.Process()
    # CPU percent needs a priming call
    process.cpu_percent(interval=None)

    stats.started_at = datetime.now(timezone.utc)
    stats.start_ts = time.perf_counter()
    try:
        yield stats
    finally:
        stats.end_ts = time.perf_counter()
        stats.finished_at = datetime.now(timezone.utc)
        stats.duration_seconds = stats.end_ts - stats.start_ts
        stats.cpu_percent = process.cpu_percent(interval=None)
        stats.peak_rss_bytes = process.memory_info().rss


__all__ = ["ProfileStats", "profile_block"]
