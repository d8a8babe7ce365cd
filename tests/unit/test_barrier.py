from __future__ import annotations

import asyncio

import pytest

from warehouse_demo.errors import AwaitAllTimeoutError, WorkerGroupError
from warehouse_demo.pipelines.barrier import await_all

SHORT = 0.02
LONG = 0.5


class _Tracker:
    def __init__(self) -> None:
        self.finished: list[str] = []
        self.cancelled: list[str] = []

    async def work(self, name: str, delay: float, fail: bool = False) -> str:
        try:
            await asyncio.sleep(delay)
        except asyncio.CancelledError:
            self.cancelled.append(name)
            raise
        if fail:
            raise RuntimeError(f"{name} failed")
        self.finished.append(name)
        return f"{name} done"


@pytest.mark.asyncio
async def test_await_all_returns_results_in_mapping_order() -> None:
    tracker = _Tracker()
    tasks = {
        "slow": asyncio.create_task(tracker.work("slow", 0.05)),
        "fast": asyncio.create_task(tracker.work("fast", SHORT)),
    }

    results = await await_all(tasks, timeout=1.0)

    assert list(results) == ["slow", "fast"]
    assert results["slow"] == "slow done"
    # Completion order is not launch order.
    assert tracker.finished == ["fast", "slow"]


@pytest.mark.asyncio
async def test_await_all_timeout_cancels_pending_and_reports_elapsed() -> None:
    tracker = _Tracker()
    tasks = {
        "fast": asyncio.create_task(tracker.work("fast", SHORT)),
        "stuck": asyncio.create_task(tracker.work("stuck", LONG * 10)),
    }

    with pytest.raises(AwaitAllTimeoutError) as excinfo:
        await await_all(tasks, timeout=0.1)

    assert excinfo.value.pending == ["stuck"]
    assert excinfo.value.elapsed_seconds >= 0.1
    assert isinstance(excinfo.value, TimeoutError)
    assert tracker.cancelled == ["stuck"]
    assert tasks["stuck"].cancelled()


@pytest.mark.asyncio
async def test_fail_fast_cancels_siblings_and_reraises_first_failure() -> None:
    tracker = _Tracker()
    tasks = {
        "sales": asyncio.create_task(tracker.work("sales", LONG)),
        "inventory": asyncio.create_task(tracker.work("inventory", SHORT, fail=True)),
        "customers": asyncio.create_task(tracker.work("customers", LONG)),
    }

    with pytest.raises(RuntimeError, match="inventory failed"):
        await await_all(tasks, timeout=5.0, policy="fail_fast")

    assert sorted(tracker.cancelled) == ["customers", "sales"]
    assert tracker.finished == []


@pytest.mark.asyncio
async def test_collect_waits_for_everyone_then_reports_all_failures() -> None:
    tracker = _Tracker()
    tasks = {
        "sales": asyncio.create_task(tracker.work("sales", SHORT, fail=True)),
        "inventory": asyncio.create_task(tracker.work("inventory", 0.05)),
        "customers": asyncio.create_task(tracker.work("customers", SHORT, fail=True)),
    }

    with pytest.raises(WorkerGroupError) as excinfo:
        await await_all(tasks, timeout=5.0, policy="collect")

    assert set(excinfo.value.failures) == {"sales", "customers"}
    assert tracker.finished == ["inventory"]
    assert tracker.cancelled == []


@pytest.mark.asyncio
async def test_unknown_policy_is_rejected() -> None:
    task = asyncio.create_task(asyncio.sleep(0))
    with pytest.raises(ValueError, match="Unknown failure policy"):
        await await_all({"noop": task}, policy="retry")  # type: ignore[arg-type]
    await task
