"""
Await-all barrier over a named set of asyncio tasks.

Policies for a worker failing while others are in flight:

- ``fail_fast``: the first failure cancels every task still running and is
  re-raised unchanged.
- ``collect``: every task runs to completion; failures are reported together
  as a WorkerGroupError.

Either way, exceeding ``timeout`` cancels what is still pending and raises
AwaitAllTimeoutError with the elapsed time.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Mapping, Optional

from warehouse_demo.config import FailurePolicy
from warehouse_demo.errors import AwaitAllTimeoutError, WorkerGroupError
from warehouse_demo.utils.logging import get_logger

log = get_logger(__name__)


async def _cancel(tasks: set) -> None:
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)


async def await_all(
    tasks: Mapping[str, "asyncio.Task[Any]"],
    timeout: Optional[float] = None,
    policy: FailurePolicy = "fail_fast",
) -> Dict[str, Any]:
    """
    Block until every task in `tasks` has completed.

    Returns each task's result keyed by name, in the mapping's order. Tasks may
    complete in any order.
    """
    if policy not in ("fail_fast", "collect"):
        raise ValueError(f"Unknown failure policy '{policy}'")

    loop = asyncio.get_running_loop()
    started = loop.time()
    deadline = None if timeout is None else started + timeout
    names = {task: name for name, task in tasks.items()}
    return_when = asyncio.FIRST_EXCEPTION if policy == "fail_fast" else asyncio.ALL_COMPLETED

    pending = set(tasks.values())
    failures: Dict[str, BaseException] = {}
    while pending:
        remaining = None if deadline is None else deadline - loop.time()
        if remaining is not None and remaining <= 0:
            break
        done, pending = await asyncio.wait(pending, timeout=remaining, return_when=return_when)
        for name, task in tasks.items():
            if task in done and not task.cancelled() and task.exception() is not None:
                failures.setdefault(name, task.exception())
        if failures and policy == "fail_fast":
            await _cancel(pending)
            name, exc = next(iter(failures.items()))
            log.error(
                "[BARRIER] Worker failed; cancelled remaining",
                extra={"worker": name, "cancelled": sorted(names[t] for t in pending)},
            )
            raise exc

    if pending:
        elapsed = loop.time() - started
        pending_names = [name for name, task in tasks.items() if task in pending]
        await _cancel(pending)
        raise AwaitAllTimeoutError(timeout or 0.0, elapsed, pending_names)

    if failures:
        raise WorkerGroupError(failures)

    return {name: task.result() for name, task in tasks.items()}


__all__ = ["await_all"]
