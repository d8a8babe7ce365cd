"""
Pipeline mode interfaces for the warehouse features demo.

A pipeline mode runs the domain workers against a store and returns a
PipelineRun. The sequential and concurrent modes differ only in how they wait
for the workers.
"""

from __future__ import annotations

import abc
from typing import Protocol, Sequence, runtime_checkable

from warehouse_demo.domain.models import PipelineRun
from warehouse_demo.infrastructure.store import WarehouseStore


@runtime_checkable
class PipelineMode(Protocol):
    """
    Common interface all pipeline modes implement.

    Attributes
    ----------
    name : str
        A short machine-friendly identifier.
    description : str
        A human-friendly summary of the approach.
    domains : Sequence[str]
        Domains whose workers the mode runs, in launch order.
    """

    name: str
    description: str
    domains: Sequence[str]

    def execute(self, store: WarehouseStore) -> PipelineRun:
        """
        Run every worker and return the timing of the whole pass.

        The returned elapsed time is only meaningful once every worker's row is
        visible in its processed table.
        """
        ...


class AbstractPipelineMode(abc.ABC):
    """
    Optional ABC helper for class-based implementations.
    """

    name: str
    description: str
    domains: Sequence[str]

    @abc.abstractmethod
    def execute(self, store: WarehouseStore) -> PipelineRun:  # pragma: no cover - interface only
        raise NotImplementedError


__all__ = ["AbstractPipelineMode", "PipelineMode"]
