"""
Pipelines package for the warehouse features demo.

Re-exports the pipeline mode interfaces, the two concrete modes and the worker
helpers so downstream code can import from `warehouse_demo.pipelines` directly.
"""

from warehouse_demo.pipelines.abstract import AbstractPipelineMode, PipelineMode
from warehouse_demo.pipelines.barrier import await_all
from warehouse_demo.pipelines.concurrent import ConcurrentPipeline
from warehouse_demo.pipelines.sequential import SequentialPipeline
from warehouse_demo.pipelines.worker import (
    WORKERS,
    WorkerSpec,
    get_worker,
    install_procedures,
    simulate_worker,
    simulate_worker_async,
)

__all__ = [
    # Abstracts
    "AbstractPipelineMode",
    "PipelineMode",
    # Concrete modes
    "ConcurrentPipeline",
    "SequentialPipeline",
    # Workers
    "WORKERS",
    "WorkerSpec",
    "await_all",
    "get_worker",
    "install_procedures",
    "simulate_worker",
    "simulate_worker_async",
]
