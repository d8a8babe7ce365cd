"""
Warehouse Features Demo - PostgreSQL rendition of a data-engineering feature tour.

This package runs a fixed demonstration against a warehouse schema:

- Simulated worker procedures run sequentially and concurrently (await-all barrier)
- Periodic and event-triggered alerts with watermarks and email notification
- Multi-table conditional insert and merge-by-name

Every operation takes an explicit `WarehouseStore` handle; see
`warehouse_demo.orchestrator.run_demo` for the whole sequence.
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from warehouse_demo.alerts.engine import AlertEngine
from warehouse_demo.config import Settings, get_settings
from warehouse_demo.errors import (
    AwaitAllTimeoutError,
    ConfigError,
    DemoError,
    EngineError,
    PipelinePhaseError,
    SetupPhaseError,
    WorkerGroupError,
)
from warehouse_demo.infrastructure.store import WarehouseStore
from warehouse_demo.orchestrator import (
    DemoReport,
    RunConfig,
    define_alert,
    run_concurrent,
    run_demo,
    run_productivity,
    run_sequential,
    setup,
    simulate_worker,
)
from warehouse_demo.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Store and alerts
    "AlertEngine",
    "WarehouseStore",
    # Orchestration
    "DemoReport",
    "RunConfig",
    "define_alert",
    "run_concurrent",
    "run_demo",
    "run_productivity",
    "run_sequential",
    "setup",
    "simulate_worker",
    # Errors
    "AwaitAllTimeoutError",
    "ConfigError",
    "DemoError",
    "EngineError",
    "PipelinePhaseError",
    "SetupPhaseError",
    "WorkerGroupError",
    # Logging
    "configure_logging",
    "get_logger",
]
