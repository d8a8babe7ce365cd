"""
Domain package for the warehouse features demo.

Exports the data model and the table catalog. Keep this package focused on
data definitions; SQL rendering lives in the infrastructure layer.
"""

from warehouse_demo.domain.models import (
    AlertHistoryEntry,
    AlertOutcome,
    AlertRule,
    AlertState,
    AlertTrigger,
    EventTriggered,
    NotifyAction,
    Periodic,
    PipelineModeName,
    PipelineRun,
    ProcessedRecord,
    SourceRecord,
    ThresholdCondition,
)
from warehouse_demo.domain.tables import DOMAINS, Column, TableSpec

__all__ = [
    "AlertHistoryEntry",
    "AlertOutcome",
    "AlertRule",
    "AlertState",
    "AlertTrigger",
    "Column",
    "DOMAINS",
    "EventTriggered",
    "NotifyAction",
    "Periodic",
    "PipelineModeName",
    "PipelineRun",
    "ProcessedRecord",
    "SourceRecord",
    "TableSpec",
    "ThresholdCondition",
]
