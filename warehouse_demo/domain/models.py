"""
Domain models for the warehouse features demo.

Rows, alert rules and pipeline runs are plain Pydantic models. Alert schedules
are a tagged variant (`Periodic` | `EventTriggered`) discriminated on `kind`.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator


class PipelineModeName(str, Enum):
    SEQUENTIAL = "sequential"
    CONCURRENT = "concurrent"


class AlertState(str, Enum):
    SUSPENDED = "suspended"
    ACTIVE = "active"


class AlertOutcome(str, Enum):
    CONDITION_FALSE = "CONDITION_FALSE"
    TRIGGERED = "TRIGGERED"
    FAILED = "FAILED"


class AlertTrigger(str, Enum):
    SCHEDULE = "SCHEDULE"
    WRITE = "WRITE"
    MANUAL = "MANUAL"


class SourceRecord(BaseModel):
    """An immutable input row of one domain (sales, inventory, customers)."""

    id: int
    values: Dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}


class ProcessedRecord(BaseModel):
    """A row appended by a worker; never updated."""

    id: int
    values: Dict[str, Any] = Field(default_factory=dict)
    processed_at: datetime

    model_config = {"frozen": True}


class Periodic(BaseModel):
    """Condition polled on a fixed interval."""

    kind: Literal["periodic"] = "periodic"
    interval_seconds: int = Field(..., gt=0)


class EventTriggered(BaseModel):
    """Condition evaluated right after each write to the watched table."""

    kind: Literal["event_triggered"] = "event_triggered"


AlertSchedule = Annotated[Union[Periodic, EventTriggered], Field(discriminator="kind")]


class ThresholdCondition(BaseModel):
    """
    `column <operator> threshold` over a processed table.

    The engine always conjoins `timestamp_column >= watermark` so rows seen by a
    previous successful evaluation do not fire again.
    """

    table: str
    column: str
    operator: Literal[">", ">=", "<", "<=", "=", "<>"]
    threshold: Decimal
    timestamp_column: str = "processed_at"

    model_config = {"frozen": True}


class NotifyAction(BaseModel):
    channel: str
    recipients: List[str] = Field(..., min_length=1)
    subject: str
    body: str

    model_config = {"frozen": True}


class AlertRule(BaseModel):
    """
    Declarative alert definition.

    `state` reflects the definition as registered; the engine tracks the live
    state and hands back updated copies.
    """

    name: str
    condition: ThresholdCondition
    schedule: AlertSchedule
    action: NotifyAction
    state: AlertState = AlertState.SUSPENDED

    model_config = {"frozen": True}

    @field_validator("name")
    @classmethod
    def _lowercase_name(cls, value: str) -> str:
        return value.strip().lower()

    @property
    def is_periodic(self) -> bool:
        return isinstance(self.schedule, Periodic)


class AlertHistoryEntry(BaseModel):
    """One evaluation of one alert, as recorded in `alert_history`."""

    name: str
    scheduled_time: datetime
    completed_time: datetime
    state: AlertOutcome
    trigger: AlertTrigger
    error: Optional[str] = None

    model_config = {"frozen": True}

    @property
    def fired(self) -> bool:
        return self.state is AlertOutcome.TRIGGERED


class PipelineRun(BaseModel):
    """
    Ephemeral measurement of one orchestration pass.
    """

    mode: PipelineModeName
    start_time: datetime
    end_time: datetime
    elapsed_seconds: float = Field(..., ge=0)
    workers: List[str] = Field(default_factory=list)
    messages: List[str] = Field(default_factory=list)

    @property
    def summary(self) -> str:
        label = "SEQUENTIAL" if self.mode is PipelineModeName.SEQUENTIAL else "ASYNC"
        return f"{label} MODE: Completed in {int(self.elapsed_seconds)} seconds"


__all__ = [
    "AlertHistoryEntry",
    "AlertOutcome",
    "AlertRule",
    "AlertSchedule",
    "AlertState",
    "AlertTrigger",
    "EventTriggered",
    "NotifyAction",
    "Periodic",
    "PipelineModeName",
    "PipelineRun",
    "ProcessedRecord",
    "SourceRecord",
    "ThresholdCondition",
]
