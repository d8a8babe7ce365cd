"""
The two demo alert rules.

- high_sales_monitor: periodic, fires when a processed sale above 5000 lands.
- low_inventory_alert: event-triggered, fires right after a processed
  inventory row below 10 units is written.
"""

from __future__ import annotations

from decimal import Decimal
from typing import List, Optional

from warehouse_demo.config import Settings, get_settings
from warehouse_demo.domain.models import (
    AlertRule,
    EventTriggered,
    NotifyAction,
    Periodic,
    ThresholdCondition,
)
from warehouse_demo.domain.tables import processed_table

HIGH_SALES_THRESHOLD = Decimal("5000")
LOW_INVENTORY_THRESHOLD = Decimal("10")

HIGH_SALES_ALERT = "high_sales_monitor"
LOW_INVENTORY_ALERT = "low_inventory_alert"


def high_sales_monitor(settings: Optional[Settings] = None) -> AlertRule:
    settings = settings or get_settings()
    return AlertRule(
        name=HIGH_SALES_ALERT,
        condition=ThresholdCondition(
            table=processed_table("sales").name,
            column="amount",
            operator=">",
            threshold=HIGH_SALES_THRESHOLD,
        ),
        schedule=Periodic(interval_seconds=settings.alert_interval_seconds),
        action=NotifyAction(
            channel=settings.notification_channel,
            recipients=settings.recipients,
            subject="High Sales Alert",
            body="Sales amount exceeded $5000.",
        ),
    )


def low_inventory_alert(settings: Optional[Settings] = None) -> AlertRule:
    settings = settings or get_settings()
    return AlertRule(
        name=LOW_INVENTORY_ALERT,
        condition=ThresholdCondition(
            table=processed_table("inventory").name,
            column="qty",
            operator="<",
            threshold=LOW_INVENTORY_THRESHOLD,
        ),
        schedule=EventTriggered(),
        action=NotifyAction(
            channel=settings.notification_channel,
            recipients=settings.recipients,
            subject="URGENT: Low Inventory Alert",
            body="Inventory quantity dropped below 10 units. Immediate restocking required.",
        ),
    )


def default_rules(settings: Optional[Settings] = None) -> List[AlertRule]:
    return [high_sales_monitor(settings), low_inventory_alert(settings)]


__all__ = [
    "HIGH_SALES_ALERT",
    "HIGH_SALES_THRESHOLD",
    "LOW_INVENTORY_ALERT",
    "LOW_INVENTORY_THRESHOLD",
    "default_rules",
    "high_sales_monitor",
    "low_inventory_alert",
]
