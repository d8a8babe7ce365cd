"""
Alerts package: rule definitions, notification sinks and the alert engine.
"""

from warehouse_demo.alerts.engine import AlertEngine
from warehouse_demo.alerts.notify import (
    LogNotificationSink,
    Notification,
    NotificationIntegrations,
    NotificationSink,
    Notifier,
    RecordingNotificationSink,
    SmtpNotificationSink,
    build_notifier,
)
from warehouse_demo.alerts.rules import default_rules, high_sales_monitor, low_inventory_alert

__all__ = [
    "AlertEngine",
    "LogNotificationSink",
    "Notification",
    "NotificationIntegrations",
    "NotificationSink",
    "Notifier",
    "RecordingNotificationSink",
    "SmtpNotificationSink",
    "build_notifier",
    "default_rules",
    "high_sales_monitor",
    "low_inventory_alert",
]
