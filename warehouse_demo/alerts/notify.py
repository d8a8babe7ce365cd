"""
Notification integrations and sinks.

`Notifier.notify(channel, recipients, subject, body)` is fire-and-forget from
the alert engine's point of view. The channel must be a provisioned, enabled
integration (the equivalent of `CREATE NOTIFICATION INTEGRATION`); anything
else is a ConfigError. Delivery itself belongs to the sink.
"""

from __future__ import annotations

import smtplib
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.message import EmailMessage
from typing import Dict, List, Optional, Protocol, Sequence

from warehouse_demo.config import Settings, get_settings
from warehouse_demo.errors import ConfigError
from warehouse_demo.utils.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class Notification:
    channel: str
    recipients: Sequence[str]
    subject: str
    body: str
    sent_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class NotificationSink(Protocol):
    def send(self, notification: Notification) -> None:
        ...


class LogNotificationSink:
    """Writes each notification to the log; the default for local demos."""

    def send(self, notification: Notification) -> None:
        log.warning(
            f"[NOTIFY] {notification.subject}",
            extra={
                "channel": notification.channel,
                "recipients": list(notification.recipients),
                "body": notification.body,
            },
        )


class RecordingNotificationSink:
    """Keeps notifications in memory, for dry runs and tests."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.sent: List[Notification] = []

    def send(self, notification: Notification) -> None:
        with self._lock:
            self.sent.append(notification)

    def subjects(self) -> List[str]:
        with self._lock:
            return [n.subject for n in self.sent]


class SmtpNotificationSink:
    """Sends plain-text email through an SMTP relay."""

    def __init__(self, host: str, port: int, sender: str, timeout: float = 10.0) -> None:
        self.host = host
        self.port = port
        self.sender = sender
        self.timeout = timeout

    def send(self, notification: Notification) -> None:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = ", ".join(notification.recipients)
        message["Subject"] = notification.subject
        message.set_content(notification.body)
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            smtp.send_message(message)


class NotificationIntegrations:
    """Registry of notification channels, keyed case-insensitively."""

    def __init__(self) -> None:
        self._enabled: Dict[str, bool] = {}

    def provision(self, name: str, enabled: bool = True) -> None:
        self._enabled[name.lower()] = enabled

    def require(self, name: str) -> None:
        enabled = self._enabled.get(name.lower())
        if enabled is None:
            raise ConfigError(f"Notification integration '{name}' is not provisioned.")
        if not enabled:
            raise ConfigError(f"Notification integration '{name}' is disabled.")

    def names(self) -> List[str]:
        return sorted(self._enabled)


class Notifier:
    def __init__(self, integrations: NotificationIntegrations, sink: NotificationSink) -> None:
        self.integrations = integrations
        self.sink = sink

    def notify(self, channel: str, recipients: Sequence[str], subject: str, body: str) -> None:
        self.integrations.require(channel)
        self.sink.send(Notification(channel, tuple(recipients), subject, body))


def build_notifier(
    settings: Optional[Settings] = None, sink: Optional[NotificationSink] = None
) -> Notifier:
    """
    Notifier with the configured channel provisioned and the configured sink.
    """
    settings = settings or get_settings()
    integrations = NotificationIntegrations()
    integrations.provision(settings.notification_channel)
    if sink is None:
        if settings.notification_sink == "smtp":
            sink = SmtpNotificationSink(settings.smtp_host, settings.smtp_port, settings.smtp_sender)
        else:
            sink = LogNotificationSink()
    return Notifier(integrations, sink)


__all__ = [
    "LogNotificationSink",
    "Notification",
    "NotificationIntegrations",
    "NotificationSink",
    "Notifier",
    "RecordingNotificationSink",
    "SmtpNotificationSink",
    "build_notifier",
]
