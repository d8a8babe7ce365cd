from __future__ import annotations

from typing import Any, ClassVar

import pytest

from warehouse_demo.alerts import notify as notify_module
from warehouse_demo.alerts.notify import (
    LogNotificationSink,
    Notification,
    NotificationIntegrations,
    Notifier,
    RecordingNotificationSink,
    SmtpNotificationSink,
    build_notifier,
)
from warehouse_demo.config import Settings
from warehouse_demo.errors import ConfigError


class _FakeSMTP:
    instances: ClassVar[list["_FakeSMTP"]] = []

    def __init__(self, host: str, port: int, timeout: float) -> None:
        self.host = host
        self.port = port
        self.timeout = timeout
        self.messages: list[Any] = []
        _FakeSMTP.instances.append(self)

    def __enter__(self) -> "_FakeSMTP":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        del exc_type, exc, tb

    def send_message(self, message: Any) -> None:
        self.messages.append(message)


def test_integrations_are_case_insensitive() -> None:
    integrations = NotificationIntegrations()
    integrations.provision("My_Email_Integration")

    integrations.require("my_email_integration")
    assert integrations.names() == ["my_email_integration"]


def test_notifier_refuses_unknown_channel() -> None:
    sink = RecordingNotificationSink()
    notifier = Notifier(NotificationIntegrations(), sink)

    with pytest.raises(ConfigError, match="not provisioned"):
        notifier.notify("my_email_integration", ["ops@example.com"], "subject", "body")
    assert sink.sent == []


def test_notifier_delivers_to_sink() -> None:
    integrations = NotificationIntegrations()
    integrations.provision("email")
    sink = RecordingNotificationSink()

    Notifier(integrations, sink).notify("email", ["a@example.com", "b@example.com"], "Hi", "Body")

    assert len(sink.sent) == 1
    notification = sink.sent[0]
    assert notification.recipients == ("a@example.com", "b@example.com")
    assert notification.subject == "Hi"
    assert notification.sent_at.tzinfo is not None


def test_build_notifier_defaults_to_log_sink() -> None:
    settings = Settings(notification_sink="log", notification_channel="ops_email")
    notifier = build_notifier(settings)

    assert isinstance(notifier.sink, LogNotificationSink)
    assert notifier.integrations.names() == ["ops_email"]


def test_build_notifier_smtp_sink_from_settings() -> None:
    settings = Settings(notification_sink="smtp", smtp_host="mail.internal", smtp_port=2525)
    notifier = build_notifier(settings)

    assert isinstance(notifier.sink, SmtpNotificationSink)
    assert notifier.sink.host == "mail.internal"
    assert notifier.sink.port == 2525


def test_smtp_sink_sends_plain_text_email(monkeypatch) -> None:
    _FakeSMTP.instances.clear()
    monkeypatch.setattr(notify_module.smtplib, "SMTP", _FakeSMTP)
    sink = SmtpNotificationSink("mail.internal", 2525, "alerts@example.com", timeout=3)

    sink.send(
        Notification(
            "my_email_integration",
            ("ops@example.com", "lead@example.com"),
            "High Sales Alert",
            "Sales amount exceeded $5000.",
        )
    )

    (smtp,) = _FakeSMTP.instances
    assert (smtp.host, smtp.port, smtp.timeout) == ("mail.internal", 2525, 3)
    message = smtp.messages[0]
    assert message["From"] == "alerts@example.com"
    assert message["To"] == "ops@example.com, lead@example.com"
    assert message["Subject"] == "High Sales Alert"
    assert message.get_content().strip() == "Sales amount exceeded $5000."


def test_log_sink_writes_warning(caplog) -> None:
    with caplog.at_level("WARNING", logger="warehouse_demo.alerts.notify"):
        LogNotificationSink().send(
            Notification("email", ("ops@example.com",), "URGENT: Low Inventory Alert", "body")
        )

    assert "[NOTIFY] URGENT: Low Inventory Alert" in caplog.text
