from datetime import datetime

from pingmonitor.errors import NotificationError
from pingmonitor.services.email_sender import EmailConfig
from pingmonitor.services.notifier import NotificationEvent, Notifier

EVENT = NotificationEvent(
    target="192.168.90.3:80",
    failure_count=10,
    occurred_at=datetime(2024, 5, 1, 12, 0, 9),
    context="10 consecutive failed probes",
)


class FakeEmailSender:
    def __init__(self, result: bool):
        self.result = result
        self.sent = []

    async def send_email(self, config, subject, body):
        self.sent.append((subject, body))
        return self.result


async def test_unconfigured_notifier_reports_failure(caplog):
    notifier = Notifier()

    assert notifier.configured is False
    assert await notifier.notify(EVENT) is False
    assert "No notification transport configured" in caplog.text


async def test_webhook_payload(monkeypatch):
    posted = []

    async def fake_send(self, url, payload):
        posted.append((url, payload))

    monkeypatch.setattr(Notifier, "_send_webhook", fake_send)
    notifier = Notifier(webhook_url="http://hooks.local/alert")

    assert await notifier.notify(EVENT) is True
    url, payload = posted[0]
    assert url == "http://hooks.local/alert"
    assert payload == {
        "target": "192.168.90.3:80",
        "event": "down",
        "failure_count": 10,
        "timestamp": "2024-05-01 12:00:09",
        "details": "10 consecutive failed probes",
    }


async def test_webhook_failure_falls_back_to_email(monkeypatch, caplog):
    async def failing_send(self, url, payload):
        raise NotificationError("Webhook returned 502")

    monkeypatch.setattr(Notifier, "_send_webhook", failing_send)
    sender = FakeEmailSender(result=True)
    notifier = Notifier(
        webhook_url="http://hooks.local/alert",
        email_config=EmailConfig(host="smtp.local", port=587, to_address="ops@example.com"),
        email_sender=sender,
    )

    assert await notifier.notify(EVENT) is True
    assert "502" in caplog.text
    subject, body = sender.sent[0]
    assert subject == "DOWN - 192.168.90.3:80 - 10 consecutive failures"
    assert "Time: 2024-05-01 12:00:09" in body


async def test_all_transports_failing_is_not_delivered():
    notifier = Notifier(
        email_config=EmailConfig(host="smtp.local", port=587, to_address="ops@example.com"),
        email_sender=FakeEmailSender(result=False),
    )

    assert await notifier.notify(EVENT) is False
