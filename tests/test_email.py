from __future__ import annotations

import smtplib

import pytest

from autoping.config import SmtpConfig
from autoping.models import FailureRecord, Job
from autoping.notifications import email as email_mod
from autoping.notifications.email import Mailer, build_failure_message, build_recovery_message


def _job(**overrides) -> Job:
    fields = {
        "id": 7,
        "url": "https://shop.example.org",
        "interval": "5 minutes",
        "alert_email": "ops@example.org",
        "failure_count": 3,
        "last_run": 1_700_000_000.0,
        "last_result": "Error: Request failed with status code 502",
    }
    fields.update(overrides)
    return Job(**fields)


class FakeSMTP:
    instances: list["FakeSMTP"] = []

    def __init__(self, host, port, timeout=None, **kwargs):
        self.host = host
        self.port = port
        self.calls: list[str] = []
        self.sent = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self, context=None):
        self.calls.append("starttls")

    def login(self, user, password):
        self.calls.append(f"login:{user}")

    def send_message(self, msg):
        self.calls.append("send")
        self.sent.append(msg)


@pytest.fixture(autouse=True)
def _reset_fake_smtp():
    FakeSMTP.instances = []


def test_failure_message_content() -> None:
    history = [
        FailureRecord(time=1_700_000_000.0, result="Error: connect ECONNREFUSED", duration=3),
        FailureRecord(time=1_700_000_015.0, result="Error: Request failed with status code 502", duration=40),
    ]
    msg = build_failure_message(_job(), history, sender="autoping@example.org")

    assert msg["Subject"] == "AutoPing Alert: https://shop.example.org is DOWN"
    assert msg["To"] == "ops@example.org"
    assert msg["From"] == "autoping@example.org"

    text = msg.get_body(preferencelist=("plain",)).get_content()
    assert "Domain: https://shop.example.org" in text
    assert "Failure Count: 3 consecutive failures" in text
    assert "1. " in text and "Error: connect ECONNREFUSED" in text
    assert "2. " in text
    assert "pause monitoring for 5 minutes" in text
    assert "Monitoring Job ID: 7" in text

    html = msg.get_body(preferencelist=("html",)).get_content()
    assert "https://shop.example.org" in html
    assert "OFFLINE" in html


def test_failure_message_without_history() -> None:
    msg = build_failure_message(_job(), [], sender=None)
    text = msg.get_body(preferencelist=("plain",)).get_content()
    assert "No detailed failure history available" in text


def test_html_body_is_escaped_but_text_is_not() -> None:
    msg = build_failure_message(_job(last_result="Error: <b>bad</b> & worse"), [], sender=None)
    text = msg.get_body(preferencelist=("plain",)).get_content()
    html = msg.get_body(preferencelist=("html",)).get_content()
    assert "Error: <b>bad</b> & worse" in text
    assert "&lt;b&gt;bad&lt;/b&gt; &amp; worse" in html


def test_recovery_message_content() -> None:
    msg = build_recovery_message(_job(last_result="Success: 200"), "2 minutes 5 seconds", sender="a@example.org")
    assert msg["Subject"] == "AutoPing Recovery: https://shop.example.org is BACK ONLINE"
    text = msg.get_body(preferencelist=("plain",)).get_content()
    assert "2 minutes 5 seconds" in text
    assert "5 minutes" in text


@pytest.mark.asyncio
async def test_unconfigured_mailer_reports_not_sent(monkeypatch) -> None:
    monkeypatch.setattr(email_mod.smtplib, "SMTP", FakeSMTP)
    mailer = Mailer(SmtpConfig())
    assert await mailer.send_failure(_job(), []) is False
    assert FakeSMTP.instances == []


@pytest.mark.asyncio
async def test_missing_recipient_reports_not_sent(monkeypatch) -> None:
    monkeypatch.setattr(email_mod.smtplib, "SMTP", FakeSMTP)
    mailer = Mailer(SmtpConfig(user="u@example.org", password="pw"))
    assert await mailer.send_recovery(_job(alert_email=None), "1 second") is False
    assert FakeSMTP.instances == []


@pytest.mark.asyncio
async def test_starttls_delivery(monkeypatch) -> None:
    monkeypatch.setattr(email_mod.smtplib, "SMTP", FakeSMTP)
    mailer = Mailer(SmtpConfig(host="mail.example.org", port=2525, user="u@example.org", password="pw"))

    assert await mailer.send_failure(_job(), []) is True

    [server] = FakeSMTP.instances
    assert (server.host, server.port) == ("mail.example.org", 2525)
    assert server.calls == ["starttls", "login:u@example.org", "send"]
    assert server.sent[0]["From"] == "u@example.org"


@pytest.mark.asyncio
async def test_delivery_error_reports_not_sent(monkeypatch) -> None:
    class Refusing(FakeSMTP):
        def login(self, user, password):
            raise smtplib.SMTPAuthenticationError(535, b"bad credentials")

    monkeypatch.setattr(email_mod.smtplib, "SMTP", Refusing)
    mailer = Mailer(SmtpConfig(user="u@example.org", password="pw"))
    assert await mailer.send_failure(_job(), []) is False


@pytest.mark.asyncio
async def test_connection_error_reports_not_sent(monkeypatch) -> None:
    def _refuse(*args, **kwargs):
        raise ConnectionRefusedError("connection refused")

    monkeypatch.setattr(email_mod.smtplib, "SMTP", _refuse)
    mailer = Mailer(SmtpConfig(user="u@example.org", password="pw"))
    assert await mailer.send_recovery(_job(), "10 seconds") is False
