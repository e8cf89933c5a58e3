from __future__ import annotations

import smtplib
from typing import List

import pytest

from landing.config import SMTPSettings
from landing.errors import DeliveryError
from landing.notifications import WelcomeMailer, render_welcome


class FakeSMTP:
    instances: List["FakeSMTP"] = []

    def __init__(self, host: str, port: int, timeout: float) -> None:
        self.host = host
        self.port = port
        self.timeout = timeout
        self.started_tls = False
        self.logged_in = None
        self.messages = []
        FakeSMTP.instances.append(self)

    def __enter__(self) -> "FakeSMTP":
        return self

    def __exit__(self, *exc_info) -> None:
        return None

    def ehlo(self) -> None:
        return None

    def has_extn(self, name: str) -> bool:
        return name == "starttls"

    def starttls(self) -> None:
        self.started_tls = True

    def login(self, user: str, password: str) -> None:
        self.logged_in = (user, password)

    def send_message(self, message) -> None:
        self.messages.append(message)


class RejectingSMTP(FakeSMTP):
    def login(self, user: str, password: str) -> None:
        raise smtplib.SMTPAuthenticationError(535, b"authentication failed")


@pytest.fixture(autouse=True)
def _reset_instances():
    FakeSMTP.instances = []
    yield
    FakeSMTP.instances = []


def _settings(**overrides) -> SMTPSettings:
    values = dict(host="smtp.example.com", port=2525, username="mailer@example.com", password="secret")
    values.update(overrides)
    return SMTPSettings(**values)


def test_send_welcome_uses_new_connection_per_message() -> None:
    mailer = WelcomeMailer(_settings(), transport_factory=FakeSMTP)

    receipt = mailer.send_welcome("alice@example.com", "Alice")
    mailer.send_welcome("bob@example.com", "Bob")

    assert len(FakeSMTP.instances) == 2
    first = FakeSMTP.instances[0]
    assert (first.host, first.port) == ("smtp.example.com", 2525)
    assert first.started_tls is True
    assert first.logged_in == ("mailer@example.com", "secret")

    message = first.messages[0]
    assert message["To"] == "alice@example.com"
    assert "mailer@example.com" in message["From"]
    assert receipt.recipient == "alice@example.com"
    assert receipt.message_id == message["Message-ID"]

    html_part = message.get_body(preferencelist=("html",))
    assert "Dear Alice" in html_part.get_content()


def test_transport_failure_raises_delivery_error() -> None:
    mailer = WelcomeMailer(_settings(), transport_factory=RejectingSMTP)

    with pytest.raises(DeliveryError):
        mailer.send_welcome("alice@example.com", "Alice")


def test_connection_failure_raises_delivery_error() -> None:
    def refuse(**_kwargs):
        raise ConnectionRefusedError("connection refused")

    mailer = WelcomeMailer(_settings(), transport_factory=refuse)

    with pytest.raises(DeliveryError):
        mailer.send_welcome("alice@example.com", "Alice")


def test_missing_host_raises_delivery_error() -> None:
    with pytest.raises(DeliveryError, match="not configured"):
        WelcomeMailer(SMTPSettings()).send_welcome("alice@example.com", "Alice")


def test_template_escapes_name() -> None:
    html = render_welcome("eve@example.com", "<script>alert(1)</script>")
    assert "<script>" not in html
    assert "&lt;script&gt;" in html
    assert "eve@example.com" in html
