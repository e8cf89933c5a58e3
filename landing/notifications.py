"""Transactional email for new sign-ups."""

from __future__ import annotations

import html
import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import make_msgid
from typing import Callable, Protocol

from .config import SMTPSettings
from .errors import DeliveryError

logger = logging.getLogger("landing.notifications")

WELCOME_SUBJECT = "Welcome! Your free audiobook is ready"

_WELCOME_TEMPLATE = """\
<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>Your free audiobook</title>
  <style>
    body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
    .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
    .header {{ background: linear-gradient(135deg, #fbbf24, #f97316); color: white; padding: 30px; text-align: center; border-radius: 10px 10px 0 0; }}
    .content {{ background: #f9fafb; padding: 30px; border-radius: 0 0 10px 10px; }}
    .button {{ display: inline-block; background: #f97316; color: white; padding: 15px 30px; text-decoration: none; border-radius: 8px; font-weight: bold; margin: 20px 0; }}
    .footer {{ text-align: center; color: #666; font-size: 14px; margin-top: 30px; }}
  </style>
</head>
<body>
  <div class="container">
    <div class="header">
      <h1>Congratulations!</h1>
      <p>Dear {name}, welcome aboard.</p>
    </div>
    <div class="content">
      <h2>Your free audiobook edition</h2>
      <p>Your copy of the guided audiobook has been reserved. Eight hours of
      narrated highlights, free of charge, available on every platform and
      for offline listening.</p>
      <a href="#" class="button">Start listening</a>
    </div>
    <div class="footer">
      <p>This message was sent to {email} because it was used to sign up on our landing page.</p>
    </div>
  </div>
</body>
</html>
"""


@dataclass(frozen=True)
class DeliveryReceipt:
    message_id: str
    recipient: str


class Notifier(Protocol):
    def send_welcome(self, email: str, name: str) -> DeliveryReceipt:
        ...


def render_welcome(email: str, name: str) -> str:
    return _WELCOME_TEMPLATE.format(name=html.escape(name), email=html.escape(email))


def _sanitize_header(value: str) -> str:
    return value.replace("\r", " ").replace("\n", " ").strip()


class WelcomeMailer:
    """Send the welcome email over SMTP, opening a new connection per message."""

    def __init__(
        self,
        settings: SMTPSettings,
        *,
        transport_factory: Callable[..., smtplib.SMTP] = smtplib.SMTP,
    ) -> None:
        self._settings = settings
        self._transport_factory = transport_factory

    def _build_message(self, email: str, name: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = _sanitize_header(self._settings.from_address)
        message["To"] = _sanitize_header(email)
        message["Subject"] = WELCOME_SUBJECT
        message["Message-ID"] = make_msgid(domain=self._settings.host or None)
        message.set_content(f"Dear {name}, welcome aboard. Your free audiobook is ready.")
        message.add_alternative(render_welcome(email, name), subtype="html")
        return message

    def send_welcome(self, email: str, name: str) -> DeliveryReceipt:
        if not self._settings.host:
            raise DeliveryError("SMTP host is not configured")

        message = self._build_message(email, name)
        try:
            with self._transport_factory(
                host=self._settings.host,
                port=int(self._settings.port),
                timeout=self._settings.timeout,
            ) as server:
                server.ehlo()
                if server.has_extn("starttls"):
                    server.starttls()
                    server.ehlo()
                if self._settings.username:
                    server.login(self._settings.username, self._settings.password or "")
                server.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Failed to send welcome email to %s: %s", email, exc)
            raise DeliveryError(f"Failed to send welcome email: {exc}") from exc

        receipt = DeliveryReceipt(message_id=str(message["Message-ID"]), recipient=email)
        logger.info("Welcome email sent to %s (message_id=%s)", email, receipt.message_id)
        return receipt


__all__ = ["DeliveryReceipt", "Notifier", "WelcomeMailer", "render_welcome"]
