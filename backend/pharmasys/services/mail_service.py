# Overview: Out-of-band delivery of one-time codes (SMTP, or the log in development).

from __future__ import annotations

import logging
import smtplib
import ssl
from email.message import EmailMessage
from typing import Protocol


logger = logging.getLogger(__name__)


class Mailer(Protocol):
    def send(self, to_email: str, subject: str, body: str) -> None: ...


class LoggingMailer:
    """Development mailer: writes the message to the log instead of sending it."""

    def send(self, to_email: str, subject: str, body: str) -> None:
        logger.info("Mail to %s | %s | %s", to_email, subject, body)


class SMTPMailer:
    def __init__(
        self,
        host: str,
        port: int = 587,
        *,
        from_email: str,
        user: str | None = None,
        password: str | None = None,
        use_tls: bool = True,
    ):
        self.host = host
        self.port = port
        self.from_email = from_email
        self.user = user
        self.password = password
        self.use_tls = use_tls

    def _build_message(self, to_email: str, subject: str, body: str) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self.from_email
        msg["To"] = to_email
        msg["Subject"] = subject
        msg.set_content(body)
        return msg

    def send(self, to_email: str, subject: str, body: str) -> None:
        msg = self._build_message(to_email, subject, body)

        with smtplib.SMTP(self.host, self.port) as server:
            if self.use_tls:
                server.starttls(context=ssl.create_default_context())
            if self.user and self.password:
                server.login(self.user, self.password)
            server.send_message(msg)

        logger.info("Mail sent to %s: %s", to_email, subject)


def build_mailer(config) -> Mailer:
    """Pick the delivery backend from app config."""
    host = config.get("MAIL_SMTP_HOST")
    if not host:
        return LoggingMailer()
    return SMTPMailer(
        host,
        config.get("MAIL_SMTP_PORT", 587),
        from_email=config.get("MAIL_FROM"),
        user=config.get("MAIL_SMTP_USER"),
        password=config.get("MAIL_SMTP_PASSWORD"),
        use_tls=config.get("MAIL_SMTP_TLS", True),
    )
