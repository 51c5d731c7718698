"""Outbound notifications.

Notifiers raise DeliveryFailed on any transport problem; callers decide
whether that matters. The scheduling engine only logs it.
"""

import logging
import smtplib
import ssl
from email.mime.text import MIMEText
from typing import Protocol

from consultations.core import config
from consultations.scheduling.errors import DeliveryFailed

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def notify(self, recipient: str, subject: str, body: str) -> None: ...


class SmtpNotifier:
    def __init__(
        self,
        host: str,
        port: int,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        from_address: str = "no-reply@localhost",
        timeout: int = 30,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.from_address = from_address
        self.timeout = timeout

    def notify(self, recipient: str, subject: str, body: str) -> None:
        message = MIMEText(body, "plain", "utf-8")
        message["Subject"] = subject
        message["From"] = self.from_address
        message["To"] = recipient

        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                if self.use_tls:
                    server.starttls(context=ssl.create_default_context())
                if self.username:
                    server.login(self.username, self.password)
                server.sendmail(self.from_address, [recipient], message.as_string())
        except (smtplib.SMTPException, OSError) as exc:
            raise DeliveryFailed(f"Could not deliver '{subject}' to {recipient}: {exc}") from exc


class LogNotifier:
    """Writes notifications to the log instead of sending them."""

    def notify(self, recipient: str, subject: str, body: str) -> None:
        logger.info("Notification to %s: %s\n%s", recipient, subject, body)


def build_notifier() -> Notifier:
    if config.NOTIFY_BACKEND == "smtp":
        return SmtpNotifier(
            host=config.SMTP_HOST,
            port=config.SMTP_PORT,
            username=config.SMTP_USERNAME,
            password=config.SMTP_PASSWORD,
            use_tls=config.SMTP_USE_TLS,
            from_address=config.SMTP_FROM_ADDRESS,
            timeout=config.SMTP_TIMEOUT_SECONDS,
        )
    return LogNotifier()
