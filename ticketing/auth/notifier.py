"""Outbound email for verification, confirmation and password reset."""

from __future__ import annotations

import asyncio
import logging
import smtplib
import ssl
from dataclasses import dataclass, field
from email.message import EmailMessage
from typing import Protocol
from urllib.parse import urlencode

from ticketing.auth.errors import NotificationError
from ticketing.core.config import EmailConfig
from ticketing.core.logging import redact_email

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmailTemplate:
    """Rendered message plus the data it was built from."""

    kind: str
    subject: str
    text_body: str
    data: dict[str, str] = field(default_factory=dict)


class Notifier(Protocol):
    async def send(self, address: str, template: EmailTemplate) -> None: ...


def verification_email(base_url: str, secret: str, ttl_minutes: int) -> EmailTemplate:
    link = f"{base_url}/api/users/verify?{urlencode({'token': secret})}"
    return EmailTemplate(
        kind="verification",
        subject="Verify your email",
        text_body=(
            "Thanks for signing up! Please verify your email address by visiting "
            f"the link below:\n\n{link}\n\n"
            f"This link will expire in {ttl_minutes} minutes.\n"
        ),
        data={"token": secret, "link": link},
    )


def verified_email(user_id: str) -> EmailTemplate:
    return EmailTemplate(
        kind="verified",
        subject="Your account is verified",
        text_body=(
            "Your email address has been verified. You can now use every feature "
            "of your account.\n\n"
            f"Account reference: {user_id}\n"
        ),
        data={"user_id": user_id},
    )


def password_reset_email(base_url: str, secret: str, ttl_minutes: int) -> EmailTemplate:
    link = f"{base_url}/users/reset-password?{urlencode({'resetToken': secret})}"
    return EmailTemplate(
        kind="password_reset",
        subject="Password Reset",
        text_body=(
            "You are receiving this email because you (or someone else) requested "
            "a password reset for your account.\n\n"
            f"Open the following link to complete the process:\n\n{link}\n"
            f"reset: {secret}\n\n"
            f"This link will expire in {ttl_minutes} minutes. If you did not request "
            "this, ignore this email and your password will remain unchanged.\n"
        ),
        data={"token": secret, "link": link},
    )


class LoggingNotifier:
    """Dev-mode notifier: logs a redacted preview instead of sending."""

    async def send(self, address: str, template: EmailTemplate) -> None:
        LOGGER.info(
            "email_dev_mode %s to=%s subject=%s",
            template.kind,
            redact_email(address),
            template.subject,
        )


class SmtpNotifier:
    """SMTP delivery. Blocking I/O runs in a worker thread."""

    def __init__(self, config: EmailConfig) -> None:
        self._config = config

    def _build_message(self, address: str, template: EmailTemplate) -> EmailMessage:
        message = EmailMessage()
        message["Subject"] = template.subject
        message["From"] = f"{self._config.from_name} <{self._config.from_email}>"
        message["To"] = address
        message.set_content(template.text_body)
        return message

    def _deliver(self, message: EmailMessage) -> None:
        cfg = self._config
        context = ssl.create_default_context()
        if cfg.smtp_use_tls:
            with smtplib.SMTP(cfg.smtp_host, cfg.smtp_port, timeout=30) as server:
                server.starttls(context=context)
                if cfg.smtp_user and cfg.smtp_password:
                    server.login(cfg.smtp_user, cfg.smtp_password)
                server.send_message(message)
        else:
            with smtplib.SMTP_SSL(
                cfg.smtp_host, cfg.smtp_port, context=context, timeout=30
            ) as server:
                if cfg.smtp_user and cfg.smtp_password:
                    server.login(cfg.smtp_user, cfg.smtp_password)
                server.send_message(message)

    async def send(self, address: str, template: EmailTemplate) -> None:
        message = self._build_message(address, template)
        try:
            await asyncio.to_thread(self._deliver, message)
        except (smtplib.SMTPException, ssl.SSLError, OSError) as exc:
            LOGGER.error(
                "email_send_failed %s to=%s error_type=%s",
                template.kind,
                redact_email(address),
                type(exc).__name__,
            )
            raise NotificationError(f"could not deliver {template.kind} email") from exc
        LOGGER.info("email_sent %s to=%s", template.kind, redact_email(address))


def create_notifier(config: EmailConfig) -> Notifier:
    """SMTP when a host and sender are configured, logging otherwise."""
    if config.smtp_host and config.from_email:
        return SmtpNotifier(config)
    return LoggingNotifier()
