from __future__ import annotations

import asyncio
import smtplib
from urllib.parse import parse_qs, urlparse

import pytest

from ticketing.auth.errors import NotificationError
from ticketing.auth.notifier import (
    LoggingNotifier,
    SmtpNotifier,
    create_notifier,
    password_reset_email,
    verification_email,
)
from tests.fakes import app_config


def test_verification_email_links_to_verify_endpoint() -> None:
    template = verification_email("https://api.example.test", "abc123", 5)

    link = urlparse(template.data["link"])
    assert link.path == "/api/users/verify"
    assert parse_qs(link.query) == {"token": ["abc123"]}
    assert "5 minutes" in template.text_body


def test_password_reset_email_carries_secret() -> None:
    template = password_reset_email("https://app.example.test", "xyz", 5)

    assert template.kind == "password_reset"
    assert template.data["token"] == "xyz"
    assert "xyz" in template.text_body


def test_create_notifier_falls_back_to_logging_without_smtp_host() -> None:
    config = app_config().email

    assert isinstance(create_notifier(config), LoggingNotifier)


def test_smtp_failure_is_reported_as_notification_error(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    config = app_config().email
    notifier = SmtpNotifier(config)

    def _refuse(*_args: object, **_kwargs: object) -> None:
        raise smtplib.SMTPConnectError(421, b"unavailable")

    monkeypatch.setattr(smtplib, "SMTP", _refuse)

    with pytest.raises(NotificationError):
        asyncio.run(
            notifier.send("alice@x.com", verification_email("https://api", "tok", 5))
        )
