from __future__ import annotations

import io
import json
import logging

from ticketing.core.logging import redact_email, set_correlation_id, setup_logging


def test_setup_logging_emits_json_with_correlation_and_context() -> None:
    stream = io.StringIO()
    handler = setup_logging("debug", stream=stream)
    try:
        set_correlation_id("req-42")
        logging.getLogger("ticketing.test").info(
            "user_registered", extra={"user_id": "u1", "operation": "register", "path": ""}
        )
    finally:
        logging.getLogger().removeHandler(handler)
        set_correlation_id("")

    line = json.loads(stream.getvalue().strip())
    assert line["event"] == "user_registered"
    assert line["level"] == "info"
    assert line["correlation_id"] == "req-42"
    assert line["user_id"] == "u1"
    assert line["operation"] == "register"
    assert "path" not in line


def test_exceptions_carry_their_type() -> None:
    stream = io.StringIO()
    handler = setup_logging(stream=stream)
    try:
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            logging.getLogger("ticketing.test").exception("unexpected_exception")
    finally:
        logging.getLogger().removeHandler(handler)

    line = json.loads(stream.getvalue().strip())
    assert line["error_type"] == "RuntimeError"
    assert "boom" in line["exception"]


def test_redact_email_keeps_domain_only() -> None:
    assert redact_email("alice@x.com") == "al***@x.com"
    assert redact_email("not-an-email") == "redacted"
