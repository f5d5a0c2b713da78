"""JSON log lines for the credential service, tagged with the request correlation id."""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Iterable, TextIO

CORRELATION_ID_CTX: ContextVar[str] = ContextVar("correlation_id", default="")

# ``extra=`` keys copied onto the line when set.
CONTEXT_FIELDS = ("user_id", "operation", "error_code", "method", "path", "status_code")


class CorrelationIdFilter(logging.Filter):
    """Stamp each record with the correlation id of the current request."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "correlation_id", ""):
            record.correlation_id = CORRELATION_ID_CTX.get()
        return True


class JsonLogFormatter(logging.Formatter):
    def __init__(
        self, *, service: str = "ticketing", fields: Iterable[str] = CONTEXT_FIELDS
    ) -> None:
        super().__init__()
        self._service = service
        self._fields = tuple(fields)

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        line: dict[str, Any] = {
            "ts": created.isoformat(timespec="milliseconds"),
            "level": record.levelname.lower(),
            "service": self._service,
            "logger": record.name,
            "event": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", "")
            or CORRELATION_ID_CTX.get(),
        }
        for name in self._fields:
            value = getattr(record, name, None)
            if value is not None and value != "":
                line[name] = value

        if record.exc_info and record.exc_info[0] is not None:
            line["error_type"] = record.exc_info[0].__name__
            line["exception"] = self.formatException(record.exc_info)
        return json.dumps(line, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", *, stream: TextIO | None = None) -> logging.Handler:
    """Route the root logger through a single JSON handler and return it."""
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(JsonLogFormatter())
    handler.addFilter(CorrelationIdFilter())

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(logging.getLevelNamesMapping().get(level.strip().upper(), logging.INFO))
    return handler


def set_correlation_id(correlation_id: str) -> None:
    CORRELATION_ID_CTX.set(correlation_id)


def redact_email(email: str) -> str:
    """Keep the first two characters of the mailbox and the domain."""
    local, sep, domain = email.partition("@")
    if not sep:
        return "redacted"
    return f"{local[:2]}***@{domain}"
