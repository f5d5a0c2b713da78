from __future__ import annotations

import re

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def is_email(value: str) -> bool:
    """Return True for a single ``local@domain.tld`` address without whitespace."""
    return bool(_EMAIL_RE.fullmatch(value or "")) and len(value) <= 254


def looks_like_email(identifier: str) -> bool:
    """Login identifiers containing ``@`` are looked up as emails."""
    return "@" in (identifier or "")
