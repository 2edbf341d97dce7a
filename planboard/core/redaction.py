"""Redaction for text that may leave the process (error messages, log lines).

Never stores or prints the secret itself, only a marker that redaction
happened.
"""

from __future__ import annotations

import re

REDACTED = "***REDACTED***"

_BEARER_RE = re.compile(r"(Bearer\s+)\S+", re.IGNORECASE)
_SESSION_TOKEN_RE = re.compile(r"\bpbt_[A-Za-z0-9_\-]+(?:\.[0-9a-fA-F]+)?")
_LONG_HEX_RE = re.compile(r"\b[0-9a-fA-F]{24,}\b")
_BCRYPT_RE = re.compile(r"\$2[aby]?\$\d{2}\$[./A-Za-z0-9]{53}")


def redact_text(text: str) -> str:
    """Mask bearer tokens, session tokens, password hashes and long hex runs."""
    if not text:
        return text
    text = _BEARER_RE.sub(lambda m: m.group(1) + REDACTED, text)
    text = _SESSION_TOKEN_RE.sub(REDACTED, text)
    text = _BCRYPT_RE.sub(REDACTED, text)
    text = _LONG_HEX_RE.sub(REDACTED, text)
    return text

