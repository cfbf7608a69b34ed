"""
Secret redaction for audit snapshots and security evidence.

Keys that look like credentials are blanked entirely; free-text values are
scrubbed with value patterns so a token pasted into the wrong input still
never lands in the audit log.
"""

from __future__ import annotations

import re
from typing import Any

REDACTED = "[REDACTED]"

SENSITIVE_KEY = re.compile(
    r"(?i)(token|secret|passw(or)?d|api[_-]?key|private[_-]?key|auth|credential)"
)

# (pattern, replacement) pairs applied in order
VALUE_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (
        re.compile(r"-----BEGIN [A-Z ]*PRIVATE KEY-----[\s\S]*?-----END [A-Z ]*PRIVATE KEY-----"),
        "[REDACTED_PRIVATE_KEY]",
    ),
    (
        re.compile(
            r"(?i)\b(api[_-]?key|secret|password|passwd|token|private[_-]?key)(\s*[:=]\s*)"
            r"(['\"]?)[^\s'\"]{4,}\3"
        ),
        r"\1\2\3[REDACTED]\3",
    ),
    (re.compile(r"(?i)\bbearer\s+[a-z0-9._\-]{8,}"), "Bearer [REDACTED]"),
    (re.compile(r"\b0x[a-fA-F0-9]{64}\b"), "[REDACTED_HEX_KEY]"),
    (re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"), "[REDACTED_EMAIL]"),
    (re.compile(r"\b(?:\d{1,3}\.){3}\d{1,3}\b"), "[REDACTED_IP]"),
]


def redact_text(text: str) -> str:
    """Mask secret-looking substrings in free text."""
    for pattern, replacement in VALUE_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def redact_value(key: str, value: Any) -> Any:
    if SENSITIVE_KEY.search(key):
        return REDACTED if value not in (None, "") else value
    if isinstance(value, str):
        return redact_text(value)
    if isinstance(value, dict):
        return redact_mapping(value)
    if isinstance(value, (list, tuple)):
        return [redact_value(key, item) for item in value]
    return value


def redact_mapping(data: dict[str, Any]) -> dict[str, Any]:
    """Return a redacted copy of an input mapping. The original is untouched."""
    return {str(k): redact_value(str(k), v) for k, v in data.items()}
