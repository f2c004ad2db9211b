"""Redaction utilities for command output shown to users."""

from __future__ import annotations

import re
from typing import Any

REDACTED = "[REDACTED]"
TOKEN_PATTERNS = [
    re.compile(r"\bgh[pousr]_[A-Za-z0-9]{20,}\b"),
    re.compile(r"\bgithub_pat_[A-Za-z0-9_]{20,}\b"),
    re.compile(r"\bsk-ant-[A-Za-z0-9_-]{16,}\b"),
    re.compile(r"\bsk-[A-Za-z0-9:_-]{16,}\b"),
]
PREFIXED_PATTERNS = [
    re.compile(r"(?i)\b(authorization\s*:\s*(?:bearer|token)\s+)[A-Za-z0-9._:-]+"),
    re.compile(r"(?i)\b(api[-_ ]?key\s*[=:]\s*)[\"']?[A-Za-z0-9._:-]{8,}[\"']?"),
    re.compile(r"(?i)\b(token\s*[=:]\s*)[\"']?[A-Za-z0-9._:-]{8,}[\"']?"),
    re.compile(r"(https?://)[^/\s:@]+:[^/\s@]+@"),
]


def redact_text(value: str) -> str:
    """Redact secrets from a text value."""
    redacted = value
    for pattern in TOKEN_PATTERNS:
        redacted = pattern.sub(REDACTED, redacted)
    for pattern in PREFIXED_PATTERNS:
        redacted = pattern.sub(r"\1" + REDACTED, redacted)
    return redacted


def redact_mapping(value: Any) -> Any:
    """Recursively redact strings in nested dictionaries/lists."""
    if isinstance(value, str):
        return redact_text(value)
    if isinstance(value, dict):
        return {k: redact_mapping(v) for k, v in value.items()}
    if isinstance(value, list):
        return [redact_mapping(item) for item in value]
    return value
