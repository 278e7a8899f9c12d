"""
tenantscope.tier0_core.redact
──────────────────────────────
Secret and tenant-data redaction for log records. Engine error messages
routinely quote the offending row (``Key (email)=(a@b.c) already exists``);
those values belong to a tenant and must not reach a log aggregator, so the
scrubber keeps the column name and drops the value.

All logging and audit pipelines pass through redact.
"""
from __future__ import annotations

import re
from typing import Any

# ── Default redacted key names (case-insensitive) ─────────────────────────

_SENSITIVE_KEYS: frozenset[str] = frozenset({
    "password", "passwd", "secret", "token", "api_key", "apikey",
    "access_token", "refresh_token", "private_key", "client_secret",
    "authorization", "credential", "cookie", "session", "dsn",
    "database_url", "ssn", "credit_card",
})

# ── Regex patterns for inline scrubbing ───────────────────────────────────

_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    # PostgreSQL DETAIL: Key (col1, col2)=(v1, v2) ...
    (re.compile(r"(Key \([^)]*\))=\((?:[^()]|\([^)]*\))*\)"), r"\1=([REDACTED])"),
    # Failing row contains (...)
    (re.compile(r"(Failing row contains )\(.*\)"), r"\1([REDACTED])"),
    # Credentials embedded in connection URLs
    (re.compile(r"(\w+(?:\+\w+)?://[^:/@\s]+):[^@\s]+@"), r"\1:[REDACTED]@"),
    # Generic key=value secrets
    (re.compile(
        r"(password|secret|token|api[_-]?key)\s*=\s*[^\s&\"']+",
        re.I,
    ), r"\1=[REDACTED]"),
]

REDACTED = "[REDACTED]"


# ── Public API ─────────────────────────────────────────────────────────────

def redact_dict(
    data: dict[str, Any],
    sensitive_keys: frozenset[str] | None = None,
    *,
    deep: bool = True,
) -> dict[str, Any]:
    """
    Return a copy of *data* with sensitive key values replaced by REDACTED.
    If *deep* is True, recurse into nested dicts and lists.
    """
    keys = sensitive_keys if sensitive_keys is not None else _SENSITIVE_KEYS
    result: dict[str, Any] = {}
    for k, v in data.items():
        if k.lower() in keys:
            result[k] = REDACTED
        elif deep and isinstance(v, dict):
            result[k] = redact_dict(v, keys, deep=True)
        elif deep and isinstance(v, list):
            result[k] = [
                redact_dict(item, keys, deep=True) if isinstance(item, dict) else item
                for item in v
            ]
        else:
            result[k] = v
    return result


def scrub_string(text: str) -> str:
    """Apply regex-based scrubbing to an arbitrary string."""
    for pattern, replacement in _PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def structlog_redact_processor(
    logger: Any,
    method: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """
    structlog processor: redact sensitive keys, then scrub string values.
    Add to the structlog processor chain before any serialisation step.
    """
    cleaned = redact_dict(event_dict)
    for key, value in cleaned.items():
        if isinstance(value, str) and key != "event":
            cleaned[key] = scrub_string(value)
    return cleaned


__all__ = [
    "REDACTED",
    "redact_dict",
    "scrub_string",
    "structlog_redact_processor",
]
