"""
tenantscope.tier0_core.ids
───────────────────────────
Identifier format shared by the validator and by callers that mint tenant
and principal ids. Organization and user ids are hyphenated UUID strings;
any version nibble is accepted.
"""
from __future__ import annotations

import re
import uuid

UUID_PATTERN = (
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)

_UUID_RE = re.compile(UUID_PATTERN)


def is_uuid(value: object) -> bool:
    """True if *value* is a string in hyphenated 8-4-4-4-12 hex form."""
    return isinstance(value, str) and _UUID_RE.fullmatch(value) is not None


def new_uuid4() -> str:
    """Generate a random UUID v4 string."""
    return str(uuid.uuid4())


__all__ = ["UUID_PATTERN", "is_uuid", "new_uuid4"]
