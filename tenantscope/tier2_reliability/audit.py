"""
tenantscope.tier2_reliability.audit
────────────────────────────────────
Append-only audit trail. Every row-isolation bypass is recorded with the
reason the caller supplied, before the bypassing transaction starts.

Backend: structured log (stdout → aggregator). Audit records pass through
the same redaction processor as every other log event.
"""
from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from typing import Any

from tenantscope.tier0_core.logging import get_logger


@dataclass(frozen=True)
class AuditRecord:
    """Immutable audit record. Never update or delete these."""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: float = field(default_factory=time.time)
    actor_id: str = ""
    action: str = ""            # e.g. "db.rls_bypass"
    resource_type: str = ""     # e.g. "database"
    resource_id: str = ""
    outcome: str = "success"    # "success" | "failure" | "denied"
    metadata: dict[str, Any] = field(default_factory=dict)


async def audit(
    actor: str,
    action: str,
    resource_type: str,
    resource_id: str,
    outcome: str = "success",
    metadata: dict | None = None,
) -> AuditRecord:
    """
    Write an audit record.

    Usage:
        await audit(
            actor="service",
            action="db.rls_bypass",
            resource_type="database",
            resource_id="*",
            metadata={"reason": "nightly usage aggregation"},
        )
    """
    record = AuditRecord(
        actor_id=actor,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        outcome=outcome,
        metadata=metadata or {},
    )
    _write_log(record)
    return record


def _write_log(record: AuditRecord) -> None:
    log = get_logger("tenantscope.audit")
    log.info(
        "audit",
        audit_id=record.id,
        actor_id=record.actor_id,
        action=record.action,
        resource_type=record.resource_type,
        resource_id=record.resource_id,
        outcome=record.outcome,
        metadata=record.metadata,
        timestamp=record.timestamp,
    )


__all__ = ["AuditRecord", "audit"]
