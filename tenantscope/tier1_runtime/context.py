"""
tenantscope.tier1_runtime.context
──────────────────────────────────
Database context descriptors. A descriptor says *who* a transaction runs as:
either a tenant principal (organization + user + role) or a trusted system
identity that bypasses row isolation.

Descriptors are plain immutable values passed explicitly into every scoped
call. There is no ContextVar or module-level "current tenant":
the descriptor lives in the caller's frame for one call and is then dropped.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union


class Role(str, Enum):
    """Closed set of tenant roles understood by the row policies."""
    OWNER = "OWNER"
    MEMBER = "MEMBER"


@dataclass(frozen=True)
class TenantContext:
    """Run as `user_id` inside organization `org_id` with `role`."""
    org_id: str
    user_id: str
    role: Role | str


@dataclass(frozen=True)
class ServiceContext:
    """
    Run as the system, bypassing row isolation. `reason` is recorded in the
    audit log and in the transaction's session settings.
    """
    reason: str

    @property
    def bypass_rls(self) -> bool:
        return True


DatabaseContext = Union[TenantContext, ServiceContext]


def context_kind(ctx: DatabaseContext) -> str:
    """Return "tenant" or "service"; used for log fields and metric labels."""
    if isinstance(ctx, ServiceContext):
        return "service"
    if isinstance(ctx, TenantContext):
        return "tenant"
    raise TypeError(f"Unsupported database context: {type(ctx).__name__}")


__all__ = ["Role", "TenantContext", "ServiceContext", "DatabaseContext", "context_kind"]
