"""
tenantscope.tier3_platform.multi_tenancy
─────────────────────────────────────────
Tenant-scoped transactions. Every query runs inside a transaction whose
session settings identify the tenant (or the trusted system identity) so
that the storage engine's row policies, not application code, decide which
rows are visible.

Per call:

    validate → checkout → BEGIN → set_config(...) → work(session) → COMMIT
                                                   ↘ on any failure: ROLLBACK
    ...and the connection goes back to the pool on every path.

with_tenant_context() and with_service_context() are the only sanctioned way
to reach storage. Handing the engine, a raw connection, or an unscoped
session to application code reopens the cross-tenant leak this module
exists to close.

Row policies read the settings with ``current_setting('<name>', true)``;
the SESSION_VAR_* names below are the contract with those policies.
"""
from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import TypeVar

from sqlalchemy import exc as sa_exc
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from tenantscope.tier0_core.config import get_config
from tenantscope.tier0_core.data import (
    apply_session_settings,
    checkout,
    new_session,
    storage_error,
)
from tenantscope.tier0_core.errors import ForbiddenError, TransactionScopeError
from tenantscope.tier0_core.logging import get_logger
from tenantscope.tier0_core.metrics import counter, histogram
from tenantscope.tier1_runtime.context import (
    DatabaseContext,
    Role,
    ServiceContext,
    TenantContext,
    context_kind,
)
from tenantscope.tier1_runtime.validate import validate_context
from tenantscope.tier2_reliability.audit import audit

T = TypeVar("T")

Work = Callable[[AsyncSession], Awaitable[T]]

SESSION_VAR_ORG_ID = "app.current_org_id"
SESSION_VAR_USER_ID = "app.current_user_id"
SESSION_VAR_ROLE = "app.current_role"
SESSION_VAR_BYPASS_RLS = "app.bypass_rls"
SESSION_VAR_SERVICE_REASON = "app.service_reason"

log = get_logger(__name__)

_transactions = counter(
    "tenantscope_transactions_total",
    "Scoped transactions by context kind and outcome",
    ["kind", "outcome"],
)
_duration = histogram(
    "tenantscope_transaction_duration_seconds",
    "Wall time from pool checkout to commit/rollback",
    ["kind"],
)


# ── Binder ────────────────────────────────────────────────────────────────────

def session_settings(ctx: DatabaseContext) -> list[tuple[str, str]]:
    """Ordered (name, value) settings the row policies read for *ctx*."""
    if isinstance(ctx, ServiceContext):
        return [
            (SESSION_VAR_BYPASS_RLS, "true"),
            (SESSION_VAR_SERVICE_REASON, ctx.reason),
        ]
    if isinstance(ctx, TenantContext):
        return [
            (SESSION_VAR_ORG_ID, ctx.org_id),
            (SESSION_VAR_USER_ID, ctx.user_id),
            (SESSION_VAR_ROLE, Role(ctx.role).value),
        ]
    raise TypeError(f"Unsupported database context: {type(ctx).__name__}")


async def _authorize_bypass(ctx: ServiceContext) -> None:
    if not get_config().allow_service_context:
        await audit(
            actor="service",
            action="db.rls_bypass",
            resource_type="database",
            resource_id="*",
            outcome="denied",
            metadata={"reason": ctx.reason},
        )
        raise ForbiddenError(
            user_message="Service context is disabled in this process.",
            detail="TENANTSCOPE_ALLOW_SERVICE_CONTEXT is false",
        )
    await audit(
        actor="service",
        action="db.rls_bypass",
        resource_type="database",
        resource_id="*",
        metadata={"reason": ctx.reason},
    )


async def _rollback(session: AsyncSession, kind: str) -> None:
    """Roll back; a failing rollback is logged and must not hide the original error."""
    try:
        await session.rollback()
    except Exception as exc:
        log.error("db.rollback_failed", kind=kind, error=str(exc), exc_info=True)
    else:
        log.debug("db.transaction_rolled_back", kind=kind)


@asynccontextmanager
async def tenant_session(
    ctx: DatabaseContext | None,
    *,
    engine: AsyncEngine | None = None,
) -> AsyncIterator[AsyncSession]:
    """
    Yield a session whose transaction is bound to *ctx*.

    Commits when the block exits cleanly; rolls back on any exception,
    cancellation included, then re-raises it. Engine failures surface as
    StorageError (the driver exception is kept as ``__cause__``); everything
    else propagates unchanged. The block cannot commit, roll back or close
    the session itself; those calls raise TransactionScopeError and the
    transaction is rolled back.

    Usage:
        async with tenant_session(TenantContext(org_id, user_id, Role.MEMBER)) as session:
            rows = (await session.execute(select(Project))).scalars().all()
    """
    ctx = validate_context(ctx)
    kind = context_kind(ctx)
    settings = session_settings(ctx)

    if isinstance(ctx, ServiceContext):
        await _authorize_bypass(ctx)

    async with new_session(engine) as session:
        await checkout(session)
        transaction = session.sync_session.get_transaction()
        started = time.monotonic()
        outcome = "rolled_back"
        try:
            await apply_session_settings(session, settings)
            if isinstance(ctx, TenantContext):
                log.debug(
                    "db.context_bound", kind=kind,
                    org_id=ctx.org_id, user_id=ctx.user_id, role=Role(ctx.role).value,
                )
            else:
                log.debug("db.context_bound", kind=kind, reason=ctx.reason)

            with session.held():
                yield session

            if session.sync_session.get_transaction() is not transaction:
                raise TransactionScopeError(
                    user_message="A scoped transaction cannot be ended by its own work.",
                    detail="the bound transaction was replaced while work ran",
                )
            await session.commit()
            outcome = "committed"
            log.debug("db.transaction_committed", kind=kind)
        except BaseException as exc:
            await _rollback(session, kind)
            if isinstance(exc, sa_exc.DBAPIError):
                raise storage_error(exc) from exc
            raise
        finally:
            _transactions(kind=kind, outcome=outcome).inc()
            _duration(kind=kind).observe(time.monotonic() - started)


async def bind(
    ctx: DatabaseContext | None,
    work: Work[T],
    *,
    engine: AsyncEngine | None = None,
) -> T:
    """Run *work* with a session bound to *ctx*; return its result."""
    async with tenant_session(ctx, engine=engine) as session:
        return await work(session)


# ── Scoped executor (public API) ──────────────────────────────────────────────

async def with_tenant_context(
    ctx: DatabaseContext | None,
    work: Work[T],
    *,
    timeout: float | None = None,
    engine: AsyncEngine | None = None,
) -> T:
    """
    Run *work* in one transaction bound to *ctx* (tenant or service).

    *timeout* bounds the time spent in *work*; when it expires the
    transaction is rolled back and asyncio.TimeoutError propagates.

    Usage:
        async def list_projects(session: AsyncSession) -> list[Project]:
            return (await session.execute(select(Project))).scalars().all()

        projects = await with_tenant_context(
            TenantContext(org_id=org_id, user_id=user_id, role=Role.OWNER),
            list_projects,
        )
    """
    async with tenant_session(ctx, engine=engine) as session:
        if timeout is None:
            return await work(session)
        return await asyncio.wait_for(work(session), timeout)


async def with_service_context(
    reason: str,
    work: Work[T],
    *,
    timeout: float | None = None,
    engine: AsyncEngine | None = None,
) -> T:
    """
    Run *work* as the system, with row isolation disabled for the whole
    transaction. Every call is audited with *reason*.

    PRIVILEGED: only for migrations, background jobs and other trusted
    internal paths. Never call it from a handler driven by an end-user
    request. Processes that serve such requests should run with
    TENANTSCOPE_ALLOW_SERVICE_CONTEXT=false.
    """
    return await with_tenant_context(
        ServiceContext(reason=reason), work, timeout=timeout, engine=engine,
    )


__all__ = [
    "SESSION_VAR_ORG_ID", "SESSION_VAR_USER_ID", "SESSION_VAR_ROLE",
    "SESSION_VAR_BYPASS_RLS", "SESSION_VAR_SERVICE_REASON",
    "session_settings", "tenant_session", "bind",
    "with_tenant_context", "with_service_context",
]
