"""
tenantscope.tier0_core.data
────────────────────────────
Connection pool lifecycle, pool checkout, transaction-local session
settings, and translation of engine failures into StorageError.

Nothing in this module is meant to be called by application code: the
scoped entry points in tier3_platform.multi_tenancy are the only sanctioned
way to reach storage. This tier supplies the pieces they are built from.

Minimal stack: SQLAlchemy 2.x async (asyncpg for PostgreSQL, aiosqlite for dev)
Configure via: DATABASE_URL, DATABASE_POOL_SIZE, DATABASE_MAX_OVERFLOW,
               DATABASE_POOL_TIMEOUT, DATABASE_ECHO
"""
from __future__ import annotations

from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import exc as sa_exc
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncConnection,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from tenantscope.tier0_core.config import get_config
from tenantscope.tier0_core.errors import (
    ConfigurationError,
    PoolTimeoutError,
    StorageError,
    TransactionScopeError,
)
from tenantscope.tier0_core.logging import get_logger
from tenantscope.tier0_core.metrics import counter
from tenantscope.tier0_core.redact import scrub_string

log = get_logger(__name__)

_pool_timeouts = counter(
    "tenantscope_pool_timeouts_total",
    "Pool checkouts that gave up waiting for a free connection",
)

# Both the setting name and its value travel as bound parameters.
_SET_CONFIG = text("SELECT set_config(:name, :value, true)")


# ── Scoped session ────────────────────────────────────────────────────────────

class ScopedSession(AsyncSession):
    """
    AsyncSession whose transaction boundaries belong to the binder. While
    held(), commit(), rollback() and close() raise TransactionScopeError;
    ending the bound transaction early would let the session autobegin a
    fresh one on another pooled connection, without any session settings.
    """

    _held = False

    @contextmanager
    def held(self) -> Iterator[ScopedSession]:
        self._held = True
        try:
            yield self
        finally:
            self._held = False

    def _refuse_if_held(self, operation: str) -> None:
        if self._held:
            raise TransactionScopeError(
                user_message="A scoped transaction cannot be ended by its own work.",
                detail=f"{operation}() called inside a tenant-scoped transaction",
            )

    async def commit(self) -> None:
        self._refuse_if_held("commit")
        await super().commit()

    async def rollback(self) -> None:
        self._refuse_if_held("rollback")
        await super().rollback()

    async def close(self) -> None:
        self._refuse_if_held("close")
        await super().close()


# ── Engine / session factory ──────────────────────────────────────────────────

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[ScopedSession] | None = None


def get_engine() -> AsyncEngine:
    """Return the singleton async engine (and its pool). Created on first call."""
    global _engine
    if _engine is None:
        config = get_config()
        kwargs: dict[str, Any] = {
            "echo": config.database_echo,
            "pool_pre_ping": True,
        }

        # SQLite doesn't support pool settings
        if not config.is_sqlite:
            kwargs["pool_size"] = config.database_pool_size
            kwargs["max_overflow"] = config.database_max_overflow
            kwargs["pool_timeout"] = config.database_pool_timeout

        try:
            _engine = create_async_engine(config.database_url, **kwargs)
        except (sa_exc.ArgumentError, ImportError) as exc:
            raise ConfigurationError(
                user_message="DATABASE_URL is not usable.",
                detail=scrub_string(str(exc)),
            ) from exc
    return _engine


def get_session_factory() -> async_sessionmaker[ScopedSession]:
    """Return the session factory bound to the singleton engine."""
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            bind=get_engine(),
            class_=ScopedSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _session_factory


def new_session(engine: AsyncEngine | None = None) -> ScopedSession:
    """
    Return a new session on *engine* (default: the singleton). No connection
    is checked out until checkout() is awaited.
    """
    if engine is None:
        return get_session_factory()()
    return ScopedSession(bind=engine, expire_on_commit=False, autoflush=False)


async def dispose_engine() -> None:
    """Dispose the engine and close pooled connections. Call on shutdown."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None


def _reset() -> None:
    """For tests: reset engine and session factory."""
    global _engine, _session_factory
    _engine = None
    _session_factory = None


# ── Checkout / session settings ───────────────────────────────────────────────

async def checkout(session: AsyncSession) -> AsyncConnection:
    """
    Check a connection out of the pool and open the session's transaction.
    Blocks up to the pool timeout; on expiry raises PoolTimeoutError before
    any transaction exists.
    """
    try:
        return await session.connection()
    except sa_exc.TimeoutError as exc:
        _pool_timeouts().inc()
        log.warning("db.pool_timeout", error=str(exc))
        raise PoolTimeoutError(detail=str(exc)) from exc
    except sa_exc.DBAPIError as exc:
        raise storage_error(exc) from exc


async def apply_session_settings(
    session: AsyncSession,
    settings: Iterable[tuple[str, str]],
) -> None:
    """
    Write each (name, value) pair as a transaction-local setting, in order.
    Settings vanish at COMMIT/ROLLBACK, so they never outlive the transaction
    on a pooled connection.
    """
    for name, value in settings:
        await session.execute(_SET_CONFIG, {"name": name, "value": value})


# ── Storage error translation ─────────────────────────────────────────────────

def _first_attr(candidates: Iterable[Any], *names: str) -> Any:
    for obj in candidates:
        if obj is None:
            continue
        for name in names:
            value = getattr(obj, name, None)
            if value:
                return value
    return None


def storage_diagnostics(exc: sa_exc.DBAPIError) -> dict[str, Any]:
    """
    Pull code/detail/constraint/table/column out of a driver exception.
    asyncpg keeps them on the wrapped exception (``orig.__cause__``),
    psycopg on ``orig.diag``, sqlite3 only offers an error name.
    """
    orig = exc.orig
    cause = getattr(orig, "__cause__", None)
    diag = getattr(orig, "diag", None)
    candidates = (orig, cause, diag)
    return {
        "code": _first_attr(candidates, "sqlstate", "pgcode", "sqlite_errorname"),
        "message": str(orig) if orig is not None else str(exc),
        "detail": _first_attr(candidates, "detail", "message_detail"),
        "constraint": _first_attr(candidates, "constraint_name"),
        "table": _first_attr(candidates, "table_name"),
        "column": _first_attr(candidates, "column_name"),
    }


def storage_error(exc: sa_exc.DBAPIError) -> StorageError:
    """Log the engine failure and wrap it; the caller raises it ``from exc``."""
    diagnostics = storage_diagnostics(exc)
    log.error("db.storage_error", **diagnostics)
    detail = diagnostics["detail"] or diagnostics["message"]
    return StorageError(
        code=diagnostics["code"],
        detail=scrub_string(str(detail)),
        constraint=diagnostics["constraint"],
        table=diagnostics["table"],
        column=diagnostics["column"],
    )
