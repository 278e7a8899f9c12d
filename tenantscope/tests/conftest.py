"""
tenantscope test configuration.

Unit tests run against a temporary SQLite file, no external services
required. SQLite has no session settings and no row-level security, so the
engine factory below registers `set_config` / `current_setting` SQL
functions that behave transaction-locally, and a `tenant_projects` view that
filters `projects` the way a row policy would.

PostgreSQL tests live in test_postgres_rls.py and are opt-in.
"""
from __future__ import annotations

import os

import pytest
import pytest_asyncio

# ── Force test settings ────────────────────────────────────────────────────
# These must be set before any tenantscope modules are imported.

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("TENANTSCOPE_LOG_LEVEL", "DEBUG")
os.environ.setdefault("TENANTSCOPE_LOG_FORMAT", "console")
os.environ.setdefault("TENANTSCOPE_ERROR_BACKEND", "none")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test.db")

from sqlalchemy import event, text  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine  # noqa: E402
from sqlalchemy.pool import AsyncAdaptedQueuePool  # noqa: E402

_SETTINGS_KEY = "session_settings"

_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS projects (
        id TEXT PRIMARY KEY,
        org_id TEXT NOT NULL,
        name TEXT NOT NULL
    )
    """,
    """
    CREATE VIEW IF NOT EXISTS tenant_projects AS
    SELECT id, org_id, name FROM projects
    WHERE current_setting('app.bypass_rls', true) = 'true'
       OR org_id = current_setting('app.current_org_id', true)
    """,
]


def install_session_settings(engine: AsyncEngine) -> None:
    """Emulate PostgreSQL's transaction-local set_config/current_setting."""
    sync_engine = engine.sync_engine

    @event.listens_for(sync_engine, "connect")
    def _register(dbapi_connection, connection_record):
        settings = connection_record.info.setdefault(_SETTINGS_KEY, {})

        def set_config(name, value, is_local):
            settings[name] = value
            return value

        def current_setting(name, missing_ok):
            if name not in settings and not missing_ok:
                raise ValueError(f"unrecognized configuration parameter {name!r}")
            return settings.get(name)

        dbapi_connection.create_function("set_config", 3, set_config)
        dbapi_connection.create_function("current_setting", 2, current_setting)

    @event.listens_for(sync_engine, "commit")
    def _clear_on_commit(conn):
        conn.connection.info.get(_SETTINGS_KEY, {}).clear()

    @event.listens_for(sync_engine, "rollback")
    def _clear_on_rollback(conn):
        conn.connection.info.get(_SETTINGS_KEY, {}).clear()


class PoolSpy:
    """Counts pool checkouts/checkins and transaction outcomes on an engine."""

    def __init__(self, engine: AsyncEngine) -> None:
        self.engine = engine
        self.checkouts = 0
        self.checkins = 0
        self.commits = 0
        self.rollbacks = 0
        sync_engine = engine.sync_engine
        event.listen(sync_engine, "checkout", self._on_checkout)
        event.listen(sync_engine, "checkin", self._on_checkin)
        event.listen(sync_engine, "commit", self._on_commit)
        event.listen(sync_engine, "rollback", self._on_rollback)

    def _on_checkout(self, dbapi_connection, connection_record, connection_proxy):
        self.checkouts += 1

    def _on_checkin(self, dbapi_connection, connection_record):
        self.checkins += 1

    def _on_commit(self, conn):
        self.commits += 1

    def _on_rollback(self, conn):
        self.rollbacks += 1

    @property
    def checked_out(self) -> int:
        return self.engine.sync_engine.pool.checkedout()


# ── Fixtures ───────────────────────────────────────────────────────────────

@pytest.fixture(autouse=True)
def reset_module_singletons():
    """
    Reset cached config, engine and health checker between tests so that
    env changes made by one test never bleed into the next.
    """
    from tenantscope.tier0_core import data as _data
    from tenantscope.tier0_core.config import _reset_config
    from tenantscope.tier2_reliability.health import _reset_health_checker

    _reset_config()
    yield
    _reset_config()
    _data._reset()
    _reset_health_checker()


@pytest_asyncio.fixture
async def make_engine(tmp_path):
    """Factory for pooled SQLite engines sharing one database file per test."""
    engines: list[AsyncEngine] = []

    async def _make(pool_size: int = 4, pool_timeout: float = 5.0) -> AsyncEngine:
        engine = create_async_engine(
            f"sqlite+aiosqlite:///{tmp_path / 'tenants.db'}",
            poolclass=AsyncAdaptedQueuePool,
            pool_size=pool_size,
            max_overflow=0,
            pool_timeout=pool_timeout,
        )
        install_session_settings(engine)
        async with engine.begin() as conn:
            for statement in _SCHEMA:
                await conn.execute(text(statement))
        engines.append(engine)
        return engine

    yield _make

    for engine in engines:
        await engine.dispose()


@pytest_asyncio.fixture
async def engine(make_engine):
    return await make_engine()


@pytest.fixture
def pool_spy(engine):
    return PoolSpy(engine)


@pytest.fixture
def spy_on():
    """Attach a PoolSpy to an engine built inside the test."""
    return PoolSpy
