"""
tenantscope.tier2_reliability.health
─────────────────────────────────────
Liveness/readiness for a process that owns a tenant-scoped pool. Readiness
runs every registered check concurrently, each under its own timeout; the
database check goes through the scoped entry point like every other query.

Usage:
    checker = register_database_check()

    # In FastAPI / Starlette:
    @app.get("/health/ready")
    async def readiness():
        result = await checker.readiness()
        status_code = 200 if result["status"] == "ok" else 503
        return JSONResponse(result, status_code=status_code)
"""
from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

Check = Callable[[], Awaitable[bool]]


@dataclass(frozen=True)
class CheckResult:
    name: str
    ok: bool
    latency_ms: float
    detail: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "status": "ok" if self.ok else "failed",
            "latency_ms": self.latency_ms,
        }
        if self.detail:
            data["detail"] = self.detail
        return data


class HealthChecker:
    """Named async checks; the process is ready only when all of them pass."""

    def __init__(self) -> None:
        self._checks: dict[str, tuple[Check, float]] = {}

    def register(self, name: str, check: Check, timeout: float = 5.0) -> None:
        """Add (or replace) the check called *name*; it fails after *timeout* seconds."""
        self._checks[name] = (check, timeout)

    def liveness(self) -> dict:
        return {"status": "ok", "timestamp": time.time()}

    async def readiness(self) -> dict:
        results = await asyncio.gather(*(
            _run(name, check, timeout) for name, (check, timeout) in self._checks.items()
        ))
        return {
            "status": "ok" if all(r.ok for r in results) else "degraded",
            "checks": [r.to_dict() for r in results],
            "timestamp": time.time(),
        }


async def _run(name: str, check: Check, timeout: float) -> CheckResult:
    started = time.monotonic()
    detail = None
    try:
        ok = bool(await asyncio.wait_for(check(), timeout=timeout))
    except asyncio.TimeoutError:
        ok, detail = False, f"Timed out after {timeout}s"
    except Exception as exc:
        ok, detail = False, str(exc)
    latency_ms = round((time.monotonic() - started) * 1000, 2)
    return CheckResult(name=name, ok=ok, latency_ms=latency_ms, detail=detail)

# ── Database check ────────────────────────────────────────────────────────────

async def check_database(engine: AsyncEngine | None = None) -> bool:
    """Round-trip `SELECT 1` through a service-context transaction."""
    from tenantscope.tier3_platform.multi_tenancy import with_service_context

    async def _ping(session: AsyncSession) -> Any:
        result = await session.execute(text("SELECT 1"))
        return result.scalar_one()

    return await with_service_context("connectivity-check", _ping, engine=engine) == 1


def register_database_check(
    checker: HealthChecker | None = None,
    engine: AsyncEngine | None = None,
    timeout: float = 5.0,
) -> HealthChecker:
    """Register check_database as the "database" readiness check."""
    checker = checker or get_health_checker()

    async def _database() -> bool:
        return await check_database(engine=engine)

    checker.register("database", _database, timeout=timeout)
    return checker


# ── Singleton registry ────────────────────────────────────────────────────────

_checker: HealthChecker | None = None


def get_health_checker() -> HealthChecker:
    global _checker
    if _checker is None:
        _checker = HealthChecker()
    return _checker


def _reset_health_checker() -> None:
    global _checker
    _checker = None
