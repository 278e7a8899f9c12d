"""
tenantscope
───────────
Stable top-level exports. Import from here, not from sub-modules directly.
Every name exported here is part of the public API and subject to semver.
"""
from tenantscope.tier0_core.logging import get_logger
from tenantscope.tier0_core.errors import (
    TenantScopeError,
    ContextRequired,
    ValidationError,
    InvalidIdentifierFormat,
    InvalidRole,
    MissingAuditReason,
    ForbiddenError,
    TransactionScopeError,
    ConfigurationError,
    PoolTimeoutError,
    StorageError,
    configure_sentry,
)
from tenantscope.tier0_core.config import get_config, TenantScopeConfig
from tenantscope.tier0_core.data import dispose_engine

from tenantscope.tier1_runtime.context import (
    Role,
    TenantContext,
    ServiceContext,
    DatabaseContext,
)
from tenantscope.tier1_runtime.validate import validate_context

from tenantscope.tier2_reliability.health import (
    HealthChecker,
    get_health_checker,
    check_database,
    register_database_check,
)

from tenantscope.tier3_platform.multi_tenancy import (
    tenant_session,
    with_tenant_context,
    with_service_context,
)

__version__ = "0.1.0"
__all__ = [
    # logging
    "get_logger",
    # errors
    "TenantScopeError", "ContextRequired", "ValidationError",
    "InvalidIdentifierFormat", "InvalidRole", "MissingAuditReason",
    "ForbiddenError", "TransactionScopeError", "ConfigurationError",
    "PoolTimeoutError", "StorageError", "configure_sentry",
    # config
    "get_config", "TenantScopeConfig",
    # pool lifecycle
    "dispose_engine",
    # context
    "Role", "TenantContext", "ServiceContext", "DatabaseContext",
    "validate_context",
    # health
    "HealthChecker", "get_health_checker", "check_database", "register_database_check",
    # scoped execution
    "tenant_session", "with_tenant_context", "with_service_context",
]
