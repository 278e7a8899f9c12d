"""
tenantscope.tier0_core.errors
──────────────────────────────
Error taxonomy for the tenant-scoped data layer, with optional Sentry/OTel
error capture. Raising a TenantScopeError here automatically reports it if
an error backend is configured.

Three families:
- programmer errors: missing or malformed context (ContextRequired,
  ValidationError and its subclasses). Never retried.
- resource errors: pool exhaustion (PoolTimeoutError). Retriable.
- storage errors: anything the engine reports (StorageError), passed through
  with its diagnostic metadata attached.

Select backend via: TENANTSCOPE_ERROR_BACKEND=sentry|otel|none
"""
from __future__ import annotations

from typing import Any

from tenantscope.tier0_core.config import get_config


# ── Base error ────────────────────────────────────────────────────────────────

class TenantScopeError(Exception):
    """
    Base class for all tenantscope errors. Every error has:
    - code: stable machine-readable string (snake_case, or the engine's SQLSTATE)
    - user_message: safe to surface to callers
    - detail: internal context, never shown to end users
    - status_code: HTTP status a calling layer may map the error to
    - retryable: whether retrying the whole invocation can succeed
    """

    status_code: int = 500
    code: str = "internal_error"
    retryable: bool = False

    def __init__(
        self,
        code: str | None = None,
        user_message: str = "An unexpected error occurred.",
        detail: str | None = None,
        **metadata: Any,
    ) -> None:
        self.code = code or self.__class__.code
        self.user_message = user_message
        self.detail = detail or user_message
        self.metadata = metadata
        super().__init__(self.detail)
        _capture(self)

    def to_dict(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.user_message,
            }
        }


# ── Programmer errors ─────────────────────────────────────────────────────────

class ContextRequired(TenantScopeError):
    """A database operation was attempted without any context."""
    code = "context_required"

    def __init__(
        self,
        code: str | None = None,
        user_message: str = "Database context is required.",
        **metadata: Any,
    ) -> None:
        super().__init__(code, user_message, **metadata)


class ValidationError(TenantScopeError):
    """Malformed context descriptor. `fields` maps field name to problem."""
    status_code = 422
    code = "validation_error"

    def __init__(
        self,
        code: str | None = None,
        user_message: str = "Validation failed.",
        fields: dict | None = None,
        **metadata: Any,
    ) -> None:
        self.fields = fields or {}
        super().__init__(code, user_message, **metadata)

    def to_dict(self) -> dict:
        d = super().to_dict()
        if self.fields:
            d["error"]["fields"] = self.fields
        return d


class InvalidIdentifierFormat(ValidationError):
    """org_id or user_id is not a well-formed identifier."""
    code = "invalid_identifier_format"

    def __init__(self, field: str, fields: dict | None = None, **metadata: Any) -> None:
        self.field = field
        super().__init__(
            user_message=f"Invalid {field} format.",
            fields=fields or {field: "must be a hyphenated UUID"},
            **metadata,
        )


class InvalidRole(ValidationError):
    """Role is outside the closed role set."""
    code = "invalid_role"

    def __init__(self, fields: dict | None = None, **metadata: Any) -> None:
        super().__init__(
            user_message="Invalid role.",
            fields=fields or {"role": "must be one of OWNER, MEMBER"},
            **metadata,
        )


class MissingAuditReason(ValidationError):
    """A service context was requested without a justification."""
    code = "missing_audit_reason"

    def __init__(self, fields: dict | None = None, **metadata: Any) -> None:
        super().__init__(
            user_message="A non-empty audit reason is required for service context.",
            fields=fields or {"reason": "must be a non-empty string"},
            **metadata,
        )


class TransactionScopeError(TenantScopeError):
    """Work tried to end or replace the transaction its context is bound to."""
    code = "transaction_scope_violation"


class ForbiddenError(TenantScopeError):
    """The caller is not allowed to use this entry point in this process."""
    status_code = 403
    code = "forbidden"


class ConfigurationError(TenantScopeError):
    """Misconfiguration detected at startup."""
    status_code = 500
    code = "configuration_error"


# ── Resource errors ───────────────────────────────────────────────────────────

class PoolTimeoutError(TenantScopeError):
    """No pooled connection became available within the checkout timeout."""
    status_code = 503
    code = "pool_timeout"
    retryable = True

    def __init__(
        self,
        code: str | None = None,
        user_message: str = "The database is busy. Please try again later.",
        detail: str | None = None,
        **metadata: Any,
    ) -> None:
        super().__init__(code, user_message, detail, **metadata)


# ── Storage errors ────────────────────────────────────────────────────────────

# serialization_failure, deadlock_detected
_RETRYABLE_SQLSTATES = frozenset({"40001", "40P01"})


class StorageError(TenantScopeError):
    """
    Opaque passthrough of an engine failure. `code` carries the engine's
    SQLSTATE (or error name) when one is available; the original exception
    is kept as `__cause__`.
    """
    status_code = 500
    code = "storage_error"

    def __init__(
        self,
        code: str | None = None,
        user_message: str = "A database error occurred.",
        detail: str | None = None,
        constraint: str | None = None,
        table: str | None = None,
        column: str | None = None,
        **metadata: Any,
    ) -> None:
        self.constraint = constraint
        self.table = table
        self.column = column
        super().__init__(code, user_message, detail, **metadata)

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        return self.code in _RETRYABLE_SQLSTATES


# ── Error capture backend ─────────────────────────────────────────────────────

# Set by configure_sentry(); otherwise TENANTSCOPE_ERROR_BACKEND decides.
_backend_override: str | None = None


def _capture(error: TenantScopeError) -> None:
    """Send error to configured backend. Called automatically by TenantScopeError.__init__."""
    backend = (_backend_override or get_config().error_backend).lower()
    if backend == "none":
        return
    if backend == "sentry":
        _capture_sentry(error)
    elif backend == "otel":
        _capture_otel(error)


def _capture_sentry(error: TenantScopeError) -> None:
    try:
        import sentry_sdk
    except ImportError:
        return
    if error.status_code >= 500:
        sentry_sdk.capture_exception(error)
    else:
        sentry_sdk.capture_message(
            str(error),
            level="warning",
            extras={"code": error.code, **error.metadata},
        )


def _capture_otel(error: TenantScopeError) -> None:
    try:
        from opentelemetry import trace
    except ImportError:
        return
    span = trace.get_current_span()
    span.record_exception(error)
    span.set_status(trace.StatusCode.ERROR, str(error))


def configure_sentry(dsn: str, **kwargs: Any) -> None:
    """Initialize Sentry. Call once at application startup."""
    import sentry_sdk
    global _backend_override
    sentry_sdk.init(dsn=dsn, **kwargs)
    _backend_override = "sentry"


__all__ = [
    "TenantScopeError", "ContextRequired", "ValidationError",
    "InvalidIdentifierFormat", "InvalidRole", "MissingAuditReason",
    "ForbiddenError", "TransactionScopeError", "ConfigurationError", "PoolTimeoutError",
    "StorageError", "configure_sentry",
]
