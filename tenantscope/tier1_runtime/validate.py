"""
tenantscope.tier1_runtime.validate
───────────────────────────────────
Context validation via Pydantic v2. Pure and synchronous: runs before any
connection is touched and raises tenantscope errors (not raw Pydantic
errors) naming the field that failed, never the rejected value.
"""
from __future__ import annotations

from typing import Annotated, Any, Type

from pydantic import BaseModel, ConfigDict, StringConstraints
from pydantic import ValidationError as PydanticValidationError

from tenantscope.tier0_core.errors import (
    ContextRequired,
    InvalidIdentifierFormat,
    InvalidRole,
    MissingAuditReason,
    ValidationError,
)
from tenantscope.tier0_core.ids import UUID_PATTERN
from tenantscope.tier1_runtime.context import (
    DatabaseContext,
    Role,
    ServiceContext,
    TenantContext,
)

Identifier = Annotated[str, StringConstraints(pattern=UUID_PATTERN)]
AuditReason = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class _TenantContextSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    org_id: Identifier
    user_id: Identifier
    role: Role


class _ServiceContextSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    reason: AuditReason


def _field_errors(model: Type[BaseModel], data: Any) -> dict[str, str]:
    """Validate *data* against *model*; return {field: message}, empty if valid."""
    try:
        model.model_validate(data)
    except PydanticValidationError as exc:
        return {
            ".".join(str(loc) for loc in err["loc"]): err["msg"]
            for err in exc.errors()
        }
    return {}


def validate_context(ctx: DatabaseContext | None) -> DatabaseContext:
    """
    Return *ctx* unchanged, or raise:

    - ContextRequired          when ctx is None
    - InvalidIdentifierFormat  when org_id / user_id is not a hyphenated UUID
                               (org_id is reported first when both fail)
    - InvalidRole              when role is outside Role
    - MissingAuditReason       when a ServiceContext has an empty reason
    - ValidationError          when ctx is not a known descriptor type
    """
    if ctx is None:
        raise ContextRequired()

    if isinstance(ctx, TenantContext):
        errors = _field_errors(_TenantContextSchema, ctx)
        for field in ("org_id", "user_id"):
            if field in errors:
                raise InvalidIdentifierFormat(field, fields=errors)
        if "role" in errors:
            raise InvalidRole(fields=errors)
        return ctx

    if isinstance(ctx, ServiceContext):
        errors = _field_errors(_ServiceContextSchema, ctx)
        if errors:
            raise MissingAuditReason(fields=errors)
        return ctx

    raise ValidationError(
        code="unsupported_context",
        user_message="Unsupported database context.",
        fields={"context": f"expected TenantContext or ServiceContext, got {type(ctx).__name__}"},
    )


__all__ = ["validate_context"]
