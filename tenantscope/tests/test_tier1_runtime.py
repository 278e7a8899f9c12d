"""Tests for tier1_runtime modules."""
from __future__ import annotations

import dataclasses

import pytest

from tenantscope.tier0_core.errors import (
    ContextRequired,
    InvalidIdentifierFormat,
    InvalidRole,
    MissingAuditReason,
    ValidationError,
)
from tenantscope.tier1_runtime.context import (
    Role,
    ServiceContext,
    TenantContext,
    context_kind,
)
from tenantscope.tier1_runtime.validate import validate_context

ORG = "11111111-1111-1111-1111-111111111111"
USER = "22222222-2222-2222-2222-222222222222"


# ── context ────────────────────────────────────────────────────────────────

class TestContext:
    def test_tenant_context_is_immutable(self):
        ctx = TenantContext(org_id=ORG, user_id=USER, role=Role.MEMBER)
        with pytest.raises(dataclasses.FrozenInstanceError):
            ctx.org_id = "33333333-3333-3333-3333-333333333333"  # type: ignore[misc]

    def test_service_context_always_bypasses(self):
        assert ServiceContext(reason="migration").bypass_rls is True

    def test_context_kind(self):
        assert context_kind(TenantContext(ORG, USER, Role.OWNER)) == "tenant"
        assert context_kind(ServiceContext("job")) == "service"

    def test_context_kind_rejects_unknown(self):
        with pytest.raises(TypeError):
            context_kind("tenant")  # type: ignore[arg-type]

    def test_role_values(self):
        assert {r.value for r in Role} == {"OWNER", "MEMBER"}


# ── validate ───────────────────────────────────────────────────────────────

class TestValidateContext:
    def test_valid_tenant_context_returned_unchanged(self):
        ctx = TenantContext(org_id=ORG, user_id=USER, role="MEMBER")
        assert validate_context(ctx) is ctx

    def test_valid_service_context_returned_unchanged(self):
        ctx = ServiceContext(reason="nightly usage aggregation")
        assert validate_context(ctx) is ctx

    def test_none_requires_context(self):
        with pytest.raises(ContextRequired):
            validate_context(None)

    def test_org_id_reported_first(self):
        ctx = TenantContext(org_id="bad", user_id="also-bad", role="OWNER")
        with pytest.raises(InvalidIdentifierFormat) as exc_info:
            validate_context(ctx)
        assert exc_info.value.field == "org_id"
        assert set(exc_info.value.fields) == {"org_id", "user_id"}

    def test_user_id_format(self):
        with pytest.raises(InvalidIdentifierFormat) as exc_info:
            validate_context(TenantContext(org_id=ORG, user_id="u_123", role="OWNER"))
        assert exc_info.value.field == "user_id"

    def test_rejected_value_not_echoed(self):
        payload = "x' OR '1'='1"
        with pytest.raises(InvalidIdentifierFormat) as exc_info:
            validate_context(TenantContext(org_id=payload, user_id=USER, role="OWNER"))
        assert payload not in str(exc_info.value)

    def test_non_string_identifier(self):
        with pytest.raises(InvalidIdentifierFormat):
            validate_context(TenantContext(org_id=12345, user_id=USER, role="OWNER"))  # type: ignore[arg-type]

    @pytest.mark.parametrize("role", ["ADMIN", "Owner", "SUPER_ADMIN"])
    def test_role_outside_enum(self, role):
        with pytest.raises(InvalidRole):
            validate_context(TenantContext(org_id=ORG, user_id=USER, role=role))

    @pytest.mark.parametrize("reason", ["", " ", "\t\n", None])
    def test_service_reason_required(self, reason):
        with pytest.raises(MissingAuditReason):
            validate_context(ServiceContext(reason=reason))  # type: ignore[arg-type]

    def test_unsupported_type(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_context({"org_id": ORG})  # type: ignore[arg-type]
        assert exc_info.value.code == "unsupported_context"
