"""Tenant safety policy.

Two static rule sets guard every mutating Graph operation:

- Placeholder tenant GUIDs that must never be treated as a real tenant, even
  though they are syntactically valid (all-zero, all-one, all-f, sequential).
- Corporate / high-sensitivity tenants where high-risk operations need an
  explicit confirmation from the caller.

Everything here is pure: no I/O, safe to call on every request.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from .config import ConfigLookup
from .validators import (
    ValidationError,
    mask_identifier,
    validate_confirmation_flag,
    validate_tenant_id,
)

logger = logging.getLogger(__name__)

ZERO_GUID = "00000000-0000-0000-0000-000000000000"
PLACEHOLDER_SECRET = "placeholder-secret"  # noqa: S105 - sentinel, not a password

PLACEHOLDER_TENANT_IDS = frozenset(
    {
        ZERO_GUID,
        "11111111-1111-1111-1111-111111111111",
        "ffffffff-ffff-ffff-ffff-ffffffffffff",
        "12345678-1234-1234-1234-123456789012",
        "12345678-1234-1234-1234-123456789abc",
        "01234567-89ab-cdef-0123-456789abcdef",
    }
)

# Seeded corporate tenants; more can be added via Security:CorporateTenantIds
DEFAULT_CORPORATE_TENANT_IDS = frozenset(
    {
        "72f988bf-86f1-41af-91ab-2d7cd011db47",  # Microsoft corporate tenant
    }
)

HIGH_RISK_OPERATIONS = frozenset(
    {
        "app-create",
        "user-create",
        "group-create",
        "role-assign",
        "permission-grant",
    }
)


def _normalise(tenant_id: str | None) -> str:
    return (tenant_id or "").strip().lower()


def is_placeholder_tenant(tenant_id: str | None) -> bool:
    return _normalise(tenant_id) in PLACEHOLDER_TENANT_IDS


@dataclass(frozen=True)
class TenantSafetyRule:
    """Static configuration: corporate tenants and the operations they guard."""

    corporate_tenant_ids: frozenset[str] = DEFAULT_CORPORATE_TENANT_IDS
    high_risk_operations: frozenset[str] = HIGH_RISK_OPERATIONS
    require_confirmation_for_all_mutations: bool = False

    @classmethod
    def from_lookup(cls, lookup: ConfigLookup) -> "TenantSafetyRule":
        configured: set[str] = set()
        for tenant_id in lookup.get_list("Security", "CorporateTenantIds"):
            try:
                configured.add(
                    validate_tenant_id(tenant_id, "Security:CorporateTenantIds")
                )
            except ValidationError:
                logger.warning(
                    f"Ignoring malformed corporate tenant ID: {mask_identifier(tenant_id)}"
                )
        return cls(
            corporate_tenant_ids=DEFAULT_CORPORATE_TENANT_IDS | frozenset(configured),
            require_confirmation_for_all_mutations=lookup.get_bool(
                "Security", "RequireConfirmationForAllMutations"
            ),
        )


@dataclass(frozen=True)
class TenantSafetyPolicy:
    rule: TenantSafetyRule = field(default_factory=TenantSafetyRule)

    @classmethod
    def from_lookup(cls, lookup: ConfigLookup) -> "TenantSafetyPolicy":
        rule = TenantSafetyRule.from_lookup(lookup)
        logger.info(
            f"Tenant safety policy loaded: {len(rule.corporate_tenant_ids)} "
            f"corporate tenant(s), confirm all mutations="
            f"{rule.require_confirmation_for_all_mutations}"
        )
        return cls(rule)

    def is_placeholder_tenant(self, tenant_id: str | None) -> bool:
        return is_placeholder_tenant(tenant_id)

    def is_high_sensitivity_tenant(self, tenant_id: str | None) -> bool:
        normalised = _normalise(tenant_id)
        return bool(normalised) and normalised in self.rule.corporate_tenant_ids

    # Name used by callers that speak in terms of corporate tenants
    is_corporate_tenant = is_high_sensitivity_tenant

    def is_high_risk_operation(self, operation_kind: str | None) -> bool:
        return (operation_kind or "").strip().lower() in self.rule.high_risk_operations

    def requires_confirmation(
        self, tenant_id: str | None, operation_kind: str | None
    ) -> bool:
        if self.is_high_sensitivity_tenant(tenant_id) and self.is_high_risk_operation(
            operation_kind
        ):
            return True
        return self.rule.require_confirmation_for_all_mutations

    def enforce_confirmation(
        self,
        tenant_id: str | None,
        operation_kind: str,
        confirm: bool | None,
    ) -> bool:
        """Raise ValidationError unless confirmation is given where required.

        Returns True when the operation needed confirmation.
        """
        if not self.requires_confirmation(tenant_id, operation_kind):
            return False

        logger.warning(
            f"Operation '{operation_kind}' in tenant "
            f"{mask_identifier(tenant_id)} requires confirmation",
            extra={"operation_kind": operation_kind},
        )
        try:
            validate_confirmation_flag(confirm, operation_kind, "tenant")
        except ValidationError:
            logger.error(
                f"Blocked unconfirmed '{operation_kind}' operation",
                extra={"operation_kind": operation_kind},
            )
            raise
        return True
