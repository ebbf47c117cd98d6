"""Current-tenant lookup and per-operation tenant checks.

Reads ``/organization`` through the directory client. When Graph cannot be
reached (demo mode, bad credentials, network) a demo tenant is reported
instead of an error so tools keep answering.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

from .tenant_safety import TenantSafetyPolicy
from .validators import mask_identifier

logger = logging.getLogger(__name__)

DEMO_TENANT_ID = "demo-tenant-id"


class OrganizationReader(Protocol):
    async def get_organization(self) -> dict[str, Any] | None: ...


@dataclass(frozen=True)
class TenantInfo:
    id: str
    display_name: str
    tenant_type: str
    is_corporate: bool
    validation_time: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "displayName": self.display_name,
            "tenantType": self.tenant_type,
            "isCorporate": self.is_corporate,
            "validationTime": self.validation_time,
        }


@dataclass
class TenantValidationResult:
    is_valid: bool = False
    is_corporate: bool = False
    requires_confirmation: bool = False
    tenant_id: str = ""
    tenant_name: str = ""
    warning: str = ""
    security_messages: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "isCorporate": self.is_corporate,
            "requiresConfirmation": self.requires_confirmation,
            "tenantId": self.tenant_id,
            "tenantName": self.tenant_name,
            "warning": self.warning,
            "securityMessages": list(self.security_messages),
        }


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def demo_tenant_info() -> TenantInfo:
    return TenantInfo(
        id=DEMO_TENANT_ID,
        display_name="Demo Mode",
        tenant_type="Demo",
        is_corporate=False,
        validation_time=_now(),
    )


async def get_current_tenant_info(
    client: OrganizationReader | None, policy: TenantSafetyPolicy
) -> TenantInfo:
    if client is None:
        return demo_tenant_info()

    try:
        org = await client.get_organization()
    except Exception as e:
        logger.warning(
            f"Could not retrieve tenant information, operating in demo mode: {e}"
        )
        return demo_tenant_info()

    if not org:
        return demo_tenant_info()

    tenant_id = org.get("id") or "unknown"
    return TenantInfo(
        id=tenant_id,
        display_name=org.get("displayName") or "Unknown Organization",
        tenant_type=org.get("tenantType") or "Unknown",
        is_corporate=policy.is_corporate_tenant(tenant_id),
        validation_time=_now(),
    )


async def validate_tenant_for_operation(
    client: OrganizationReader | None,
    policy: TenantSafetyPolicy,
    operation_kind: str,
) -> TenantValidationResult:
    """Describe the risk of running ``operation_kind`` in the current tenant."""
    result = TenantValidationResult()
    info = await get_current_tenant_info(client, policy)

    if info.id == DEMO_TENANT_ID:
        result.is_valid = True
        result.tenant_id = info.id
        result.tenant_name = "Demo Mode (No Azure AD Connection)"
        result.security_messages.append("🧪 Demo Mode - No real tenant validation")
        if policy.is_high_risk_operation(operation_kind):
            result.security_messages.append(f"🚨 High-risk operation: {operation_kind}")
        return result

    result.is_valid = True
    result.tenant_id = info.id
    result.tenant_name = info.display_name
    result.is_corporate = info.is_corporate
    result.requires_confirmation = policy.requires_confirmation(info.id, operation_kind)

    if result.is_corporate:
        result.security_messages.append("⚠️  CORPORATE TENANT DETECTED")
        result.security_messages.append(
            f"Operating in corporate tenant: {info.display_name}"
        )
        result.warning = (
            "This operation will affect a CORPORATE production environment. "
            "Exercise extreme caution."
        )

    if result.requires_confirmation:
        result.security_messages.append("🔒 CONFIRMATION REQUIRED")
        result.security_messages.append(
            f"High-risk operation '{operation_kind}' requires explicit confirmation"
        )

    if policy.is_high_risk_operation(operation_kind):
        result.security_messages.append(f"🚨 High-risk operation: {operation_kind}")

    logger.info(
        f"Tenant validation completed for operation {operation_kind} in tenant "
        f"{mask_identifier(info.id)} ({info.display_name})",
        extra={"operation_kind": operation_kind},
    )
    return result
