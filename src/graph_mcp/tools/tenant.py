from typing import Any

from ..context import get_context
from ..mcp_instance import mcp
from ..tenant_info import get_current_tenant_info, validate_tenant_for_operation
from ..validators import validate_operation_kind


# tenant_get_info
@mcp.tool(
    name="tenant_get_info",
    annotations={
        "title": "Get Current Tenant",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": True,
    },
    meta={"category": "tenant", "safety_level": "safe"},
)
async def tenant_get_info() -> dict[str, Any]:
    """📖 Describe the Azure AD tenant the server is connected to (read-only)

    Falls back to a demo tenant ("demo-tenant-id") when no credentials are
    configured or Microsoft Graph cannot be reached.

    Returns:
        Dictionary containing id, displayName, tenantType, isCorporate and
        validationTime
    """
    context = get_context()
    info = await get_current_tenant_info(context.directory_client(), context.policy)
    return info.to_dict()


# tenant_check_operation
@mcp.tool(
    name="tenant_check_operation",
    annotations={
        "title": "Check Operation Against Tenant Policy",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": True,
    },
    meta={
        "category": "tenant",
        "safety_level": "moderate",
        "requires_confirmation": "conditional",
    },
)
async def tenant_check_operation(
    operation_kind: str, confirm: bool = False
) -> dict[str, Any]:
    """✏️ Check whether an operation may run in the current tenant

    High-risk operations (app-create, user-create, group-create, role-assign,
    permission-grant) in a corporate tenant need explicit confirmation, as
    does every operation when Security:RequireConfirmationForAllMutations is
    set. The check fails with a validation error when confirmation is
    required and confirm is not True.

    Args:
        operation_kind: Kebab-case operation name, e.g. "user-create"
        confirm: Must be True when the operation requires confirmation

    Returns:
        Dictionary containing isValid, isCorporate, requiresConfirmation,
        tenantId, tenantName, warning, securityMessages and confirmed
    """
    operation_kind = validate_operation_kind(operation_kind)
    context = get_context()

    result = await validate_tenant_for_operation(
        context.directory_client(), context.policy, operation_kind
    )
    confirmed = context.policy.enforce_confirmation(
        result.tenant_id, operation_kind, confirm
    )

    payload = result.to_dict()
    payload["requiresConfirmation"] = payload["requiresConfirmation"] or confirmed
    payload["confirmed"] = confirmed
    return payload
