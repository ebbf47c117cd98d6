from typing import Any

from ..context import get_context
from ..mcp_instance import mcp


# credentials_validate
@mcp.tool(
    name="credentials_validate",
    annotations={
        "title": "Validate Azure AD Credentials",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": True,
    },
    meta={"category": "credentials", "safety_level": "safe"},
)
async def credentials_validate(
    tenant_id: str | None = None,
    client_id: str | None = None,
    client_secret: str | None = None,
) -> dict[str, Any]:
    """📖 Check an Azure AD app registration before using it (read-only)

    With no arguments the server's configured credentials are checked.
    Otherwise the given tenant/client/secret triple is checked as supplied;
    omitted values count as missing. Format problems are reported without
    contacting Azure AD. Well-formed credentials are tried with a real sign-in
    and a one-item application query against Microsoft Graph.

    Args:
        tenant_id: Azure AD tenant (directory) ID
        client_id: Application (client) ID of the app registration
        client_secret: Client secret value (never echoed back or logged)

    Returns:
        Dictionary containing isValid, mode, message, summary, details,
        validationItems and suggestions. mode is one of Demo, Production,
        Invalid, AuthenticationFailed, InsufficientPermissions, UnknownError
        or VSCodeInputPrompt.
    """
    validator = get_context().validator

    if tenant_id is None and client_id is None and client_secret is None:
        verdict = await validator.validate_configured()
    else:
        verdict = await validator.validate(tenant_id, client_id, client_secret)

    return verdict.to_status_payload()
