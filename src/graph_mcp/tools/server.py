from importlib.metadata import version, PackageNotFoundError
from typing import Any

from ..context import get_context
from ..mcp_instance import mcp

PACKAGE_NAME = "graph-mcp"


# server_get_version
@mcp.tool(
    name="server_get_version",
    annotations={
        "title": "Get Server Version",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": False,
    },
    meta={"category": "server", "safety_level": "safe"},
)
def server_get_version() -> dict[str, str]:
    """📖 Get the version of the graph-mcp server (read-only, safe for unsupervised use)

    Returns:
        Dictionary containing:
        - package: The package name ("graph-mcp")
        - version: The installed version, or "dev" when running from a checkout
    """
    try:
        pkg_version = version(PACKAGE_NAME)
    except PackageNotFoundError:
        pkg_version = "dev"

    return {
        "package": PACKAGE_NAME,
        "version": pkg_version,
    }


# server_get_auth_status
@mcp.tool(
    name="server_get_auth_status",
    annotations={
        "title": "Get Authentication Status",
        "readOnlyHint": True,
        "destructiveHint": False,
        "idempotentHint": True,
        "openWorldHint": True,
    },
    meta={"category": "server", "safety_level": "safe"},
)
async def server_get_auth_status() -> dict[str, Any]:
    """📖 Report how the server authenticates and whether its credentials work

    Validates the configured Azure AD credentials against Microsoft Graph and
    reports the result together with the authentication method that was
    selected at startup. Demo mode is reported as a mode, not as an error.

    Returns:
        Dictionary containing isValid, mode, message, summary, details,
        validationItems, suggestions, authenticationMethod and isConfigured
    """
    context = get_context()
    verdict = await context.validate()
    return context.status_payload(verdict)
