# Importing the tool modules registers their tools with the shared instance
from ..mcp_instance import mcp

from .credentials import credentials_validate
from .server import server_get_auth_status, server_get_version
from .tenant import tenant_check_operation, tenant_get_info

__all__ = [
    "mcp",
    "credentials_validate",
    "server_get_auth_status",
    "server_get_version",
    "tenant_check_operation",
    "tenant_get_info",
]
