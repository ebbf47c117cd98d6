"""Shared parameter validation helpers for Graph MCP tools."""

from __future__ import annotations

import logging
import re
from typing import Any
from urllib.parse import urlparse

LOGGER = logging.getLogger("graph_mcp.validators")

GUID_PATTERN = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)

# Long token-like strings are treated as secrets when echoed back
_SECRET_LIKE = re.compile(r"^[A-Za-z0-9~._\-]{16,}$")

GRAPH_ALLOWED_HOSTS = {
    "graph.microsoft.com",
    "graph.microsoft.us",
    "dod-graph.microsoft.us",
    "microsoftgraph.chinacloudapi.cn",
}


class ValidationError(ValueError):
    """Raised when parameter validation fails."""


def is_valid_guid(value: str | None) -> bool:
    """Return True for 8-4-4-4-12 hex GUIDs (case-insensitive)."""
    if value is None or not value.strip():
        return False
    return GUID_PATTERN.fullmatch(value) is not None


def mask_identifier(value: str | None) -> str:
    """Shorten an identifier for logs: ``72f988bf...db47``."""
    if not value:
        return "not set"
    if len(value) <= 12:
        return value[:2] + "***"
    return f"{value[:8]}...{value[-4:]}"


def _mask_value(value: Any) -> str:
    """Return a sanitised representation of a potentially sensitive value."""
    if value is None:
        return "None"

    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return ""

        if is_valid_guid(stripped):
            return mask_identifier(stripped)

        if _SECRET_LIKE.match(stripped):
            return stripped[:3] + "***"

        if len(stripped) > 64:
            return f"{stripped[:32]}…{stripped[-8:]}"

        return stripped

    return str(value)


def format_validation_error(
    param: str,
    value: Any,
    reason: str,
    expected: str,
) -> str:
    """Format the canonical validation error message."""
    masked = _mask_value(value)
    return f"Invalid {param} '{masked}': {reason}. Expected: {expected}"


def _log_failure(param: str, reason: str, value: Any) -> None:
    """Log validation failure without exposing sensitive data."""
    LOGGER.warning(
        "Validation failed",
        extra={
            "param": param,
            "reason": reason,
            "value": _mask_value(value),
        },
    )


def validate_confirmation_flag(
    confirm: bool | None,
    operation: str,
    resource_type: str,
    param_name: str = "confirm",
) -> bool:
    """Ensure high-risk operations require explicit confirmation."""
    if confirm is not True:
        reason = f"{operation} on {resource_type} requires confirm=True to proceed"
        _log_failure(param_name, reason, confirm)
        raise ValidationError(
            format_validation_error(
                param_name,
                confirm,
                reason,
                "Explicit user confirmation",
            )
        )
    return True


def validate_tenant_id(tenant_id: Any, param_name: str = "tenant_id") -> str:
    """Ensure a tenant identifier is a GUID and normalise it to lower case."""
    if not isinstance(tenant_id, str):
        reason = "must be a string"
        _log_failure(param_name, reason, tenant_id)
        raise ValidationError(
            format_validation_error(param_name, tenant_id, reason, "GUID string")
        )

    trimmed = tenant_id.strip()
    if not is_valid_guid(trimmed):
        reason = "is not a valid GUID"
        _log_failure(param_name, reason, tenant_id)
        raise ValidationError(
            format_validation_error(
                param_name,
                tenant_id,
                reason,
                "8-4-4-4-12 hexadecimal digits",
            )
        )
    return trimmed.lower()


def validate_operation_kind(value: Any, param_name: str = "operation_kind") -> str:
    """Operation kinds are short kebab-case names such as ``app-create``."""
    if not isinstance(value, str) or not value.strip():
        reason = "must be a non-empty string"
        _log_failure(param_name, reason, value)
        raise ValidationError(
            format_validation_error(param_name, value, reason, "e.g. 'user-create'")
        )

    normalised = value.strip().lower()
    if not re.fullmatch(r"[a-z][a-z0-9]*(?:-[a-z0-9]+)*", normalised):
        reason = "contains unsupported characters"
        _log_failure(param_name, reason, value)
        raise ValidationError(
            format_validation_error(
                param_name, value, reason, "kebab-case name, e.g. 'user-create'"
            )
        )
    return normalised


def validate_graph_url(url: str, param_name: str = "url") -> str:
    """Validate a Microsoft Graph service root (HTTPS, approved host)."""
    if not isinstance(url, str) or not url.strip():
        reason = "cannot be empty"
        _log_failure(param_name, reason, url)
        raise ValidationError(
            format_validation_error(param_name, url, reason, "HTTPS URL")
        )

    trimmed = url.strip().rstrip("/")
    parsed = urlparse(trimmed)
    if parsed.scheme.lower() != "https":
        reason = "must use HTTPS"
        _log_failure(param_name, reason, url)
        raise ValidationError(
            format_validation_error(param_name, url, reason, "HTTPS URL")
        )

    host_lower = (parsed.hostname or "").lower()
    if host_lower not in GRAPH_ALLOWED_HOSTS:
        reason = "host is not an approved Microsoft Graph endpoint"
        _log_failure(param_name, reason, host_lower)
        raise ValidationError(
            format_validation_error(
                param_name,
                url,
                reason,
                f"Host within {sorted(GRAPH_ALLOWED_HOSTS)}",
            )
        )

    if parsed.username or parsed.password:
        reason = "embedded credentials are not allowed"
        _log_failure(param_name, reason, url)
        raise ValidationError(
            format_validation_error(param_name, url, reason, "URL without credentials")
        )

    return trimmed
