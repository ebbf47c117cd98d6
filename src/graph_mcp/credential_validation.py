"""Azure AD credential validation.

Checks a tenant/client/secret triple and classifies it into exactly one
``ValidationMode``. Checks run in a fixed order and the first failing one is
terminal:

1. VS Code input prompt tokens (``${input:...}``) leaked into server config
2. Missing or placeholder values (demo mode, not an error)
3. Tenant ID GUID format
4. Client ID GUID format
5. Client secret blank or implausibly short
6. Live sign-in plus a top-1 application query against Microsoft Graph
7. A top-1 user query to surface permission gaps

Format problems are answered locally without any network traffic. Every
outcome, including unexpected exceptions, is returned as a ValidationVerdict;
the validator never raises for a failed validation.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Protocol

import httpx

from .auth import (
    GRAPH_BASE,
    CredentialConfig,
    create_client_secret_credential,
    graph_authority,
)
from .config import ConfigLookup, ValidationSettings, get_config_lookup
from .directory import GraphDirectoryClient
from .exceptions import DirectoryAuthenticationError, DirectoryPermissionError
from .tenant_safety import PLACEHOLDER_SECRET, ZERO_GUID, is_placeholder_tenant
from .validators import is_valid_guid, mask_identifier

logger = logging.getLogger(__name__)

VSCODE_INPUT_TOKEN = "${input:"
GUID_EXAMPLE = "12345678-1234-1234-1234-123456789012"


class ValidationMode(str, Enum):
    DEMO = "Demo"
    PRODUCTION = "Production"
    INVALID = "Invalid"
    AUTHENTICATION_FAILED = "AuthenticationFailed"
    INSUFFICIENT_PERMISSIONS = "InsufficientPermissions"
    UNKNOWN_ERROR = "UnknownError"
    VSCODE_INPUT_PROMPT = "VSCodeInputPrompt"


@dataclass(frozen=True)
class ValidationItem:
    is_valid: bool
    message: str
    details: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"isValid": self.is_valid, "message": self.message, "details": self.details}


@dataclass(frozen=True)
class ValidationVerdict:
    """Outcome of one validation pass. Read-only once returned."""

    is_valid: bool
    mode: ValidationMode
    message: str
    details: tuple[str, ...] = ()
    suggestions: tuple[str, ...] = ()
    items: tuple[ValidationItem, ...] = ()

    @property
    def success_items(self) -> list[ValidationItem]:
        return [item for item in self.items if item.is_valid]

    @property
    def failed_items(self) -> list[ValidationItem]:
        return [item for item in self.items if not item.is_valid]

    def format_summary(self) -> str:
        lines = [f"✓ {item.message}" for item in self.success_items]
        lines.extend(f"✗ {item.message}" for item in self.failed_items)
        if self.suggestions:
            lines.append("")
            lines.append("Suggestions:")
            lines.extend(f"  • {suggestion}" for suggestion in self.suggestions)
        return "\n".join(lines)

    def to_status_payload(self) -> dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "mode": self.mode.value,
            "message": self.message,
            "summary": self.format_summary(),
            "details": list(self.details),
            "validationItems": [item.to_dict() for item in self.items],
            "suggestions": list(self.suggestions),
        }


@dataclass
class _VerdictBuilder:
    items: list[ValidationItem] = field(default_factory=list)
    details: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)

    def add_item(self, item: ValidationItem) -> ValidationItem:
        self.items.append(item)
        return item

    def build(self, mode: ValidationMode, message: str, is_valid: bool = False) -> ValidationVerdict:
        return ValidationVerdict(
            is_valid=is_valid,
            mode=mode,
            message=message,
            details=tuple(self.details),
            suggestions=tuple(self.suggestions),
            items=tuple(self.items),
        )


class DirectoryClient(Protocol):
    async def list_applications(self, top: int = 1) -> list[dict[str, Any]]: ...

    async def list_users(self, top: int = 1) -> list[dict[str, Any]]: ...


DirectoryClientFactory = Callable[[str, str, str, float], DirectoryClient]


def default_directory_client_factory(
    tenant_id: str,
    client_id: str,
    client_secret: str,
    timeout: float,
    base_url: str = GRAPH_BASE,
) -> DirectoryClient:
    """Client for ``base_url`` signing in against the matching cloud."""
    credential = create_client_secret_credential(
        tenant_id,
        client_id,
        client_secret,
        authority=graph_authority(base_url),
        connection_timeout=timeout,
        read_timeout=timeout,
    )
    return GraphDirectoryClient(credential, timeout=timeout, base_url=base_url)


# Identity provider error codes mapped to targeted remediation, checked in order
AUTH_ERROR_SUGGESTIONS: tuple[tuple[str, str], ...] = (
    (
        "AADSTS7000215",
        "Invalid client secret provided. Generate a new client secret in Azure Portal",
    ),
    (
        "AADSTS7000222",
        "The client secret has expired. Create a new secret under Certificates & secrets",
    ),
    (
        "AADSTS700016",
        "Application not found in tenant. Verify the Client ID is correct",
    ),
    (
        "AADSTS90002",
        "Tenant not found. Verify the Tenant ID is correct",
    ),
)

GENERIC_AUTH_SUGGESTIONS = (
    "Verify your Azure AD app registration settings",
    "Ensure the client secret has not expired",
    "Check that the app has required API permissions and admin consent",
)


def is_vscode_input_prompt_configuration(
    tenant_id: str | None, client_id: str | None, client_secret: str | None
) -> bool:
    return any(
        value is not None and VSCODE_INPUT_TOKEN in value
        for value in (tenant_id, client_id, client_secret)
    )


def are_credentials_configured(
    tenant_id: str | None, client_id: str | None, client_secret: str | None
) -> bool:
    """False when any value is missing or still a known placeholder."""
    if not tenant_id or not client_id or not client_secret:
        return False
    if is_placeholder_tenant(tenant_id):
        return False
    if client_id.strip().lower() == ZERO_GUID:
        return False
    return client_secret != PLACEHOLDER_SECRET


def validate_guid_format(value: str | None, field_name: str) -> ValidationItem:
    if value is None or not value.strip():
        return ValidationItem(False, f"{field_name} is missing or empty")
    if is_valid_guid(value):
        return ValidationItem(True, f"{field_name} format valid")
    return ValidationItem(
        False,
        f"{field_name} format invalid - must be a valid GUID",
        f"Provided value: {value}",
    )


def validate_client_secret(client_secret: str | None, min_length: int = 10) -> ValidationItem:
    """Blank secrets always fail; ``min_length`` of 0 disables the length check."""
    if client_secret is None or not client_secret.strip():
        return ValidationItem(False, "Client secret is missing or empty")
    if min_length > 0 and len(client_secret) < min_length:
        return ValidationItem(
            False,
            "Client secret appears to be too short "
            f"(should be at least {min_length} characters)",
        )
    return ValidationItem(True, "Client secret format valid")


def _missing_fields(
    tenant_id: str | None, client_id: str | None, client_secret: str | None
) -> list[str]:
    fields = {"TenantId": tenant_id, "ClientId": client_id, "ClientSecret": client_secret}
    return [name for name, value in fields.items() if not value]


class CredentialValidator:
    """Validate Azure AD app credentials, optionally against live Graph."""

    def __init__(
        self,
        settings: ValidationSettings | None = None,
        client_factory: DirectoryClientFactory | None = None,
        lookup: ConfigLookup | None = None,
        graph_base_url: str | None = None,
    ) -> None:
        self.settings = settings or ValidationSettings()
        self.graph_base_url = (
            graph_base_url
            or (lookup.get("Graph", "BaseUrl") if lookup is not None else None)
            or GRAPH_BASE
        )
        self._client_factory = client_factory or functools.partial(
            default_directory_client_factory, base_url=self.graph_base_url
        )
        self._lookup = lookup

    async def validate_configured(self) -> ValidationVerdict:
        """Validate the triple currently resolved from configuration."""
        config = CredentialConfig.from_lookup(self._lookup or get_config_lookup())
        return await self.validate(config.tenant_id, config.client_id, config.client_secret)

    async def validate(
        self,
        tenant_id: str | None,
        client_id: str | None,
        client_secret: str | None,
    ) -> ValidationVerdict:
        start_time = time.time()
        verdict = await self._validate(tenant_id, client_id, client_secret)
        duration = (time.time() - start_time) * 1000

        log = logger.info if verdict.is_valid or verdict.mode is ValidationMode.DEMO else logger.warning
        log(
            f"Credential validation: {verdict.mode.value} - {verdict.message}",
            extra={
                "validation_mode": verdict.mode.value,
                "tenant_id": mask_identifier(tenant_id),
                "duration_ms": round(duration, 2),
            },
        )
        return verdict

    async def _validate(
        self,
        tenant_id: str | None,
        client_id: str | None,
        client_secret: str | None,
    ) -> ValidationVerdict:
        result = _VerdictBuilder()

        if is_vscode_input_prompt_configuration(tenant_id, client_id, client_secret):
            result.add_item(
                ValidationItem(False, "VS Code input prompt configuration detected")
            )
            result.details.append(
                "Configuration contains VS Code input prompt variables (${input:...})"
            )
            result.suggestions.extend(
                [
                    "This configuration is for VS Code MCP installation with user prompts",
                    "Use direct credential values in appsettings.json or environment "
                    "variables for server-side deployment",
                    "For VS Code, use the one-click installation buttons in the README",
                ]
            )
            return result.build(
                ValidationMode.VSCODE_INPUT_PROMPT,
                "VS Code input prompt configuration detected",
            )

        if not are_credentials_configured(tenant_id, client_id, client_secret):
            missing = _missing_fields(tenant_id, client_id, client_secret)
            if missing:
                detail = f"Missing Azure AD configuration: {', '.join(missing)}"
            else:
                detail = "Azure AD configuration contains placeholder values"
            result.add_item(ValidationItem(False, detail))
            result.details.append(detail)
            result.suggestions.extend(
                [
                    "Configure Azure AD credentials in appsettings.json or environment "
                    "variables (AzureAd__TenantId, AzureAd__ClientId, "
                    "AzureAd__ClientSecret) to access real Microsoft 365 data",
                    "See documentation for Azure AD app registration steps",
                ]
            )
            return result.build(
                ValidationMode.DEMO,
                "Azure AD credentials not configured - running in demo mode",
            )

        # Narrowed by are_credentials_configured
        assert tenant_id and client_id and client_secret
        result.add_item(ValidationItem(True, "Azure AD configuration present"))

        tenant_item = result.add_item(validate_guid_format(tenant_id, "Tenant ID"))
        if not tenant_item.is_valid:
            result.details.append(f"Tenant ID '{tenant_id}' is not a valid GUID format")
            result.suggestions.extend(
                [
                    f"Tenant ID must be in GUID format (e.g., {GUID_EXAMPLE})",
                    "Find your Tenant ID in Azure Portal > Azure Active Directory > Overview",
                ]
            )
            return result.build(ValidationMode.INVALID, "Invalid Azure AD Tenant ID format")

        client_item = result.add_item(validate_guid_format(client_id, "Client ID"))
        if not client_item.is_valid:
            result.details.append(f"Client ID '{client_id}' is not a valid GUID format")
            result.suggestions.extend(
                [
                    f"Client ID must be in GUID format (e.g., {GUID_EXAMPLE})",
                    "Find your Client ID in Azure Portal > Azure Active Directory > "
                    "App registrations > [Your App] > Overview",
                ]
            )
            return result.build(ValidationMode.INVALID, "Invalid Azure AD Client ID format")

        secret_item = result.add_item(
            validate_client_secret(client_secret, self.settings.min_secret_length)
        )
        if not secret_item.is_valid:
            result.details.append(secret_item.message)
            result.suggestions.extend(
                [
                    "Generate a new client secret in Azure Portal > Azure Active "
                    "Directory > App registrations > [Your App] > Certificates & secrets",
                    "Copy the secret Value, not the Secret ID",
                    "Ensure the client secret has not expired",
                ]
            )
            return result.build(ValidationMode.INVALID, "Invalid Azure AD Client Secret")

        return await self._probe(result, tenant_id, client_id, client_secret)

    async def _probe(
        self,
        result: _VerdictBuilder,
        tenant_id: str,
        client_id: str,
        client_secret: str,
    ) -> ValidationVerdict:
        timeout = self.settings.timeout_seconds
        logger.info(
            "Testing Azure AD authentication with Tenant ID: "
            f"{mask_identifier(tenant_id)}, Client ID: {mask_identifier(client_id)}"
        )

        try:
            client = self._client_factory(tenant_id, client_id, client_secret, timeout)
            await client.list_applications(top=1)
        except DirectoryAuthenticationError as e:
            result.add_item(
                ValidationItem(False, "Authentication failed: Invalid credentials", str(e))
            )
            result.details.append(f"Authentication error: {e}")
            result.suggestions.extend(_auth_failure_suggestions(str(e)))
            logger.error(f"Azure AD authentication failed: {e}")
            return result.build(
                ValidationMode.AUTHENTICATION_FAILED, "Azure AD authentication failed"
            )
        except DirectoryPermissionError as e:
            result.add_item(
                ValidationItem(False, "Insufficient Graph API permissions", str(e))
            )
            result.details.append(f"Graph API error: {e}")
            result.suggestions.extend(
                [
                    "Grant admin consent for required Microsoft Graph API permissions",
                    "Required permissions: Application.Read.All (for basic validation)",
                    "See documentation for complete list of required permissions",
                ]
            )
            logger.warning(
                f"Authentication succeeded but insufficient Graph API permissions: {e}"
            )
            return result.build(
                ValidationMode.INSUFFICIENT_PERMISSIONS,
                "Azure AD authentication succeeded but insufficient permissions",
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            return self._unknown_error(
                result, f"Request to Microsoft Graph timed out after {timeout:g}s", e
            )
        except Exception as e:
            return self._unknown_error(result, str(e) or type(e).__name__, e)

        result.add_item(
            ValidationItem(True, "Authentication successful", "Microsoft Graph API access confirmed")
        )
        result.details.append(f"Successfully authenticated with tenant: {tenant_id}")
        result.details.append("Microsoft Graph API access confirmed")

        await self._probe_permissions(client, result)

        return result.build(
            ValidationMode.PRODUCTION,
            "Azure AD credentials validated successfully",
            is_valid=True,
        )

    async def _probe_permissions(
        self, client: DirectoryClient, result: _VerdictBuilder
    ) -> None:
        """Secondary check. Failures add guidance but never flip validity."""
        try:
            await client.list_users(top=1)
        except DirectoryPermissionError:
            detail = "The application needs User.Read.All permission or admin consent is required"
            result.add_item(ValidationItem(False, "Insufficient Graph API permissions", detail))
            result.details.append(detail)
            result.suggestions.extend(
                [
                    "Grant additional Graph API permissions in Azure portal",
                    "Ensure admin consent is provided for application permissions",
                    "Common MCP server permissions needed: User.Read.All, "
                    "Group.Read.All, Mail.Send, Calendars.ReadWrite",
                ]
            )
            logger.warning("User directory probe denied; tool coverage will be limited")
        except Exception as e:
            result.add_item(
                ValidationItem(False, "Unable to test Graph API permissions", str(e))
            )
            result.suggestions.append(
                "Re-run validation later to confirm User.Read.All access"
            )
            logger.warning(f"User directory probe failed: {e}")
        else:
            result.add_item(
                ValidationItem(
                    True, "Graph API permissions verified", "Successfully accessed user directory"
                )
            )

    def _unknown_error(
        self, result: _VerdictBuilder, detail: str, error: Exception
    ) -> ValidationVerdict:
        result.add_item(ValidationItem(False, "Authentication test failed", detail))
        result.details.append(f"Error: {detail}")
        result.suggestions.extend(
            [
                "Check network connectivity to Microsoft Graph API",
                "Verify firewall settings allow HTTPS traffic to graph.microsoft.com "
                "and login.microsoftonline.com",
                "Review application logs for detailed error information",
            ]
        )
        logger.error(
            f"Unexpected error during credential validation: {detail}",
            exc_info=error,
        )
        return result.build(
            ValidationMode.UNKNOWN_ERROR, "Unexpected error during credential validation"
        )


def _auth_failure_suggestions(error_text: str) -> list[str]:
    for code, suggestion in AUTH_ERROR_SUGGESTIONS:
        if code in error_text:
            return [suggestion]
    return list(GENERIC_AUTH_SUGGESTIONS)
