"""Process-wide server context.

Built once at startup from configuration and shared by the HTTP endpoints and
the MCP tools. Everything held here is read-only after construction.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .auth import ResolvedAuthentication, resolve_authentication
from .config import ConfigLookup, ValidationSettings, get_config_lookup
from .credential_validation import CredentialValidator, ValidationVerdict
from .directory import GRAPH_BASE, GraphDirectoryClient
from .exceptions import ConfigurationError
from .tenant_safety import TenantSafetyPolicy
from .validators import ValidationError, validate_graph_url


@dataclass(frozen=True)
class ServerContext:
    lookup: ConfigLookup
    authentication: ResolvedAuthentication
    policy: TenantSafetyPolicy
    validation_settings: ValidationSettings
    validator: CredentialValidator
    graph_base_url: str = GRAPH_BASE

    def directory_client(self) -> GraphDirectoryClient | None:
        """Graph client for the resolved credential; None in demo mode."""
        if not self.authentication.is_configured:
            return None
        return GraphDirectoryClient(
            self.authentication.credential,
            timeout=self.validation_settings.timeout_seconds,
            base_url=self.graph_base_url,
        )

    async def validate(self) -> ValidationVerdict:
        return await self.validator.validate_configured()

    def status_payload(self, verdict: ValidationVerdict) -> dict[str, Any]:
        payload = verdict.to_status_payload()
        payload["authenticationMethod"] = self.authentication.method.value
        payload["isConfigured"] = self.authentication.is_configured
        return payload


def build_context(lookup: ConfigLookup | None = None) -> ServerContext:
    """Build the context from configuration.

    Raises ConfigurationError when ``Graph:BaseUrl`` is not an approved
    Microsoft Graph service root.
    """
    lookup = lookup or get_config_lookup()
    try:
        graph_base_url = validate_graph_url(
            lookup.get("Graph", "BaseUrl") or GRAPH_BASE, "Graph:BaseUrl"
        )
    except ValidationError as e:
        raise ConfigurationError(str(e)) from e

    settings = ValidationSettings.from_lookup(lookup)
    return ServerContext(
        lookup=lookup,
        authentication=resolve_authentication(lookup),
        policy=TenantSafetyPolicy.from_lookup(lookup),
        validation_settings=settings,
        validator=CredentialValidator(
            settings, lookup=lookup, graph_base_url=graph_base_url
        ),
        graph_base_url=graph_base_url,
    )


_context: ServerContext | None = None


def get_context() -> ServerContext:
    global _context
    if _context is None:
        _context = build_context()
    return _context


def set_context(context: ServerContext | None) -> None:
    global _context
    _context = context
