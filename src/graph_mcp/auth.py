"""Authentication resolver.

Decides which Azure AD credential mechanism the server uses and builds the
matching azure-identity credential. Resolution reads local configuration only:
no network calls, no exceptions for missing or malformed optional values.

Precedence (first match wins):

1. ClientSecret      - tenant, client and secret configured, tenant a real GUID
2. AzureCLI          - UseAzureCli and a tenant
3. ManagedIdentity   - UseManagedIdentity
4. VSCodeCredential  - UseVSCode and a tenant
5. DefaultAzure      - UseDefaultChain
6. Demo              - placeholder credential that can never authenticate

The most explicit method comes first so a looser default can never shadow it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterator
from urllib.parse import urlparse

from azure.identity import (
    AzureAuthorityHosts,
    AzureCliCredential,
    ClientSecretCredential,
    DefaultAzureCredential,
    ManagedIdentityCredential,
    VisualStudioCodeCredential,
)

from .config import ConfigLookup, get_config_lookup, parse_bool
from .tenant_safety import PLACEHOLDER_SECRET, ZERO_GUID, is_placeholder_tenant
from .validators import is_valid_guid, mask_identifier

logger = logging.getLogger(__name__)

CONFIG_SECTION = "AzureAd"
GRAPH_BASE = "https://graph.microsoft.com/v1.0"
GRAPH_SCOPE = "https://graph.microsoft.com/.default"

# Sign-in authority for each national cloud's Graph host
GRAPH_AUTHORITIES = {
    "graph.microsoft.com": AzureAuthorityHosts.AZURE_PUBLIC_CLOUD,
    "graph.microsoft.us": AzureAuthorityHosts.AZURE_GOVERNMENT,
    "dod-graph.microsoft.us": AzureAuthorityHosts.AZURE_GOVERNMENT,
    "microsoftgraph.chinacloudapi.cn": AzureAuthorityHosts.AZURE_CHINA,
}


def _graph_host(base_url: str | None) -> str:
    return (urlparse(base_url or GRAPH_BASE).hostname or "").lower()


def graph_scope(base_url: str | None = None) -> str:
    """Token scope for the Graph service root: ``https://<host>/.default``."""
    host = _graph_host(base_url)
    if host not in GRAPH_AUTHORITIES:
        return GRAPH_SCOPE
    return f"https://{host}/.default"


def graph_authority(base_url: str | None = None) -> str:
    """Azure AD authority host matching the Graph cloud; public cloud otherwise."""
    return GRAPH_AUTHORITIES.get(
        _graph_host(base_url), AzureAuthorityHosts.AZURE_PUBLIC_CLOUD
    )


class AuthenticationMethod(str, Enum):
    CLIENT_SECRET = "ClientSecret"
    AZURE_CLI = "AzureCLI"
    MANAGED_IDENTITY = "ManagedIdentity"
    VSCODE = "VSCodeCredential"
    DEFAULT_AZURE_CHAIN = "DefaultAzure"
    DEMO = "Demo"

    @property
    def is_configured(self) -> bool:
        return self is not AuthenticationMethod.DEMO


@dataclass(frozen=True)
class CredentialConfig:
    """Snapshot of the AzureAd settings taken once per resolution."""

    tenant_id: str | None = None
    client_id: str | None = None
    client_secret: str | None = None
    use_azure_cli: bool = False
    use_managed_identity: bool = False
    use_vscode: bool = False
    use_default_chain: bool = False
    graph_base_url: str = GRAPH_BASE

    @property
    def authority(self) -> str:
        return graph_authority(self.graph_base_url)

    @classmethod
    def from_lookup(cls, lookup: ConfigLookup) -> "CredentialConfig":
        def text(key: str) -> str | None:
            return lookup.get(CONFIG_SECTION, key)

        def flag(key: str) -> bool:
            return parse_bool(lookup.get(CONFIG_SECTION, key))

        return cls(
            tenant_id=text("TenantId"),
            client_id=text("ClientId"),
            client_secret=text("ClientSecret"),
            use_azure_cli=flag("UseAzureCli"),
            use_managed_identity=flag("UseManagedIdentity"),
            use_vscode=flag("UseVSCode"),
            use_default_chain=flag("UseDefaultChain"),
            graph_base_url=lookup.get("Graph", "BaseUrl") or GRAPH_BASE,
        )

    def to_dict_masked(self) -> dict[str, Any]:
        """Dictionary safe for logging; the secret is never included."""
        return {
            "tenant_id": mask_identifier(self.tenant_id),
            "client_id": mask_identifier(self.client_id),
            "client_secret": "****" if self.client_secret else "not set",
            "use_azure_cli": self.use_azure_cli,
            "use_managed_identity": self.use_managed_identity,
            "use_vscode": self.use_vscode,
            "use_default_chain": self.use_default_chain,
            "graph_base_url": self.graph_base_url,
        }


@dataclass(frozen=True)
class ResolvedAuthentication:
    is_configured: bool
    method: AuthenticationMethod
    credential: Any
    tenant_id: str | None = None


def has_client_secret_config(config: CredentialConfig) -> bool:
    tenant_id = config.tenant_id
    client_id = config.client_id
    client_secret = config.client_secret
    if not (tenant_id and client_id and client_secret):
        return False
    if not is_valid_guid(tenant_id) or is_placeholder_tenant(tenant_id):
        return False
    if client_id.strip().lower() == ZERO_GUID:
        return False
    return client_secret != PLACEHOLDER_SECRET


def candidate_methods(config: CredentialConfig) -> Iterator[AuthenticationMethod]:
    """Yield every method the config qualifies for, in precedence order.

    Demo is always last.
    """
    if has_client_secret_config(config):
        yield AuthenticationMethod.CLIENT_SECRET

    logger.debug(
        f"Azure CLI config check: UseAzureCli={config.use_azure_cli}, "
        f"TenantId={'present' if config.tenant_id else 'missing'}"
    )
    if config.use_azure_cli and config.tenant_id:
        yield AuthenticationMethod.AZURE_CLI

    if config.use_managed_identity:
        yield AuthenticationMethod.MANAGED_IDENTITY

    if config.use_vscode and config.tenant_id:
        yield AuthenticationMethod.VSCODE

    if config.use_default_chain:
        yield AuthenticationMethod.DEFAULT_AZURE_CHAIN

    yield AuthenticationMethod.DEMO


def determine_authentication_method(config: CredentialConfig) -> AuthenticationMethod:
    """Pick exactly one method. Same config, same answer."""
    return next(candidate_methods(config))


def create_client_secret_credential(
    tenant_id: str,
    client_id: str,
    client_secret: str,
    authority: str = AzureAuthorityHosts.AZURE_PUBLIC_CLOUD,
    **kwargs: Any,
) -> ClientSecretCredential:
    return ClientSecretCredential(
        tenant_id,
        client_id,
        client_secret,
        authority=authority,
        **kwargs,
    )


def _build_client_secret(config: CredentialConfig) -> ClientSecretCredential:
    assert config.tenant_id and config.client_id and config.client_secret
    return create_client_secret_credential(
        config.tenant_id,
        config.client_id,
        config.client_secret,
        authority=config.authority,
    )


def _build_azure_cli(config: CredentialConfig) -> AzureCliCredential:
    if config.tenant_id:
        return AzureCliCredential(tenant_id=config.tenant_id)
    return AzureCliCredential()


def _build_managed_identity(config: CredentialConfig) -> ManagedIdentityCredential:
    # A configured client ID selects a user-assigned identity
    if config.client_id:
        return ManagedIdentityCredential(client_id=config.client_id)
    return ManagedIdentityCredential()


def _build_vscode(config: CredentialConfig) -> VisualStudioCodeCredential:
    if config.tenant_id:
        return VisualStudioCodeCredential(tenant_id=config.tenant_id)
    return VisualStudioCodeCredential()


def _build_default_chain(config: CredentialConfig) -> DefaultAzureCredential:
    options: dict[str, Any] = {
        "exclude_interactive_browser_credential": True,
        "authority": config.authority,
    }
    if config.tenant_id:
        options["visual_studio_code_tenant_id"] = config.tenant_id
    return DefaultAzureCredential(**options)


def create_demo_credential() -> ClientSecretCredential:
    """Placeholder credential: deterministically fails any live sign-in."""
    return ClientSecretCredential(ZERO_GUID, ZERO_GUID, PLACEHOLDER_SECRET)


def _build_demo(config: CredentialConfig) -> ClientSecretCredential:
    return create_demo_credential()


CREDENTIAL_BUILDERS: dict[AuthenticationMethod, Callable[[CredentialConfig], Any]] = {
    AuthenticationMethod.CLIENT_SECRET: _build_client_secret,
    AuthenticationMethod.AZURE_CLI: _build_azure_cli,
    AuthenticationMethod.MANAGED_IDENTITY: _build_managed_identity,
    AuthenticationMethod.VSCODE: _build_vscode,
    AuthenticationMethod.DEFAULT_AZURE_CHAIN: _build_default_chain,
    AuthenticationMethod.DEMO: _build_demo,
}


def create_credential(method: AuthenticationMethod, config: CredentialConfig) -> Any:
    return CREDENTIAL_BUILDERS[method](config)


def resolve_authentication(
    lookup: ConfigLookup | None = None,
) -> ResolvedAuthentication:
    """Resolve the credential source from configuration."""
    lookup = lookup or get_config_lookup()
    logger.info("Determining authentication method...")

    config = CredentialConfig.from_lookup(lookup)
    logger.debug(f"AzureAd settings: {config.to_dict_masked()}")

    for method in candidate_methods(config):
        try:
            credential = create_credential(method, config)
        except ValueError as e:
            # azure-identity rejects malformed tenant IDs at construction time
            logger.warning(
                f"Skipping {method.value} authentication: {e}",
                extra={"auth_method": method.value},
            )
            continue
        break
    else:  # pragma: no cover - Demo construction uses fixed valid values
        method = AuthenticationMethod.DEMO
        credential = create_demo_credential()

    if method is AuthenticationMethod.DEMO:
        logger.warning(
            "No valid authentication configuration found, using demo mode",
            extra={"auth_method": method.value},
        )
    else:
        logger.info(
            f"Using {method.value} authentication",
            extra={
                "auth_method": method.value,
                "tenant_id": mask_identifier(config.tenant_id),
            },
        )

    return ResolvedAuthentication(
        is_configured=method.is_configured,
        method=method,
        credential=credential,
        tenant_id=config.tenant_id,
    )
