from __future__ import annotations

from typing import Any

import pytest
from azure.identity import AzureAuthorityHosts, ClientSecretCredential

from graph_mcp import auth
from graph_mcp.auth import (
    AuthenticationMethod,
    CredentialConfig,
    candidate_methods,
    determine_authentication_method,
    graph_authority,
    graph_scope,
    has_client_secret_config,
    resolve_authentication,
)

TENANT_ID = "3f2504e0-4f89-41d3-9a0c-0305e82c3301"
CLIENT_ID = "9a4c1b2e-6d7f-4e8a-b1c2-d3e4f5a6b7c8"
CLIENT_SECRET = "s3cr3t~value.with-enough_length"


class FakeCredential:
    def __init__(self, method: AuthenticationMethod, config: CredentialConfig) -> None:
        self.method = method
        self.config = config


@pytest.fixture(autouse=True)
def fake_ambient_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    """Replace the developer-tool credentials so nothing probes the machine."""
    for method in (
        AuthenticationMethod.AZURE_CLI,
        AuthenticationMethod.MANAGED_IDENTITY,
        AuthenticationMethod.VSCODE,
        AuthenticationMethod.DEFAULT_AZURE_CHAIN,
    ):
        monkeypatch.setitem(
            auth.CREDENTIAL_BUILDERS,
            method,
            lambda config, method=method: FakeCredential(method, config),
        )


def _secret_env(**overrides: str) -> dict[str, str]:
    env = {
        "AzureAd__TenantId": TENANT_ID,
        "AzureAd__ClientId": CLIENT_ID,
        "AzureAd__ClientSecret": CLIENT_SECRET,
    }
    env.update(overrides)
    return env


def test_client_secret_configuration_selected(make_lookup) -> None:
    resolved = resolve_authentication(make_lookup(env=_secret_env()))

    assert resolved.method is AuthenticationMethod.CLIENT_SECRET
    assert resolved.is_configured is True
    assert isinstance(resolved.credential, ClientSecretCredential)
    assert resolved.tenant_id == TENANT_ID


def test_client_secret_beats_azure_cli(make_lookup) -> None:
    lookup = make_lookup(env=_secret_env(AzureAd__UseAzureCli="true"))
    assert resolve_authentication(lookup).method is AuthenticationMethod.CLIENT_SECRET


def test_azure_cli_with_tenant(make_lookup) -> None:
    resolved = resolve_authentication(
        make_lookup(env={"AzureAd__TenantId": TENANT_ID, "AzureAd__UseAzureCli": "yes"})
    )

    assert resolved.method is AuthenticationMethod.AZURE_CLI
    assert resolved.is_configured is True
    assert resolved.credential.method is AuthenticationMethod.AZURE_CLI


def test_azure_cli_without_tenant_is_not_selected(make_lookup) -> None:
    resolved = resolve_authentication(make_lookup(env={"AzureAd__UseAzureCli": "true"}))
    assert resolved.method is AuthenticationMethod.DEMO


def test_managed_identity_does_not_need_tenant(make_lookup) -> None:
    resolved = resolve_authentication(
        make_lookup(settings={"AzureAd": {"UseManagedIdentity": True}})
    )
    assert resolved.method is AuthenticationMethod.MANAGED_IDENTITY


def test_vscode_requires_tenant(make_lookup) -> None:
    without_tenant = resolve_authentication(make_lookup(env={"AzureAd__UseVSCode": "1"}))
    with_tenant = resolve_authentication(
        make_lookup(env={"AzureAd__UseVSCode": "1", "AzureAd__TenantId": TENANT_ID})
    )

    assert without_tenant.method is AuthenticationMethod.DEMO
    assert with_tenant.method is AuthenticationMethod.VSCODE


def test_default_chain_is_lowest_explicit_option(make_lookup) -> None:
    lookup = make_lookup(
        env={"AzureAd__UseDefaultChain": "on", "AzureAd__UseManagedIdentity": "on"}
    )
    assert resolve_authentication(lookup).method is AuthenticationMethod.MANAGED_IDENTITY

    only_chain = make_lookup(env={"AzureAd__UseDefaultChain": "on"})
    assert resolve_authentication(only_chain).method is AuthenticationMethod.DEFAULT_AZURE_CHAIN


def test_flat_environment_names_are_honoured(make_lookup) -> None:
    lookup = make_lookup(
        env={
            "AZURE_AD_TENANTID": TENANT_ID,
            "AZURE_AD_CLIENTID": CLIENT_ID,
            "AZURE_AD_CLIENTSECRET": CLIENT_SECRET,
        }
    )
    assert resolve_authentication(lookup).method is AuthenticationMethod.CLIENT_SECRET


@pytest.mark.parametrize("value", ["false", "no", "0", "off", "maybe", ""])
def test_non_truthy_flags_are_ignored(make_lookup, value: str) -> None:
    lookup = make_lookup(env={"AzureAd__UseManagedIdentity": value})
    assert resolve_authentication(lookup).method is AuthenticationMethod.DEMO


def test_nothing_configured_resolves_to_demo(make_lookup) -> None:
    resolved = resolve_authentication(make_lookup())

    assert resolved.method is AuthenticationMethod.DEMO
    assert resolved.is_configured is False
    assert isinstance(resolved.credential, ClientSecretCredential)


@pytest.mark.parametrize(
    "tenant_id",
    [
        "00000000-0000-0000-0000-000000000000",
        "11111111-1111-1111-1111-111111111111",
        "FFFFFFFF-FFFF-FFFF-FFFF-FFFFFFFFFFFF",
        "12345678-1234-1234-1234-123456789012",
    ],
)
def test_placeholder_tenant_never_selects_client_secret(make_lookup, tenant_id: str) -> None:
    resolved = resolve_authentication(
        make_lookup(env=_secret_env(AzureAd__TenantId=tenant_id))
    )
    assert resolved.method is AuthenticationMethod.DEMO
    assert resolved.is_configured is False


def test_malformed_tenant_never_selects_client_secret(make_lookup) -> None:
    resolved = resolve_authentication(
        make_lookup(env=_secret_env(AzureAd__TenantId="contoso.onmicrosoft.com"))
    )
    assert resolved.method is AuthenticationMethod.DEMO


def test_placeholder_secret_or_client_is_demo() -> None:
    assert not has_client_secret_config(
        CredentialConfig(TENANT_ID, CLIENT_ID, "placeholder-secret")
    )
    assert not has_client_secret_config(
        CredentialConfig(TENANT_ID, "00000000-0000-0000-0000-000000000000", CLIENT_SECRET)
    )
    assert has_client_secret_config(CredentialConfig(TENANT_ID, CLIENT_ID, CLIENT_SECRET))


def test_candidate_methods_always_end_with_demo() -> None:
    config = CredentialConfig(
        tenant_id=TENANT_ID,
        client_id=CLIENT_ID,
        client_secret=CLIENT_SECRET,
        use_azure_cli=True,
        use_managed_identity=True,
        use_vscode=True,
        use_default_chain=True,
    )
    assert list(candidate_methods(config)) == [
        AuthenticationMethod.CLIENT_SECRET,
        AuthenticationMethod.AZURE_CLI,
        AuthenticationMethod.MANAGED_IDENTITY,
        AuthenticationMethod.VSCODE,
        AuthenticationMethod.DEFAULT_AZURE_CHAIN,
        AuthenticationMethod.DEMO,
    ]


def test_determination_is_deterministic() -> None:
    config = CredentialConfig(tenant_id=TENANT_ID, use_vscode=True, use_default_chain=True)
    results = {determine_authentication_method(config) for _ in range(5)}
    assert results == {AuthenticationMethod.VSCODE}


def test_builder_rejection_falls_through_to_next_method(
    make_lookup, monkeypatch: pytest.MonkeyPatch
) -> None:
    def reject(config: CredentialConfig) -> Any:
        raise ValueError("Invalid tenant id provided")

    monkeypatch.setitem(auth.CREDENTIAL_BUILDERS, AuthenticationMethod.AZURE_CLI, reject)
    lookup = make_lookup(
        env={
            "AzureAd__TenantId": "bad tenant!",
            "AzureAd__UseAzureCli": "true",
            "AzureAd__UseManagedIdentity": "true",
        }
    )

    assert resolve_authentication(lookup).method is AuthenticationMethod.MANAGED_IDENTITY


def test_resolution_reads_process_lookup_by_default(make_lookup) -> None:
    from graph_mcp.config import set_config_lookup

    set_config_lookup(make_lookup(env=_secret_env()))
    assert resolve_authentication().method is AuthenticationMethod.CLIENT_SECRET


def test_masked_config_never_contains_secret() -> None:
    masked = CredentialConfig(TENANT_ID, CLIENT_ID, CLIENT_SECRET).to_dict_masked()
    assert CLIENT_SECRET not in str(masked)
    assert masked["tenant_id"] == "3f2504e0...3301"


@pytest.mark.parametrize(
    ("base_url", "scope", "authority"),
    [
        (None, "https://graph.microsoft.com/.default", AzureAuthorityHosts.AZURE_PUBLIC_CLOUD),
        (
            "https://graph.microsoft.us/v1.0",
            "https://graph.microsoft.us/.default",
            AzureAuthorityHosts.AZURE_GOVERNMENT,
        ),
        (
            "https://dod-graph.microsoft.us/beta",
            "https://dod-graph.microsoft.us/.default",
            AzureAuthorityHosts.AZURE_GOVERNMENT,
        ),
        (
            "https://microsoftgraph.chinacloudapi.cn/v1.0",
            "https://microsoftgraph.chinacloudapi.cn/.default",
            AzureAuthorityHosts.AZURE_CHINA,
        ),
    ],
)
def test_scope_and_authority_follow_graph_cloud(
    base_url: str | None, scope: str, authority: str
) -> None:
    assert graph_scope(base_url) == scope
    assert graph_authority(base_url) == authority


def test_configured_base_url_selects_cloud_authority(make_lookup) -> None:
    config = CredentialConfig.from_lookup(
        make_lookup(env=_secret_env(Graph__BaseUrl="https://graph.microsoft.us/v1.0"))
    )

    assert config.graph_base_url == "https://graph.microsoft.us/v1.0"
    assert config.authority == AzureAuthorityHosts.AZURE_GOVERNMENT
    assert config.to_dict_masked()["graph_base_url"] == "https://graph.microsoft.us/v1.0"


def test_client_secret_credential_uses_cloud_authority(
    make_lookup, monkeypatch: pytest.MonkeyPatch
) -> None:
    seen: dict[str, Any] = {}

    def record(tenant_id, client_id, client_secret, **kwargs):
        seen.update(kwargs)
        return FakeCredential(AuthenticationMethod.CLIENT_SECRET, CredentialConfig())

    monkeypatch.setattr(auth, "ClientSecretCredential", record)
    resolved = resolve_authentication(
        make_lookup(
            env=_secret_env(Graph__BaseUrl="https://microsoftgraph.chinacloudapi.cn/v1.0")
        )
    )

    assert resolved.method is AuthenticationMethod.CLIENT_SECRET
    assert seen["authority"] == AzureAuthorityHosts.AZURE_CHINA
