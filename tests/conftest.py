from __future__ import annotations

from typing import Any, Callable

import pytest

from graph_mcp import config as config_module
from graph_mcp import context as context_module
from graph_mcp.config import (
    ConfigLookup,
    FlatEnvSource,
    HierarchicalEnvSource,
    JsonConfigStore,
)
from graph_mcp.exceptions import DirectoryAuthenticationError, DirectoryPermissionError


@pytest.fixture(autouse=True)
def isolated_configuration() -> Any:
    """Keep tests away from the real environment and settings file."""
    config_module.set_config_lookup(ConfigLookup([]))
    context_module.set_context(None)
    yield
    config_module.set_config_lookup(None)
    context_module.set_context(None)


@pytest.fixture
def make_lookup() -> Callable[..., ConfigLookup]:
    """Build a lookup from an env dict and an optional settings document."""

    def build(
        env: dict[str, str] | None = None,
        settings: dict[str, Any] | None = None,
    ) -> ConfigLookup:
        env = env or {}
        return ConfigLookup(
            [
                HierarchicalEnvSource(env),
                FlatEnvSource(env),
                JsonConfigStore(settings),
            ]
        )

    return build


class FakeDirectoryClient:
    """Stands in for GraphDirectoryClient; records calls, raises on demand."""

    def __init__(
        self,
        applications_error: BaseException | None = None,
        users_error: BaseException | None = None,
        organization: dict[str, Any] | None = None,
        organization_error: BaseException | None = None,
    ) -> None:
        self.applications_error = applications_error
        self.users_error = users_error
        self.organization = organization
        self.organization_error = organization_error
        self.calls: list[str] = []

    async def list_applications(self, top: int = 1) -> list[dict[str, Any]]:
        self.calls.append("applications")
        if self.applications_error is not None:
            raise self.applications_error
        return [{"id": "app"}]

    async def list_users(self, top: int = 1) -> list[dict[str, Any]]:
        self.calls.append("users")
        if self.users_error is not None:
            raise self.users_error
        return [{"id": "user"}]

    async def get_organization(self) -> dict[str, Any] | None:
        self.calls.append("organization")
        if self.organization_error is not None:
            raise self.organization_error
        return self.organization


@pytest.fixture
def fake_directory() -> Callable[..., FakeDirectoryClient]:
    return FakeDirectoryClient


@pytest.fixture
def recording_factory() -> Callable[[FakeDirectoryClient], Any]:
    """Wrap a fake client in a factory that records the arguments it got."""

    def build(client: FakeDirectoryClient) -> Any:
        def factory(
            tenant_id: str, client_id: str, client_secret: str, timeout: float
        ) -> FakeDirectoryClient:
            factory.invocations.append((tenant_id, client_id, client_secret, timeout))
            return client

        factory.invocations = []
        return factory

    return build


@pytest.fixture
def auth_failure() -> DirectoryAuthenticationError:
    return DirectoryAuthenticationError(
        "AADSTS7000215: Invalid client secret provided. Ensure the secret being sent "
        "in the request is the client secret value, not the client secret ID"
    )


@pytest.fixture
def permission_failure() -> DirectoryPermissionError:
    return DirectoryPermissionError(
        "Insufficient privileges to complete the operation.",
        error_code="Authorization_RequestDenied",
    )


@pytest.fixture
def install_context(make_lookup, recording_factory, fake_directory) -> Callable[..., Any]:
    """Install a ServerContext built from config, with a fake Graph client."""
    from graph_mcp.auth import resolve_authentication
    from graph_mcp.config import ValidationSettings
    from graph_mcp.context import ServerContext, set_context
    from graph_mcp.credential_validation import CredentialValidator
    from graph_mcp.tenant_safety import TenantSafetyPolicy

    def install(
        env: dict[str, str] | None = None,
        settings: dict[str, Any] | None = None,
        client: FakeDirectoryClient | None = None,
    ) -> ServerContext:
        lookup = make_lookup(env=env, settings=settings)
        client = client or fake_directory()
        validation_settings = ValidationSettings.from_lookup(lookup)
        context = ServerContext(
            lookup=lookup,
            authentication=resolve_authentication(lookup),
            policy=TenantSafetyPolicy.from_lookup(lookup),
            validation_settings=validation_settings,
            validator=CredentialValidator(
                validation_settings,
                client_factory=recording_factory(client),
                lookup=lookup,
            ),
        )
        set_context(context)
        return context

    return install
