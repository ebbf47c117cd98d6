from __future__ import annotations

import json
from pathlib import Path

import pytest

from graph_mcp.config import (
    ConfigLookup,
    JsonConfigStore,
    ValidationSettings,
    build_config_lookup,
    flat_env_prefix,
    parse_bool,
)
from graph_mcp.exceptions import ConfigurationError


@pytest.mark.parametrize("raw", ["true", "TRUE", "Yes", "1", "on", " On "])
def test_parse_bool_truthy_values(raw: str) -> None:
    assert parse_bool(raw) is True


@pytest.mark.parametrize("raw", [None, "", "false", "no", "0", "off", "enabled"])
def test_parse_bool_everything_else_is_false(raw: str | None) -> None:
    assert parse_bool(raw) is False


def test_flat_env_prefix_splits_camel_case() -> None:
    assert flat_env_prefix("AzureAd") == "AZURE_AD"
    assert flat_env_prefix("Security") == "SECURITY"


def test_hierarchical_env_wins_over_flat_and_file(make_lookup) -> None:
    lookup = make_lookup(
        env={"AzureAd__TenantId": "from-hier", "AZURE_AD_TENANTID": "from-flat"},
        settings={"AzureAd": {"TenantId": "from-file"}},
    )
    assert lookup.get("AzureAd", "TenantId") == "from-hier"


def test_flat_env_wins_over_file(make_lookup) -> None:
    lookup = make_lookup(
        env={"AZURE_AD_TENANTID": "from-flat"},
        settings={"AzureAd": {"TenantId": "from-file"}},
    )
    assert lookup.get("AzureAd", "TenantId") == "from-flat"


def test_empty_env_value_falls_through(make_lookup) -> None:
    lookup = make_lookup(
        env={"AzureAd__ClientId": ""},
        settings={"AzureAd": {"ClientId": "from-file"}},
    )
    assert lookup.get("AzureAd", "ClientId") == "from-file"


def test_missing_key_returns_none(make_lookup) -> None:
    assert make_lookup().get("AzureAd", "ClientSecret") is None


def test_json_booleans_become_strings(make_lookup) -> None:
    lookup = make_lookup(settings={"AzureAd": {"UseAzureCli": True}})
    assert lookup.get("AzureAd", "UseAzureCli") == "true"
    assert lookup.get_bool("AzureAd", "UseAzureCli") is True


def test_get_list_from_json_array_and_env(make_lookup) -> None:
    from_file = make_lookup(
        settings={"Security": {"CorporateTenantIds": ["a", " b ", ""]}}
    )
    from_env = make_lookup(env={"Security__CorporateTenantIds": "a, b,,"})

    assert from_file.get_list("Security", "CorporateTenantIds") == ["a", "b"]
    assert from_env.get_list("Security", "CorporateTenantIds") == ["a", "b"]


def test_numeric_getters_ignore_garbage(make_lookup) -> None:
    lookup = make_lookup(
        env={"Validation__TimeoutSeconds": "soon", "Validation__MinSecretLength": "x"}
    )
    assert lookup.get_float("Validation", "TimeoutSeconds", 10.0) == 10.0
    assert lookup.get_int("Validation", "MinSecretLength", 10) == 10


def test_append_source_is_consulted_last(make_lookup) -> None:
    lookup = make_lookup()
    lookup.append_source(JsonConfigStore({"Graph": {"BaseUrl": "https://graph.microsoft.us/v1.0"}}))
    assert lookup.get("Graph", "BaseUrl") == "https://graph.microsoft.us/v1.0"


def test_json_store_missing_file_is_empty(tmp_path: Path) -> None:
    store = JsonConfigStore.from_file(tmp_path / "absent.json")
    assert store.get("AzureAd", "TenantId") is None


def test_json_store_rejects_invalid_json(tmp_path: Path) -> None:
    path = tmp_path / "appsettings.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        JsonConfigStore.from_file(path)


def test_json_store_rejects_non_object(tmp_path: Path) -> None:
    path = tmp_path / "appsettings.json"
    path.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        JsonConfigStore.from_file(path)


def test_build_config_lookup_uses_env_named_file(tmp_path: Path) -> None:
    path = tmp_path / "custom.json"
    path.write_text(
        json.dumps({"AzureAd": {"TenantId": "from-custom-file"}}), encoding="utf-8"
    )
    lookup = build_config_lookup(environ={"GRAPH_MCP_CONFIG_FILE": str(path)})
    assert lookup.get("AzureAd", "TenantId") == "from-custom-file"


def test_build_config_lookup_explicit_file_wins(tmp_path: Path) -> None:
    explicit = tmp_path / "explicit.json"
    explicit.write_text(json.dumps({"AzureAd": {"ClientId": "explicit"}}), encoding="utf-8")
    lookup = build_config_lookup(
        config_file=explicit,
        environ={"GRAPH_MCP_CONFIG_FILE": str(tmp_path / "other.json")},
    )
    assert lookup.get("AzureAd", "ClientId") == "explicit"


def test_validation_settings_defaults() -> None:
    settings = ValidationSettings.from_lookup(ConfigLookup([]))
    assert settings == ValidationSettings(
        timeout_seconds=10.0, min_secret_length=10, validate_on_startup=True
    )


def test_validation_settings_from_configuration(make_lookup) -> None:
    settings = ValidationSettings.from_lookup(
        make_lookup(
            env={"Validation__ValidateOnStartup": "false"},
            settings={"Validation": {"TimeoutSeconds": 2.5, "MinSecretLength": 0}},
        )
    )
    assert settings.timeout_seconds == 2.5
    assert settings.min_secret_length == 0
    assert settings.validate_on_startup is False
