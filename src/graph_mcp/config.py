"""Configuration lookup for Graph MCP Server.

Settings are addressed as ``Section:Key`` (for example ``AzureAd:TenantId``)
and resolved through an ordered chain of sources:

1. Hierarchical environment variable: ``AzureAd__TenantId``
2. Flat environment variable: ``AZURE_AD_TENANTID``
3. Structured JSON settings file: ``{"AzureAd": {"TenantId": ...}}``

The first non-empty value wins. The chain is a plain list, so additional
sources can be appended without touching any caller.
"""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Protocol, Sequence

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Default settings file, resolved relative to the working directory
DEFAULT_CONFIG_FILE = "appsettings.json"
CONFIG_FILE_ENV = "GRAPH_MCP_CONFIG_FILE"

TRUE_VALUES = frozenset({"true", "yes", "1", "on"})

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def parse_bool(value: str | None) -> bool:
    """Return True for ``true``, ``yes``, ``1`` or ``on`` (any case)."""
    if value is None:
        return False
    return value.strip().lower() in TRUE_VALUES


def flat_env_prefix(section: str) -> str:
    """``AzureAd`` -> ``AZURE_AD``."""
    return _CAMEL_BOUNDARY.sub("_", section).upper()


class ConfigSource(Protocol):
    name: str

    def get(self, section: str, key: str) -> Any: ...


class HierarchicalEnvSource:
    """Environment variables named ``Section__Key``."""

    name = "env:hierarchical"

    def __init__(self, environ: Mapping[str, str] | None = None) -> None:
        self._environ = os.environ if environ is None else environ

    def get(self, section: str, key: str) -> str | None:
        return self._environ.get(f"{section}__{key}")


class FlatEnvSource:
    """Environment variables named ``SECTION_KEY`` (key upper-cased as-is)."""

    name = "env:flat"

    def __init__(self, environ: Mapping[str, str] | None = None) -> None:
        self._environ = os.environ if environ is None else environ

    def get(self, section: str, key: str) -> str | None:
        return self._environ.get(f"{flat_env_prefix(section)}_{key.upper()}")


class JsonConfigStore:
    """Structured settings loaded from a JSON document."""

    name = "config-store"

    def __init__(self, data: Mapping[str, Any] | None = None) -> None:
        self._data: Mapping[str, Any] = data or {}

    @classmethod
    def from_file(cls, path: str | Path) -> "JsonConfigStore":
        """Load a settings file. A missing file yields an empty store."""
        config_path = Path(path)
        try:
            content = config_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.debug(f"Settings file not found: {config_path}")
            return cls()

        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise ConfigurationError(
                f"Settings file {config_path} is not valid JSON: {e}"
            ) from e

        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Settings file {config_path} must contain a JSON object"
            )

        logger.info(f"Loaded settings file: {config_path}")
        return cls(data)

    def get(self, section: str, key: str) -> Any:
        section_data = self._data.get(section)
        if not isinstance(section_data, Mapping):
            return None
        return section_data.get(key)


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False


class ConfigLookup:
    """Walk the configured sources in order and return the first hit."""

    def __init__(self, sources: Sequence[ConfigSource]) -> None:
        self.sources: list[ConfigSource] = list(sources)

    def append_source(self, source: ConfigSource) -> None:
        self.sources.append(source)

    def _first(self, section: str, key: str) -> tuple[Any, str | None]:
        for source in self.sources:
            value = source.get(section, key)
            if not _is_empty(value):
                return value, source.name
        return None, None

    def get(self, section: str, key: str) -> str | None:
        value, source_name = self._first(section, key)
        if value is None:
            logger.debug(f"No value found for {section}:{key}")
            return None

        logger.debug(f"Using {source_name} for {section}:{key}")
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (list, tuple)):
            return ",".join(str(item) for item in value)
        return str(value)

    def get_bool(self, section: str, key: str) -> bool:
        return parse_bool(self.get(section, key))

    def get_int(self, section: str, key: str, default: int) -> int:
        raw = self.get(section, key)
        if raw is None:
            return default
        try:
            return int(raw.strip())
        except ValueError:
            logger.warning(f"Ignoring non-integer {section}:{key}={raw!r}")
            return default

    def get_float(self, section: str, key: str, default: float) -> float:
        raw = self.get(section, key)
        if raw is None:
            return default
        try:
            return float(raw.strip())
        except ValueError:
            logger.warning(f"Ignoring non-numeric {section}:{key}={raw!r}")
            return default

    def get_list(self, section: str, key: str) -> list[str]:
        """Lists come from JSON arrays or comma-separated env values."""
        value, _ = self._first(section, key)
        if value is None:
            return []
        if isinstance(value, (list, tuple)):
            items = [str(item) for item in value]
        else:
            items = str(value).split(",")
        return [item.strip() for item in items if item and str(item).strip()]


def build_config_lookup(
    config_file: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> ConfigLookup:
    """Build the default env -> env -> settings file chain."""
    env = os.environ if environ is None else environ
    path = config_file or env.get(CONFIG_FILE_ENV) or DEFAULT_CONFIG_FILE
    return ConfigLookup(
        [
            HierarchicalEnvSource(env),
            FlatEnvSource(env),
            JsonConfigStore.from_file(path),
        ]
    )


@dataclass(frozen=True)
class ValidationSettings:
    timeout_seconds: float = 10.0
    min_secret_length: int = 10
    validate_on_startup: bool = True

    @classmethod
    def from_lookup(cls, lookup: ConfigLookup) -> "ValidationSettings":
        defaults = cls()
        startup_raw = lookup.get("Validation", "ValidateOnStartup")
        return cls(
            timeout_seconds=lookup.get_float(
                "Validation", "TimeoutSeconds", defaults.timeout_seconds
            ),
            min_secret_length=lookup.get_int(
                "Validation", "MinSecretLength", defaults.min_secret_length
            ),
            validate_on_startup=(
                defaults.validate_on_startup
                if startup_raw is None
                else parse_bool(startup_raw)
            ),
        )


_default_lookup: ConfigLookup | None = None


def get_config_lookup() -> ConfigLookup:
    """Process-wide lookup, built lazily from the environment."""
    global _default_lookup
    if _default_lookup is None:
        _default_lookup = build_config_lookup()
    return _default_lookup


def set_config_lookup(lookup: ConfigLookup | None) -> None:
    global _default_lookup
    _default_lookup = lookup
