"""Deployer configuration management.

Handles the deployer's own configuration stored in config.yaml (JSON files
parse too). Supports environment variable overrides and CLI flag precedence.
"""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError
from .shared.retry import RetryPolicy

DEFAULT_CONFIG_FILE = "config.yaml"
ENV_PREFIX = "COA_"


@dataclass
class DeployerConfig:
    """Deployer configuration."""

    subscription_id: str = ""
    resource_group_name: str = ""
    aks_cluster_name: str = ""
    aks_coa_namespace: str = "coa"
    storage_account_name: str = ""
    key_vault_url: str = ""
    helm_binary_path: str = "helm"
    debug_logging: bool = False
    cross_subscription_aks_deployment: bool = False
    chart_path: str = "./scripts/helm"
    values_template_path: str = "scripts/helm/values-template.yaml"
    values_path: str = "scripts/helm/values.yaml"
    configuration_container_name: str = "configuration"
    values_blob_name: str = "aksValues.yaml"
    workload_wait_attempts: int = 12
    workload_wait_delay_seconds: float = 15.0
    exec_retry_attempts: int = 8
    exec_retry_delay_seconds: float = 5.0

    # Track where each value came from
    _sources: dict[str, str] = field(default_factory=dict, repr=False)

    def get_source(self, key: str) -> str:
        """Get the source of a config value."""
        return self._sources.get(key, "default")

    @property
    def storage_account_url(self) -> str:
        return f"https://{self.storage_account_name}.blob.core.windows.net"

    @property
    def workload_wait_policy(self) -> RetryPolicy:
        return RetryPolicy(self.workload_wait_attempts, self.workload_wait_delay_seconds)

    @property
    def exec_retry_policy(self) -> RetryPolicy:
        return RetryPolicy(self.exec_retry_attempts, self.exec_retry_delay_seconds)

    def values(self) -> dict[str, Any]:
        """Public field values, in declaration order."""
        return {name: getattr(self, name) for name in config_fields()}


def config_fields() -> list[str]:
    return [f.name for f in dataclasses.fields(DeployerConfig) if not f.name.startswith("_")]


def _normalize(key: str) -> str:
    return key.replace("_", "").replace("-", "").lower()


_FIELD_BY_NORMALIZED = {_normalize(name): name for name in config_fields()}


def _coerce(name: str, value: Any) -> Any:
    default = getattr(DeployerConfig(), name)
    try:
        if isinstance(default, bool):
            if isinstance(value, bool):
                return value
            text = str(value).strip().lower()
            if text in ("true", "1", "yes", "on"):
                return True
            if text in ("false", "0", "no", "off", ""):
                return False
            raise ValueError(f"not a boolean: {value!r}")
        if isinstance(default, int):
            return int(value)
        if isinstance(default, float):
            return float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid value for {name}: {exc}", [name]) from exc
    return str(value)


def get_config_path() -> Path:
    """Get the default config file path (config.yaml in the working directory)."""
    return Path.cwd() / DEFAULT_CONFIG_FILE


def load_config(
    config_path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> DeployerConfig:
    """Load deployer configuration.

    Precedence (highest to lowest):
    1. Explicit overrides (CLI flags)
    2. Environment variables (COA_<FIELD>)
    3. Config file (config.yaml, or config_path)
    4. Defaults

    Keys are matched ignoring case and underscores, so the file may use
    either ``AksCoANamespace`` or ``aks_coa_namespace``.

    Raises:
        ConfigError: the file is unreadable or names unknown keys.
    """
    config = DeployerConfig()
    sources: dict[str, str] = {name: "default" for name in config_fields()}

    path = Path(config_path) if config_path else get_config_path()
    if path.exists():
        try:
            with open(path) as f:
                file_config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigError(f"Cannot read config file {path}: {exc}") from exc
        if not isinstance(file_config, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")

        invalid = [str(k) for k in file_config if _normalize(str(k)) not in _FIELD_BY_NORMALIZED]
        if invalid:
            raise ConfigError(f"Invalid argument(s): {', '.join(invalid)}", invalid)

        for key, value in file_config.items():
            name = _FIELD_BY_NORMALIZED[_normalize(str(key))]
            setattr(config, name, _coerce(name, value))
            sources[name] = "config file"
    elif config_path:
        raise ConfigError(f"Config file not found: {path}")

    for name in config_fields():
        env_var = f"{ENV_PREFIX}{name.upper()}"
        if os.environ.get(env_var):
            setattr(config, name, _coerce(name, os.environ[env_var]))
            sources[name] = "environment"

    if overrides:
        invalid = [k for k in overrides if _normalize(k) not in _FIELD_BY_NORMALIZED]
        if invalid:
            raise ConfigError(f"Invalid argument(s): {', '.join(invalid)}", invalid)
        for key, value in overrides.items():
            if value is None:
                continue
            name = _FIELD_BY_NORMALIZED[_normalize(key)]
            setattr(config, name, _coerce(name, value))
            sources[name] = "command line"

    config._sources = sources
    return config
