"""Helm values document and its mapping to the flat deployer settings.

The chart consumes a nested values document; the deployer itself works with
a flat ``str -> str`` settings map. SETTING_LOCATIONS is the single table
binding each setting key to a (section, field) location in the document, and
both directions of the mapping are driven from it.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, fields
from typing import Any

import yaml

from ..errors import MissingSettingError
from ..shared.logging import get_logger

logger = get_logger(__name__)

SERVICE = "service"
CONFIG = "config"
IMAGES = "images"
PERSISTENCE = "persistence"
IDENTITY = "identity"
DB = "db"

# Setting key -> (document section, field name)
SETTING_LOCATIONS: dict[str, tuple[str, str]] = {
    "CromwellOnAzureVersion": (CONFIG, "cromwellOnAzureVersion"),
    "DefaultStorageAccountName": (PERSISTENCE, "storageAccount"),
    "AzureServicesAuthConnectionString": (CONFIG, "azureServicesAuthConnectionString"),
    "ApplicationInsightsAccountName": (CONFIG, "applicationInsightsAccountName"),
    "CosmosDbAccountName": (CONFIG, "cosmosDbAccountName"),
    "BatchAccountName": (CONFIG, "batchAccountName"),
    "BatchNodesSubnetId": (CONFIG, "batchNodesSubnetId"),
    "AksCoANamespace": (CONFIG, "coaNamespace"),
    "DisableBatchNodesPublicIpAddress": (CONFIG, "disableBatchNodesPublicIpAddress"),
    "DisableBatchScheduling": (CONFIG, "disableBatchScheduling"),
    "UsePreemptibleVmsOnly": (CONFIG, "usePreemptibleVmsOnly"),
    "BlobxferImageName": (CONFIG, "blobxferImageName"),
    "DockerInDockerImageName": (CONFIG, "dockerInDockerImageName"),
    "BatchImageOffer": (CONFIG, "batchImageOffer"),
    "BatchImagePublisher": (CONFIG, "batchImagePublisher"),
    "BatchImageSku": (CONFIG, "batchImageSku"),
    "BatchImageVersion": (CONFIG, "batchImageVersion"),
    "BatchNodeAgentSkuId": (CONFIG, "batchNodeAgentSkuId"),
    "MarthaUrl": (CONFIG, "marthaUrl"),
    "MarthaKeyVaultName": (CONFIG, "marthaKeyVaultName"),
    "MarthaSecretName": (CONFIG, "marthaSecretName"),
    "TesImageName": (IMAGES, "tes"),
    "TriggerServiceImageName": (IMAGES, "triggerservice"),
    "CromwellImageName": (IMAGES, "cromwell"),
    "CrossSubscriptionAKSDeployment": (CONFIG, "crossSubscriptionAKSDeployment"),
    "PostgreSqlServerName": (CONFIG, "postgreSqlServerName"),
    "PostgreSqlDatabaseName": (CONFIG, "postgreSqlDatabaseName"),
    "PostgreSqlUserLogin": (CONFIG, "postgreSqlUserLogin"),
    "PostgreSqlUserPassword": (CONFIG, "postgreSqlUserPassword"),
    "UsePostgreSqlSingleServer": (CONFIG, "usePostgreSqlSingleServer"),
    "ManagedIdentityClientId": (IDENTITY, "clientId"),
}

SETTING_KEYS: tuple[str, ...] = tuple(SETTING_LOCATIONS)

# Secret name holding the storage account key in the deployment key vault
STORAGE_ACCOUNT_KEY_SECRET_NAME = "CoAStorageAccountKey"


@dataclass
class HelmValues:
    """Typed view of the chart values document.

    Flat sections are ``str -> value`` maps; access lists are lists of
    per-container binding records. Exactly one of the two internal access
    lists is populated by :func:`render_access_lists`; the other stays None
    and is omitted from the serialized document. Top-level keys this class
    does not know about are kept in ``extra`` and written back unchanged.
    """

    service: dict[str, Any] | None = None
    config: dict[str, Any] | None = None
    images: dict[str, Any] | None = None
    default_containers: list[str] | None = None
    internal_containers_mi_auth: list[dict[str, str]] | None = None
    internal_containers_key_vault_auth: list[dict[str, str]] | None = None
    external_containers: list[dict[str, str]] | None = None
    external_sas_containers: list[dict[str, str]] | None = None
    persistence: dict[str, Any] | None = None
    identity: dict[str, Any] | None = None
    db: dict[str, Any] | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def section(self, name: str) -> dict[str, Any]:
        """Return a flat section, creating it when absent."""
        value = getattr(self, name)
        if value is None:
            value = {}
            setattr(self, name, value)
        return value


# Python attribute -> document key, in document order
_DOCUMENT_KEYS: dict[str, str] = {
    "service": "service",
    "config": "config",
    "images": "images",
    "default_containers": "defaultContainers",
    "internal_containers_mi_auth": "internalContainersMIAuth",
    "internal_containers_key_vault_auth": "internalContainersKeyVaultAuth",
    "external_containers": "externalContainers",
    "external_sas_containers": "externalSasContainers",
    "persistence": "persistence",
    "identity": "identity",
    "db": "db",
}
_ATTRIBUTES = {key.lower(): attr for attr, key in _DOCUMENT_KEYS.items()}


def load_values(text: str) -> HelmValues:
    """Parse a YAML values document.

    Document keys are matched case-insensitively, so ``Config`` and
    ``config`` bind to the same section.
    """
    data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError("Values document must be a mapping at the top level")

    values = HelmValues()
    for key, value in data.items():
        attr = _ATTRIBUTES.get(str(key).lower())
        if attr is None:
            values.extra[key] = value
        else:
            setattr(values, attr, value)
    return values


def dump_values(values: HelmValues) -> str:
    """Serialize a values document to YAML.

    Output is deterministic for a given document: sections are written in
    a fixed order and None sections are omitted.
    """
    data: dict[str, Any] = {}
    for f in fields(HelmValues):
        if f.name == "extra":
            continue
        value = getattr(values, f.name)
        if value is not None:
            data[_DOCUMENT_KEYS[f.name]] = value
    data.update(values.extra)
    return yaml.safe_dump(data, default_flow_style=False, sort_keys=False)


def _as_setting(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def to_document(settings: dict[str, str], template: HelmValues) -> HelmValues:
    """Apply a complete settings map to a copy of ``template``.

    Every key in SETTING_LOCATIONS must be present; the first missing key
    raises MissingSettingError. Keys outside the table are reported and not
    written. The template is not modified.
    """
    for key in SETTING_KEYS:
        if key not in settings:
            raise MissingSettingError(key)

    unknown = sorted(set(settings) - set(SETTING_LOCATIONS))
    if unknown:
        logger.warning("Ignoring settings with no values location", keys=unknown)

    values = copy.deepcopy(template)
    for key, (section, name) in SETTING_LOCATIONS.items():
        values.section(section)[name] = settings[key]
    return values


def to_settings(values: HelmValues) -> dict[str, str]:
    """Read every known setting back out of a values document.

    Absent sections or fields read as empty strings.
    """
    settings: dict[str, str] = {}
    for key, (section, name) in SETTING_LOCATIONS.items():
        settings[key] = _as_setting((getattr(values, section) or {}).get(name))
    return settings


def render_access_lists(
    values: HelmValues,
    *,
    storage_account_name: str,
    resource_group: str,
    key_vault_url: str | None,
    cross_subscription: bool,
) -> None:
    """Populate exactly one internal container access list.

    Cross-subscription deployments cannot use the managed identity against
    the storage account, so each default container is bound through the key
    vault secret instead.
    """
    containers = values.default_containers or []

    if cross_subscription:
        values.internal_containers_key_vault_auth = [
            {
                "accountName": storage_account_name,
                "containerName": container,
                "keyVaultURL": key_vault_url or "",
                "keyVaultSecretName": STORAGE_ACCOUNT_KEY_SECRET_NAME,
            }
            for container in containers
        ]
        values.internal_containers_mi_auth = None
    else:
        values.internal_containers_mi_auth = [
            {
                "accountName": storage_account_name,
                "containerName": container,
                "resourceGroup": resource_group,
            }
            for container in containers
        ]
        values.internal_containers_key_vault_auth = None
