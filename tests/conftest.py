"""Shared test fixtures for coa-deployer tests."""

from __future__ import annotations

import pytest

from coa_deployer.bootstrap import SETTING_KEYS, HelmValues, ManagedIdentity
from tests.mocks import InMemoryDocumentStore, RecordingSleep


@pytest.fixture
def full_settings() -> dict[str, str]:
    """A settings map with every known key populated."""
    settings = {key: f"{key.lower()}-value" for key in SETTING_KEYS}
    settings["CromwellOnAzureVersion"] = "2.0"
    settings["DefaultStorageAccountName"] = "acct1"
    settings["CrossSubscriptionAKSDeployment"] = "false"
    settings["AksCoANamespace"] = "coa"
    return settings


@pytest.fixture
def template() -> HelmValues:
    """A packaged-template style document with default containers."""
    return HelmValues(
        service={"tesPort": "80"},
        config={},
        images={},
        default_containers=["inputs", "outputs", "cromwell-executions"],
        persistence={},
        identity={},
        db={"mysqlDatabaseName": "cromwell_db"},
    )


@pytest.fixture
def managed_identity() -> ManagedIdentity:
    return ManagedIdentity(
        name="coa-identity",
        resource_id="/subscriptions/sub/resourceGroups/rg/providers/Microsoft.ManagedIdentity/userAssignedIdentities/coa-identity",
        client_id="11111111-2222-3333-4444-555555555555",
    )


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()
