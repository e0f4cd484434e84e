"""Unit tests for bootstrap values module."""

from __future__ import annotations

import pytest
import yaml

from coa_deployer.bootstrap import (
    SETTING_KEYS,
    SETTING_LOCATIONS,
    HelmValues,
    dump_values,
    load_values,
    render_access_lists,
    to_document,
    to_settings,
)
from coa_deployer.errors import MissingSettingError


class TestSettingLocations:
    """Tests for the static settings table."""

    def test_every_key_has_a_unique_location(self):
        """Test no two settings share a document location."""
        locations = list(SETTING_LOCATIONS.values())
        assert len(locations) == len(set(locations))

    def test_known_locations(self):
        """Test a few well-known bindings."""
        assert SETTING_LOCATIONS["CromwellOnAzureVersion"] == ("config", "cromwellOnAzureVersion")
        assert SETTING_LOCATIONS["DefaultStorageAccountName"] == ("persistence", "storageAccount")
        assert SETTING_LOCATIONS["TesImageName"] == ("images", "tes")
        assert SETTING_LOCATIONS["ManagedIdentityClientId"] == ("identity", "clientId")

    def test_key_count(self):
        """Test the full key set is present."""
        assert len(SETTING_KEYS) == 31


class TestToDocument:
    """Tests for to_document."""

    def test_round_trip_with_template(self, full_settings, template):
        """Test settings survive a trip through the document."""
        assert to_settings(to_document(full_settings, template)) == full_settings

    def test_round_trip_with_empty_template(self, full_settings):
        """Test sections are created when the template lacks them."""
        assert to_settings(to_document(full_settings, HelmValues())) == full_settings

    def test_round_trip_through_yaml(self, full_settings, template):
        """Test settings survive serialization, including numeric-looking strings."""
        full_settings["BatchImageVersion"] = "1.0"
        full_settings["UsePreemptibleVmsOnly"] = "true"
        text = dump_values(to_document(full_settings, template))
        assert to_settings(load_values(text)) == full_settings

    def test_missing_key_names_the_key(self, full_settings, template):
        """Test a missing key raises MissingSettingError naming it."""
        del full_settings["BatchAccountName"]
        with pytest.raises(MissingSettingError) as exc_info:
            to_document(full_settings, template)
        assert exc_info.value.key == "BatchAccountName"
        assert "BatchAccountName" in str(exc_info.value)

    def test_template_not_modified(self, full_settings, template):
        """Test the template is copied rather than mutated."""
        to_document(full_settings, template)
        assert template.config == {}
        assert template.persistence == {}

    def test_unknown_keys_not_written(self, full_settings, template):
        """Test keys outside the table are not added to any section."""
        full_settings["SomethingNew"] = "x"
        values = to_document(full_settings, template)
        assert "SomethingNew" not in values.config
        assert "SomethingNew" not in to_settings(values)

    def test_end_to_end_locations(self, full_settings):
        """Test settings land in the expected sections."""
        values = to_document(full_settings, HelmValues())
        assert values.config["cromwellOnAzureVersion"] == "2.0"
        assert values.persistence["storageAccount"] == "acct1"


class TestToSettings:
    """Tests for to_settings."""

    def test_missing_sections_read_empty(self):
        """Test an empty document yields empty strings for every key."""
        settings = to_settings(HelmValues())
        assert set(settings) == set(SETTING_KEYS)
        assert all(value == "" for value in settings.values())

    def test_non_string_values_are_stringified(self):
        """Test YAML booleans and numbers read back as strings."""
        values = load_values("config:\n  disableBatchScheduling: false\n  batchImageVersion: 2\n")
        settings = to_settings(values)
        assert settings["DisableBatchScheduling"] == "false"
        assert settings["BatchImageVersion"] == "2"


class TestAccessLists:
    """Tests for render_access_lists."""

    def test_cross_subscription_uses_key_vault(self, template):
        """Test the key vault list is populated and the MI list is absent."""
        render_access_lists(
            template,
            storage_account_name="acct1",
            resource_group="rg",
            key_vault_url="https://kv.vault.azure.net/",
            cross_subscription=True,
        )
        assert len(template.internal_containers_key_vault_auth) == 3
        assert not template.internal_containers_mi_auth
        record = template.internal_containers_key_vault_auth[0]
        assert record["accountName"] == "acct1"
        assert record["containerName"] == "inputs"
        assert record["keyVaultURL"] == "https://kv.vault.azure.net/"
        assert "keyVaultSecretName" in record

    def test_same_subscription_uses_managed_identity(self, template):
        """Test the MI list is populated and the key vault list is absent."""
        render_access_lists(
            template,
            storage_account_name="acct1",
            resource_group="rg",
            key_vault_url=None,
            cross_subscription=False,
        )
        assert len(template.internal_containers_mi_auth) == 3
        assert not template.internal_containers_key_vault_auth
        assert template.internal_containers_mi_auth[1] == {
            "accountName": "acct1",
            "containerName": "outputs",
            "resourceGroup": "rg",
        }

    def test_switching_clears_previous_list(self, template):
        """Test re-rendering with the other flag removes the earlier list."""
        kwargs = {"storage_account_name": "acct1", "resource_group": "rg", "key_vault_url": "kv"}
        render_access_lists(template, cross_subscription=False, **kwargs)
        render_access_lists(template, cross_subscription=True, **kwargs)
        assert template.internal_containers_mi_auth is None
        assert "internalContainersMIAuth" not in yaml.safe_load(dump_values(template))


class TestYamlCodec:
    """Tests for load_values and dump_values."""

    def test_document_keys(self, template):
        """Test camelCase document keys and omitted empty sections."""
        data = yaml.safe_load(dump_values(template))
        assert data["defaultContainers"] == ["inputs", "outputs", "cromwell-executions"]
        assert "internalContainersKeyVaultAuth" not in data
        assert "externalContainers" not in data

    def test_case_insensitive_sections(self):
        """Test capitalized section names bind to the same fields."""
        values = load_values("Config:\n  coaNamespace: coa\nImages:\n  tes: tes:1\n")
        assert values.config == {"coaNamespace": "coa"}
        assert values.images == {"tes": "tes:1"}

    def test_unknown_sections_preserved(self):
        """Test unrecognized top-level keys survive load and dump."""
        text = "config: {}\nnodeSelector:\n  agentpool: userpool\n"
        data = yaml.safe_load(dump_values(load_values(text)))
        assert data["nodeSelector"] == {"agentpool": "userpool"}

    def test_dump_is_deterministic(self, full_settings, template):
        """Test dumping the same document twice gives identical text."""
        values = to_document(full_settings, template)
        assert dump_values(values) == dump_values(load_values(dump_values(values)))

    def test_rejects_non_mapping(self):
        """Test a list document is rejected."""
        with pytest.raises(ValueError):
            load_values("- a\n- b\n")
