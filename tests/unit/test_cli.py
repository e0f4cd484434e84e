"""Unit tests for the coa-deployer command line."""

import json
import logging
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from coa_deployer.bootstrap import ReadinessResult, ReadinessState
from coa_deployer.config import config_fields
from coa_deployer.errors import DocumentNotFoundError
from coa_deployer.main import cli


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    """Run every command in an empty directory with no COA_ variables set."""
    monkeypatch.chdir(tmp_path)
    for name in config_fields():
        monkeypatch.delenv(f"COA_{name.upper()}", raising=False)
    return tmp_path


@pytest.fixture
def runner():
    """Create CLI runner."""
    return CliRunner()


@pytest.fixture
def manager():
    manager = MagicMock()
    manager.get_kubernetes_client = AsyncMock()
    manager.get_settings = AsyncMock(return_value={"CromwellOnAzureVersion": "2.0", "AksCoANamespace": "coa"})
    manager.upgrade_deployment = AsyncMock()
    manager.wait_for_cromwell = AsyncMock()
    manager.deploy_dependencies = AsyncMock()
    manager.wait_for_workload = AsyncMock(
        return_value=ReadinessResult("tes", ReadinessState.READY, attempts=2, ready_replicas=1)
    )
    manager.execute_commands_on_pod = AsyncMock(return_value=1)
    with patch("coa_deployer.commands.deploy._build_manager", return_value=manager):
        yield manager


class TestConfigShow:
    """Tests for coa-deployer config show."""

    def test_show_defaults(self, runner):
        """Test default values are listed with their source."""
        result = runner.invoke(cli, ["config", "show"])

        assert result.exit_code == 0
        assert "Deployer Configuration" in result.output
        assert "aks_coa_namespace: coa  (default)" in result.output

    def test_show_json_with_overrides(self, runner, isolated):
        """Test file and command line sources are reported."""
        (isolated / "deployer.yaml").write_text("resource_group_name: rg\n")

        result = runner.invoke(cli, ["-c", "deployer.yaml", "--namespace", "coa-test", "config", "show", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["values"]["resource_group_name"] == "rg"
        assert data["sources"]["resource_group_name"] == "config file"
        assert data["values"]["aks_coa_namespace"] == "coa-test"
        assert data["sources"]["aks_coa_namespace"] == "command line"

    def test_verbose_enables_debug_logging(self, runner):
        """Test -v turns on output streaming."""
        result = runner.invoke(cli, ["-v", "config", "show", "--json"])

        assert result.exit_code == 0
        assert json.loads(result.output)["values"]["debug_logging"] is True

    def test_log_file(self, runner, isolated):
        """Test --log-file routes logging to the given file."""
        result = runner.invoke(cli, ["--log-file", "logs/deploy.log", "config", "show"])

        root = logging.getLogger()
        files = [h.baseFilename for h in root.handlers if isinstance(h, logging.FileHandler)]
        for handler in root.handlers[:]:
            handler.close()
            root.removeHandler(handler)

        assert result.exit_code == 0
        assert len(files) == 1
        assert files[0].endswith("logs/deploy.log")
        assert (isolated / "logs" / "deploy.log").exists()

    def test_invalid_keys(self, runner, isolated):
        """Test unknown config keys fail with a one-line error."""
        (isolated / "config.yaml").write_text("bogus: 1\n")

        result = runner.invoke(cli, ["config", "show"])

        assert result.exit_code == 1
        assert "Invalid argument(s): bogus" in result.output


class TestSettingsShow:
    """Tests for coa-deployer settings show."""

    def test_show(self, runner, manager):
        """Test stored settings are printed as KEY=VALUE lines."""
        result = runner.invoke(cli, ["settings", "show", "-g", "rg"])

        assert result.exit_code == 0
        assert "CromwellOnAzureVersion=2.0" in result.output
        manager.get_settings.assert_awaited_once()

    def test_show_json(self, runner, manager):
        """Test JSON output."""
        result = runner.invoke(cli, ["settings", "show", "--json"])

        assert result.exit_code == 0
        assert json.loads(result.output)["AksCoANamespace"] == "coa"

    def test_missing_document(self, runner, manager):
        """Test a missing stored document is reported without a traceback."""
        manager.get_settings.side_effect = DocumentNotFoundError("configuration", "aksValues.yaml")

        result = runner.invoke(cli, ["settings", "show"])

        assert result.exit_code == 1
        assert "✗ Configuration document 'configuration/aksValues.yaml' not found" in result.output


class TestUpgrade:
    """Tests for coa-deployer upgrade."""

    def test_upgrade(self, runner, manager):
        """Test updates are applied and cromwell is awaited."""
        result = runner.invoke(cli, ["upgrade", "--set", "CromwellOnAzureVersion=2.1", "--set", "MarthaUrl=a=b"])

        assert result.exit_code == 0
        assert "Deployment upgraded" in result.output
        manager.get_kubernetes_client.assert_awaited_once()
        manager.upgrade_deployment.assert_awaited_once_with({"CromwellOnAzureVersion": "2.1", "MarthaUrl": "a=b"})
        manager.wait_for_cromwell.assert_awaited_once()

    def test_malformed_assignment(self, runner, manager):
        """Test --set values without '=' are rejected."""
        result = runner.invoke(cli, ["upgrade", "--set", "CromwellOnAzureVersion"])

        assert result.exit_code == 2
        manager.upgrade_deployment.assert_not_called()


class TestDependenciesInstall:
    """Tests for coa-deployer dependencies install."""

    def test_install(self, runner, manager):
        """Test dependency charts are installed."""
        result = runner.invoke(cli, ["dependencies", "install"])

        assert result.exit_code == 0
        manager.deploy_dependencies.assert_awaited_once()


class TestWait:
    """Tests for coa-deployer wait."""

    def test_ready(self, runner, manager):
        """Test a ready workload reports success."""
        result = runner.invoke(cli, ["wait", "tes", "--timeout", "60"])

        assert result.exit_code == 0
        assert "tes ready (1 replicas, 2 attempts)" in result.output
        manager.wait_for_workload.assert_awaited_once_with("tes", 60.0)

    def test_timed_out(self, runner, manager):
        """Test an unready workload exits non-zero."""
        manager.wait_for_workload.return_value = ReadinessResult("tes", ReadinessState.TIMED_OUT, attempts=12)

        result = runner.invoke(cli, ["wait", "tes"])

        assert result.exit_code == 1
        assert "Timed out waiting for tes (12 attempts)" in result.output


class TestExec:
    """Tests for coa-deployer exec."""

    def test_exec(self, runner, manager):
        """Test the command vector is passed through unchanged."""
        result = runner.invoke(cli, ["exec", "cromwell", "-l", "app=cromwell", "--", "ls", "-la", "/cromwell-app"])

        assert result.exit_code == 0
        assert "Command completed (1 attempt)" in result.output
        manager.execute_commands_on_pod.assert_awaited_once_with(
            "cromwell", [["ls", "-la", "/cromwell-app"]], 180.0, label_selector="app=cromwell"
        )


class TestBuildManager:
    """Tests for manager construction from the command line."""

    def test_resource_group_required(self, runner):
        """Test cluster commands fail without a resource group."""
        result = runner.invoke(cli, ["settings", "show"])

        assert result.exit_code == 1
        assert "No resource group given" in result.output

    def test_tokens_and_resource_group(self, runner, monkeypatch):
        """Test the manager is built with the resolved credentials."""
        monkeypatch.setenv("COA_ARM_TOKEN", "arm-from-env")

        with patch("coa_deployer.commands.deploy.KubernetesManager") as manager_class:
            manager_class.return_value.get_settings = AsyncMock(return_value={})
            result = runner.invoke(cli, ["settings", "show", "-g", "rg", "--sas-token", "sv=1"])

        assert result.exit_code == 0
        config, store, credentials = manager_class.call_args.args
        assert config.resource_group_name == "rg"
        assert store.sas_token == "sv=1"
        assert credentials.token == "arm-from-env"
