"""Integration tests for the deployment flow.

Wires KubernetesManager to a blob store served by an httpx mock transport,
a scripted cluster and a stand-in helm executable that records its
arguments.
"""

from __future__ import annotations

import json
import stat
import sys
from unittest.mock import AsyncMock

import httpx
import pytest

from coa_deployer.bootstrap import BlobDocumentStore, KubernetesManager, dump_values
from coa_deployer.config import DeployerConfig
from tests.mocks import FakeCluster

pytestmark = pytest.mark.integration

FAKE_HELM = """\
#!{python}
import json, sys
with open({log!r}, "a") as f:
    f.write(json.dumps(sys.argv[1:]) + "\\n")
print("release " + " ".join(sys.argv[1:3]))
"""


class BlobServer:
    """Minimal blob endpoint: GET and PUT of whole documents."""

    def __init__(self):
        self.blobs: dict[str, bytes] = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.method == "PUT":
            self.blobs[request.url.path] = request.content
            return httpx.Response(201)
        if request.url.path in self.blobs:
            return httpx.Response(200, content=self.blobs[request.url.path])
        return httpx.Response(404)


@pytest.fixture
def helm_log(tmp_path):
    return tmp_path / "helm-calls.jsonl"


@pytest.fixture
def fake_helm(tmp_path, helm_log):
    path = tmp_path / "helm"
    path.write_text(FAKE_HELM.format(python=sys.executable, log=str(helm_log)))
    path.chmod(path.stat().st_mode | stat.S_IEXEC)
    return path


@pytest.fixture
def config(tmp_path, template, fake_helm):
    template_path = tmp_path / "values-template.yaml"
    template_path.write_text(dump_values(template))
    return DeployerConfig(
        resource_group_name="rg",
        aks_cluster_name="aks-coa",
        storage_account_name="acct1",
        helm_binary_path=str(fake_helm),
        debug_logging=True,
        chart_path=str(tmp_path / "chart"),
        values_template_path=str(template_path),
        values_path=str(tmp_path / "rendered" / "values.yaml"),
        workload_wait_delay_seconds=0.0,
        exec_retry_delay_seconds=0.0,
    )


@pytest.mark.asyncio
async def test_publish_upgrade_and_configure(tmp_path, config, full_settings, managed_identity, helm_log):
    """Test a first deployment followed by a version upgrade."""
    server = BlobServer()
    lines: list[str] = []
    cluster = FakeCluster(
        ready_replicas=lambda attempt: 1 if attempt >= 3 else 0,
        channel_failures=1,
        stdout=["tables created\n"],
    )

    async with httpx.AsyncClient(transport=httpx.MockTransport(server)) as client:
        store = BlobDocumentStore(config.storage_account_url, sas_token="sv=1", client=client)
        manager = KubernetesManager(
            config,
            store,
            credentials=AsyncMock(),
            kubeconfig_path=tmp_path / "kubeconfig.txt",
            line_sink=lines.append,
        )
        manager.bootstrapper.get_client = AsyncMock(return_value=cluster)

        await manager.get_kubernetes_client()
        await manager.update_helm_values(full_settings, managed_identity)
        await manager.deploy_helm_chart()
        result = await manager.wait_for_cromwell()
        attempts = await manager.execute_commands_on_pod("cromwell", [["/bin/sh", "-c", "init-db"]])

        await manager.upgrade_deployment({"CromwellOnAzureVersion": "2.1"})
        settings = await manager.get_settings()

    assert result.attempts == 3
    assert attempts == 2
    assert settings["CromwellOnAzureVersion"] == "2.1"
    assert settings["BatchAccountName"] == full_settings["BatchAccountName"]

    stored = server.blobs["/configuration/aksValues.yaml"].decode()
    assert stored == (tmp_path / "rendered" / "values.yaml").read_text()

    calls = [json.loads(line) for line in helm_log.read_text().splitlines()]
    assert len(calls) == 2
    assert all(call[:3] == ["upgrade", "--install", "cromwellonazure"] for call in calls)
    assert all(call[call.index("--values") + 1] == config.values_path for call in calls)
    assert "HELM: release upgrade --install" in lines
    assert "cromwell: tables created" in lines
