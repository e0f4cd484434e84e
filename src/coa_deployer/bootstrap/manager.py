"""Deployment orchestration for the Kubernetes deployer.

KubernetesManager wires the components together in deployment order:
bootstrap a cluster client, synchronize the values document, run helm,
wait for workloads, then execute setup commands inside them.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from pathlib import Path

from ..config import DeployerConfig
from ..errors import ConfigError, WorkloadStartupTimeout
from ..shared.cancel import CancellationSignal
from ..shared.logging import get_logger
from ..shared.paths import KUBECONFIG_PATH
from .health import ReadinessResult, WorkloadReadinessPoller
from .helm import ChartDeployer, HelmInvoker
from .k8s import ClusterApi, ClusterClientBootstrapper, CredentialProvider
from .pod_exec import PodCommandExecutor
from .sync import DocumentStore, ManagedIdentity, ValuesSynchronizer
from .values import load_values, to_settings

logger = get_logger(__name__)

CROMWELL_WORKLOAD = "cromwell"
CROMWELL_TIMEOUT_SECONDS = 180.0


class KubernetesManager:
    """Run the Kubernetes side of a deployment."""

    def __init__(
        self,
        config: DeployerConfig,
        store: DocumentStore,
        credentials: CredentialProvider,
        cancel: CancellationSignal | None = None,
        kubeconfig_path: Path | None = None,
        line_sink: Callable[[str], None] | None = None,
    ):
        """Initialize manager.

        Args:
            config: Deployer configuration.
            store: Remote store holding the values document.
            credentials: Provisioning API client for cluster credentials.
            cancel: Cancellation signal shared by every long operation.
            kubeconfig_path: Where the admin kubeconfig is written.
            line_sink: Receives streamed helm and pod output in debug mode.
        """
        self.config = config
        self.cancel = cancel or CancellationSignal()
        self.kubeconfig_path = kubeconfig_path or KUBECONFIG_PATH
        self.line_sink = line_sink
        self.cluster: ClusterApi | None = None

        self.bootstrapper = ClusterClientBootstrapper(
            credentials,
            config.aks_cluster_name,
            kubeconfig_path=self.kubeconfig_path,
            cancel=self.cancel,
        )
        self.synchronizer = ValuesSynchronizer(
            store,
            Path(config.values_path),
            container=config.configuration_container_name,
            name=config.values_blob_name,
            cancel=self.cancel,
        )
        self.charts = ChartDeployer(
            HelmInvoker(config.helm_binary_path, config.debug_logging, line_sink),
            self.kubeconfig_path,
        )

    async def get_kubernetes_client(self, resource_group: str | None = None) -> ClusterApi:
        self.cluster = await self.bootstrapper.get_client(resource_group or self.config.resource_group_name)
        return self.cluster

    def _require_cluster(self) -> ClusterApi:
        if self.cluster is None:
            raise RuntimeError("get_kubernetes_client() must be awaited first")
        return self.cluster

    def poller(self) -> WorkloadReadinessPoller:
        return WorkloadReadinessPoller(
            self._require_cluster(),
            self.config.aks_coa_namespace,
            policy=self.config.workload_wait_policy,
            cancel=self.cancel,
        )

    def executor(self) -> PodCommandExecutor:
        return PodCommandExecutor(
            self._require_cluster(),
            self.config.aks_coa_namespace,
            self.poller(),
            policy=self.config.exec_retry_policy,
            debug_logging=self.config.debug_logging,
            line_sink=self.line_sink,
        )

    async def deploy_dependencies(self) -> None:
        await self.charts.deploy_dependencies()

    async def deploy_helm_chart(self) -> None:
        await self.charts.deploy_chart(
            Path(self.config.chart_path),
            self.config.aks_coa_namespace,
            Path(self.config.values_path),
        )

    async def update_helm_values(
        self,
        settings: dict[str, str],
        managed_identity: ManagedIdentity,
        resource_group: str | None = None,
    ) -> Path:
        """Render the packaged template and publish it as the first document."""
        template_path = Path(self.config.values_template_path)
        try:
            template_text = template_path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigError(
                f"Cannot read values template {template_path}: {exc}", ["values_template_path"]
            ) from exc
        template = load_values(template_text)
        return await self.synchronizer.publish(
            template,
            settings,
            resource_group=resource_group or self.config.resource_group_name,
            storage_account_name=self.config.storage_account_name,
            managed_identity=managed_identity,
            key_vault_url=self.config.key_vault_url or None,
            cross_subscription=self.config.cross_subscription_aks_deployment,
        )

    async def upgrade_values(self, settings: dict[str, str]) -> Path:
        return await self.synchronizer.refresh(settings)

    async def get_settings(self) -> dict[str, str]:
        return to_settings(await self.synchronizer.fetch())

    async def upgrade_deployment(self, settings: dict[str, str]) -> None:
        """Refresh the stored values, then upgrade the release against them."""
        await self.upgrade_values(settings)
        await self.deploy_helm_chart()

    async def wait_for_workload(self, workload: str, timeout_seconds: float | None = None) -> ReadinessResult:
        return await self.poller().wait_for_workload(workload, timeout_seconds)

    async def wait_for_cromwell(self) -> ReadinessResult:
        result = await self.wait_for_workload(CROMWELL_WORKLOAD, CROMWELL_TIMEOUT_SECONDS)
        if not result.ready:
            raise WorkloadStartupTimeout(CROMWELL_WORKLOAD, result.attempts)
        return result

    async def execute_commands_on_pod(
        self,
        workload: str,
        commands: Sequence[Sequence[str]],
        timeout_seconds: float | None = None,
        label_selector: str | None = None,
    ) -> int:
        return await self.executor().execute(
            workload, commands, timeout_seconds, label_selector=label_selector
        )
