"""Kubernetes client bootstrap and cluster API access.

This module fetches cluster admin credentials from the provisioning API,
turns them into a kubernetes client, and exposes the handful of cluster
calls the deployer makes: listing pods and deployments, and opening exec
channels into pods.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

import httpx
import yaml
from kubernetes import client, config
from kubernetes.client.exceptions import ApiException
from kubernetes.stream import stream
from websocket import WebSocketBadStatusException

from ..errors import ChannelNotEstablishedError, ClusterCredentialsError
from ..shared.auth import auth_headers
from ..shared.cancel import CancellationSignal
from ..shared.logging import get_logger
from ..shared.paths import KUBECONFIG_PATH

logger = get_logger(__name__)

ARM_ENDPOINT = "https://management.azure.com"
CONTAINER_SERVICE_API_VERSION = "2023-08-01"


@dataclass
class WorkloadState:
    """Readiness snapshot of one deployment."""

    name: str
    ready_replicas: int = 0


def is_channel_not_established(exc: BaseException) -> bool:
    """Tell whether an exec failure means the websocket was never negotiated.

    The kubernetes stream helper reports handshake failures as an
    ApiException with status 0 whose reason carries the websocket error.
    """
    if isinstance(exc, WebSocketBadStatusException):
        return True
    if isinstance(exc, ApiException) and exc.status == 0:
        reason = str(exc.reason or "")
        return "Handshake status" in reason or "WebSocketBadStatus" in reason
    return False


class ClusterApi:
    """Thin facade over the kubernetes CoreV1 and AppsV1 APIs.

    All methods block; callers on the event loop run them in a worker thread.
    """

    def __init__(self, api_client: client.ApiClient):
        self.api_client = api_client
        self.core_v1 = client.CoreV1Api(api_client)
        self.apps_v1 = client.AppsV1Api(api_client)

    def list_pod_names(self, namespace: str, label_selector: str | None = None) -> list[str]:
        kwargs: dict[str, Any] = {}
        if label_selector:
            kwargs["label_selector"] = label_selector
        pods = self.core_v1.list_namespaced_pod(namespace, **kwargs)
        return [pod.metadata.name for pod in pods.items]

    def list_workloads(self, namespace: str) -> list[WorkloadState]:
        deployments = self.apps_v1.list_namespaced_deployment(namespace)
        return [
            WorkloadState(
                name=d.metadata.name,
                ready_replicas=(d.status.ready_replicas if d.status else None) or 0,
            )
            for d in deployments.items
        ]

    def open_exec_channel(
        self,
        pod: str,
        namespace: str,
        container: str | None,
        command: list[str],
    ) -> Any:
        """Open an exec websocket running ``command`` in the pod.

        Returns:
            A kubernetes WSClient with stdout and stderr attached.

        Raises:
            ChannelNotEstablishedError: the websocket handshake failed.
        """
        kwargs: dict[str, Any] = {
            "command": command,
            "stderr": True,
            "stdin": False,
            "stdout": True,
            "tty": False,
            "_preload_content": False,
        }
        if container:
            kwargs["container"] = container
        try:
            return stream(self.core_v1.connect_get_namespaced_pod_exec, pod, namespace, **kwargs)
        except (ApiException, WebSocketBadStatusException) as exc:
            if is_channel_not_established(exc):
                reason = exc.reason if isinstance(exc, ApiException) else str(exc)
                raise ChannelNotEstablishedError(pod, str(reason)) from exc
            raise


class CredentialProvider(Protocol):
    """Source of cluster admin kubeconfigs."""

    async def list_cluster_admin_credentials(self, resource_group: str, cluster_name: str) -> list[bytes]:
        """Return the admin kubeconfig documents for the cluster."""
        ...


class ArmCredentialProvider:
    """CredentialProvider calling the Azure Resource Manager REST API."""

    def __init__(
        self,
        subscription_id: str,
        token: str | None,
        client: httpx.AsyncClient | None = None,
        endpoint: str = ARM_ENDPOINT,
        timeout_seconds: float = 30.0,
    ):
        """Initialize provider.

        Args:
            subscription_id: Subscription holding the cluster.
            token: Bearer token for management.azure.com.
            client: Optional preconfigured httpx client (tests inject one).
            endpoint: Resource Manager endpoint.
            timeout_seconds: Request timeout for the default client.
        """
        self.subscription_id = subscription_id
        self.token = token
        self._client = client
        self.endpoint = endpoint.rstrip("/")
        self.timeout_seconds = timeout_seconds

    def _url(self, resource_group: str, cluster_name: str) -> str:
        return (
            f"{self.endpoint}/subscriptions/{self.subscription_id}"
            f"/resourceGroups/{resource_group}"
            f"/providers/Microsoft.ContainerService/managedClusters/{cluster_name}"
            f"/listClusterAdminCredential?api-version={CONTAINER_SERVICE_API_VERSION}"
        )

    async def list_cluster_admin_credentials(self, resource_group: str, cluster_name: str) -> list[bytes]:
        url = self._url(resource_group, cluster_name)
        headers = auth_headers(self.token)
        try:
            if self._client is not None:
                response = await self._client.post(url, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self.timeout_seconds) as http:
                    response = await http.post(url, headers=headers)
        except httpx.HTTPError as exc:
            raise ClusterCredentialsError(cluster_name, resource_group, str(exc) or type(exc).__name__) from exc

        if response.status_code != 200:
            raise ClusterCredentialsError(cluster_name, resource_group, f"HTTP {response.status_code}")

        try:
            kubeconfigs = response.json().get("kubeconfigs") or []
            return [base64.b64decode(item["value"]) for item in kubeconfigs]
        except (ValueError, KeyError, TypeError) as exc:
            raise ClusterCredentialsError(cluster_name, resource_group, f"malformed response: {exc}") from exc


class ClusterClientBootstrapper:
    """Build a ClusterApi from freshly fetched admin credentials.

    Failures are not retried.
    """

    def __init__(
        self,
        credentials: CredentialProvider,
        cluster_name: str,
        kubeconfig_path: Path | None = None,
        cancel: CancellationSignal | None = None,
    ):
        self.credentials = credentials
        self.cluster_name = cluster_name
        self.kubeconfig_path = kubeconfig_path or KUBECONFIG_PATH
        self.cancel = cancel or CancellationSignal()

    async def get_client(self, resource_group: str) -> ClusterApi:
        self.cancel.raise_if_cancelled("fetch cluster credentials")
        kubeconfigs = await self.credentials.list_cluster_admin_credentials(resource_group, self.cluster_name)
        if not kubeconfigs:
            raise ClusterCredentialsError(self.cluster_name, resource_group, "no kubeconfig returned")

        self.kubeconfig_path.parent.mkdir(parents=True, exist_ok=True)
        self.kubeconfig_path.write_text(kubeconfigs[0].decode("utf-8"))

        configuration = client.Configuration()
        try:
            config.load_kube_config(
                config_file=str(self.kubeconfig_path),
                client_configuration=configuration,
                persist_config=False,
            )
        except (config.ConfigException, yaml.YAMLError, OSError) as exc:
            raise ClusterCredentialsError(self.cluster_name, resource_group, str(exc)) from exc

        logger.info("Cluster client ready", cluster=self.cluster_name, kubeconfig=str(self.kubeconfig_path))
        return ClusterApi(client.ApiClient(configuration=configuration))
