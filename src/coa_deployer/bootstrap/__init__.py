"""Bootstrap package for deploying Cromwell on Azure to Kubernetes.

This package provides the cluster side of a deployment:
1. Fetches cluster admin credentials and builds a kubernetes client
2. Renders and synchronizes the helm values document
3. Installs the dependency charts and the main chart
4. Waits for workloads to report ready
5. Runs setup commands inside workload pods
"""

from .health import ReadinessResult, ReadinessState, WorkloadReadinessPoller
from .helm import ChartDeployer, HelmInvoker
from .k8s import (
    ArmCredentialProvider,
    ClusterApi,
    ClusterClientBootstrapper,
    CredentialProvider,
    WorkloadState,
    is_channel_not_established,
)
from .manager import KubernetesManager
from .pod_exec import PodCommandExecutor
from .sync import BlobDocumentStore, DocumentStore, ManagedIdentity, ValuesSynchronizer
from .values import (
    SETTING_KEYS,
    SETTING_LOCATIONS,
    HelmValues,
    dump_values,
    load_values,
    render_access_lists,
    to_document,
    to_settings,
)

__all__ = [
    # Values mapping
    "HelmValues",
    "SETTING_KEYS",
    "SETTING_LOCATIONS",
    "load_values",
    "dump_values",
    "to_document",
    "to_settings",
    "render_access_lists",
    # Helm
    "HelmInvoker",
    "ChartDeployer",
    # Synchronization
    "DocumentStore",
    "BlobDocumentStore",
    "ManagedIdentity",
    "ValuesSynchronizer",
    # Readiness
    "ReadinessState",
    "ReadinessResult",
    "WorkloadReadinessPoller",
    # Pod exec
    "PodCommandExecutor",
    # Kubernetes
    "ClusterApi",
    "WorkloadState",
    "CredentialProvider",
    "ArmCredentialProvider",
    "ClusterClientBootstrapper",
    "is_channel_not_established",
    # Orchestration
    "KubernetesManager",
]
