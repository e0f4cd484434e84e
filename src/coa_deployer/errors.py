"""Error taxonomy for coa-deployer.

Every failure that aborts a deployment run derives from DeployerError and
carries enough context (setting key, exit code, workload name) to act on
without re-running in verbose mode.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass(eq=False)
class DeployerError(Exception):
    """Base error class for deployer failures."""

    message: str
    data: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return self.message


class ConfigError(DeployerError):
    """Deployer configuration could not be loaded."""

    def __init__(self, message: str, keys: list[str] | None = None):
        super().__init__(message, {"keys": list(keys or [])})

    @property
    def keys(self) -> list[str]:
        return self.data["keys"]


class MissingSettingError(DeployerError):
    """A settings overlay is missing one of the required keys."""

    def __init__(self, key: str):
        super().__init__(f"Required setting '{key}' is missing", {"key": key})

    @property
    def key(self) -> str:
        return self.data["key"]


class DocumentNotFoundError(DeployerError):
    """The remote store holds no configuration document yet."""

    def __init__(self, container: str, name: str):
        super().__init__(
            f"Configuration document '{container}/{name}' not found",
            {"container": container, "name": name},
        )


class SyncFailure(DeployerError):
    """Reading or writing the configuration document failed."""

    def __init__(self, container: str, name: str, reason: str):
        super().__init__(
            f"Failed to synchronize '{container}/{name}': {reason}",
            {"container": container, "name": name, "reason": reason},
        )


class InstallerFailure(DeployerError):
    """The chart installer exited with a non-zero status."""

    def __init__(self, command: str, exit_code: int, reason: str | None = None):
        message = f"Installer command '{command}' failed with exit code {exit_code}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, {"command": command, "exit_code": exit_code})

    @property
    def exit_code(self) -> int:
        return self.data["exit_code"]


class WorkloadStartupTimeout(DeployerError):
    """A workload did not report a ready replica within the attempt budget."""

    def __init__(self, workload: str, attempts: int):
        super().__init__(
            f"Timed out waiting for {workload} to start ({attempts} attempts)",
            {"workload": workload, "attempts": attempts},
        )

    @property
    def workload(self) -> str:
        return self.data["workload"]


class ChannelNotEstablishedError(DeployerError):
    """The exec websocket could not be negotiated with the pod.

    Pod exec can fail this way even after the workload reports ready, so the
    command executor retries it.
    """

    def __init__(self, pod: str, reason: str):
        super().__init__(
            f"Exec channel to pod '{pod}' was not established: {reason}",
            {"pod": pod, "reason": reason},
        )


class InstanceNotFoundError(DeployerError):
    """No pod matches the requested workload."""

    def __init__(self, workload: str, namespace: str):
        super().__init__(
            f"No pod found for workload '{workload}' in namespace '{namespace}'",
            {"workload": workload, "namespace": namespace},
        )


class AmbiguousInstanceError(DeployerError):
    """More than one pod matches the requested workload."""

    def __init__(self, workload: str, candidates: list[str]):
        super().__init__(
            f"Workload '{workload}' matches {len(candidates)} pods: {', '.join(candidates)}",
            {"workload": workload, "candidates": list(candidates)},
        )


class ClusterCredentialsError(DeployerError):
    """Cluster admin credentials could not be fetched or loaded."""

    def __init__(self, cluster: str, resource_group: str, reason: str):
        super().__init__(
            f"Cannot load admin credentials for cluster '{cluster}' "
            f"in resource group '{resource_group}': {reason}",
            {"cluster": cluster, "resource_group": resource_group, "reason": reason},
        )


class OperationCancelledError(DeployerError):
    """The run was cancelled before a blocking wait point."""

    def __init__(self, operation: str):
        super().__init__(f"Operation cancelled: {operation}", {"operation": operation})
