"""Helm invocation for the deployer.

HelmInvoker runs the helm binary as a child process and, in verbose mode,
forwards its output line by line while the process is still running.
ChartDeployer issues the repository and chart commands a deployment needs,
always one at a time.
"""

from __future__ import annotations

import asyncio
import shlex
from collections.abc import Callable, Sequence
from pathlib import Path

from ..errors import InstallerFailure
from ..shared.logging import get_logger

logger = get_logger(__name__)

HELM_LINE_PREFIX = "HELM: "
OUTPUT_CHUNK_SIZE = 64 * 1024

# Dependency charts installed into kube-system ahead of the main chart
AAD_POD_IDENTITY_REPO = "https://raw.githubusercontent.com/Azure/aad-pod-identity/master/charts"
AAD_POD_IDENTITY_VERSION = "4.1.12"
BLOB_CSI_REPO = "https://raw.githubusercontent.com/kubernetes-sigs/blob-csi-driver/master/charts"
BLOB_CSI_DRIVER_VERSION = "v1.15.0"

RELEASE_NAME = "cromwellonazure"


class HelmInvoker:
    """Run helm commands as child processes."""

    def __init__(
        self,
        binary_path: str = "helm",
        debug_logging: bool = False,
        line_sink: Callable[[str], None] | None = None,
    ):
        """Initialize invoker.

        Args:
            binary_path: Path to the helm binary.
            debug_logging: Stream helm output to the line sink when True.
            line_sink: Receives each prefixed output line (default: logger.info).
        """
        self.binary_path = binary_path
        self.debug_logging = debug_logging
        self.line_sink = line_sink or logger.info

    async def run(self, command: str | Sequence[str]) -> int:
        """Run one helm command and wait for it to exit.

        Args:
            command: Argument string (split with shell rules) or argument list.

        Returns:
            The exit code, which is always 0.

        Raises:
            InstallerFailure: helm exited non-zero or could not be started.
        """
        args = shlex.split(command) if isinstance(command, str) else list(command)
        display = " ".join(args)
        logger.debug("Running helm", command=display)

        try:
            process = await asyncio.create_subprocess_exec(
                self.binary_path,
                *args,
                stdout=asyncio.subprocess.PIPE if self.debug_logging else asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.STDOUT if self.debug_logging else asyncio.subprocess.DEVNULL,
            )
        except FileNotFoundError as exc:
            raise InstallerFailure(display, 127, f"{self.binary_path} not found") from exc

        if self.debug_logging:
            # Drain output while waiting; helm stalls on a full pipe
            try:
                _, exit_code = await asyncio.gather(self._forward_output(process.stdout), process.wait())
            except BaseException:
                if process.returncode is None:
                    process.kill()
                    await process.wait()
                raise
        else:
            exit_code = await process.wait()

        if exit_code != 0:
            logger.error("Helm command failed", command=display, exit_code=exit_code)
            raise InstallerFailure(display, exit_code)

        return exit_code

    async def _forward_output(self, stream: asyncio.StreamReader) -> None:
        # Read in chunks so a line of any length cannot overrun the reader limit
        pending = bytearray()
        while True:
            chunk = await stream.read(OUTPUT_CHUNK_SIZE)
            if not chunk:
                break
            pending.extend(chunk)
            *lines, rest = pending.split(b"\n")
            for raw in lines:
                self._emit(raw)
            pending = bytearray(rest)
        if pending:
            self._emit(bytes(pending))

    def _emit(self, raw: bytes) -> None:
        self.line_sink(HELM_LINE_PREFIX + raw.decode(errors="replace").rstrip("\r"))


class ChartDeployer:
    """Install the dependency charts and the main chart."""

    def __init__(self, helm: HelmInvoker, kubeconfig_path: Path):
        self.helm = helm
        self.kubeconfig_path = kubeconfig_path

    async def add_repo(self, name: str, url: str) -> None:
        await self.helm.run(["repo", "add", name, url])

    async def deploy_dependencies(self) -> None:
        """Install aad-pod-identity and blob-csi-driver into kube-system."""
        kubeconfig = str(self.kubeconfig_path)

        await self.add_repo("aad-pod-identity", AAD_POD_IDENTITY_REPO)
        await self.helm.run(
            [
                "install", "aad-pod-identity", "aad-pod-identity/aad-pod-identity",
                "--namespace", "kube-system",
                "--version", AAD_POD_IDENTITY_VERSION,
                "--kubeconfig", kubeconfig,
            ]
        )

        await self.add_repo("blob-csi-driver", BLOB_CSI_REPO)
        await self.helm.run(
            [
                "install", "blob-csi-driver", "blob-csi-driver/blob-csi-driver",
                "--set", "node.enableBlobfuseProxy=true",
                "--namespace", "kube-system",
                "--version", BLOB_CSI_DRIVER_VERSION,
                "--kubeconfig", kubeconfig,
            ]
        )
        logger.info("Dependency charts installed")

    async def deploy_chart(self, chart_path: Path, namespace: str, values_path: Path) -> None:
        """Install or upgrade the main release from the rendered values."""
        await self.helm.run(
            [
                "upgrade", "--install", RELEASE_NAME, str(chart_path),
                "--values", str(values_path),
                "--kubeconfig", str(self.kubeconfig_path),
                "--namespace", namespace,
                "--create-namespace",
            ]
        )
        logger.info("Chart deployed", release=RELEASE_NAME, namespace=namespace)
