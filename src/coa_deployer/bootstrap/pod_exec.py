"""Command execution inside running workload pods.

Commands run over kubernetes exec channels. The exec websocket is pumped on
a worker thread; stdout and stderr each have their own reader task on the
event loop, and the pump ends each reader with a sentinel once the channel
closes.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from typing import Any

from ..errors import (
    AmbiguousInstanceError,
    ChannelNotEstablishedError,
    InstanceNotFoundError,
    WorkloadStartupTimeout,
)
from ..shared.logging import get_logger
from ..shared.retry import CHANNEL_EXEC_POLICY, RetryPolicy, SleepFunc, retry_async
from .health import WorkloadReadinessPoller
from .k8s import ClusterApi

logger = get_logger(__name__)

# Seconds the pump blocks on the websocket per read
CHANNEL_POLL_SECONDS = 1.0


class PodCommandExecutor:
    """Run ordered command vectors inside a workload's pod."""

    def __init__(
        self,
        cluster: ClusterApi,
        namespace: str,
        poller: WorkloadReadinessPoller,
        policy: RetryPolicy = CHANNEL_EXEC_POLICY,
        debug_logging: bool = False,
        line_sink: Callable[[str], None] | None = None,
        sleep: SleepFunc = asyncio.sleep,
    ):
        """Initialize executor.

        Args:
            cluster: Cluster API facade.
            namespace: Namespace holding the workload pods.
            poller: Readiness poller consulted before any command runs.
            policy: Retry budget for channel negotiation failures.
            debug_logging: Forward command output to the line sink when True.
            line_sink: Receives each prefixed output line (default: logger.info).
            sleep: Delay function between attempts (injected by tests).
        """
        self.cluster = cluster
        self.namespace = namespace
        self.poller = poller
        self.policy = policy
        self.debug_logging = debug_logging
        self.line_sink = line_sink or logger.info
        self._sleep = sleep

    async def resolve_instance(self, workload: str, label_selector: str | None = None) -> str:
        """Find the single pod belonging to ``workload``.

        With a label selector every returned pod matches; otherwise pods are
        matched by the workload name appearing in the pod name.

        Raises:
            InstanceNotFoundError: no pod matches.
            AmbiguousInstanceError: more than one pod matches.
        """
        names = await asyncio.to_thread(self.cluster.list_pod_names, self.namespace, label_selector)
        if label_selector is None:
            names = [name for name in names if workload in name]

        if not names:
            raise InstanceNotFoundError(workload, self.namespace)
        if len(names) > 1:
            raise AmbiguousInstanceError(workload, sorted(names))
        return names[0]

    async def execute(
        self,
        workload: str,
        commands: Sequence[Sequence[str]],
        timeout_seconds: float | None = None,
        *,
        label_selector: str | None = None,
        container: str | None = None,
    ) -> int:
        """Run ``commands`` in order inside the workload's pod.

        The workload must report ready first. A channel that fails to
        negotiate restarts the whole batch, up to the policy's attempt
        budget; any other error is fatal and propagates unchanged.

        Args:
            workload: Workload (deployment) name.
            commands: Command vectors, run one after another.
            timeout_seconds: Advisory readiness timeout passed to the poller.
            label_selector: Optional exact pod selector.
            container: Container to exec into (default: the workload name).

        Returns:
            Number of attempts made.

        Raises:
            WorkloadStartupTimeout: the workload never became ready.
        """
        readiness = await self.poller.wait_for_workload(workload, timeout_seconds)
        if not readiness.ready:
            raise WorkloadStartupTimeout(workload, readiness.attempts)

        pod = await self.resolve_instance(workload, label_selector)
        container = container or workload
        attempts = 0

        async def run_batch() -> None:
            nonlocal attempts
            attempts += 1
            for command in commands:
                await self._run_command(pod, container, list(command), workload)

        def log_retry(attempt: int, exc: BaseException) -> None:
            logger.warning(
                "Exec channel not established",
                pod=pod,
                attempt=attempt,
                max_attempts=self.policy.max_attempts,
                reason=str(exc),
            )

        await retry_async(
            run_batch,
            self.policy,
            retry_on=(ChannelNotEstablishedError,),
            sleep=self._sleep,
            on_retry=log_retry,
        )
        logger.info("Commands completed", pod=pod, commands=len(commands), attempts=attempts)
        return attempts

    async def _run_command(self, pod: str, container: str, command: list[str], tag: str) -> None:
        logger.debug("Executing command", pod=pod, command=command)
        channel = await asyncio.to_thread(
            self.cluster.open_exec_channel, pod, self.namespace, container, command
        )
        await self._stream_channel(channel, tag)

    async def _stream_channel(self, channel: Any, tag: str) -> None:
        loop = asyncio.get_running_loop()
        stdout: asyncio.Queue[str | None] = asyncio.Queue()
        stderr: asyncio.Queue[str | None] = asyncio.Queue()
        sources = (
            (channel.peek_stdout, channel.read_stdout, stdout),
            (channel.peek_stderr, channel.read_stderr, stderr),
        )

        def pump() -> None:
            try:
                while True:
                    is_open = channel.is_open()
                    if is_open:
                        channel.update(timeout=CHANNEL_POLL_SECONDS)
                    for peek, read, queue in sources:
                        if peek():
                            loop.call_soon_threadsafe(queue.put_nowait, read())
                    if not is_open:
                        break
            finally:
                loop.call_soon_threadsafe(stdout.put_nowait, None)
                loop.call_soon_threadsafe(stderr.put_nowait, None)
                channel.close()

        await asyncio.gather(
            asyncio.to_thread(pump),
            self._drain(stdout, tag),
            self._drain(stderr, tag),
        )

    async def _drain(self, queue: asyncio.Queue[str | None], tag: str) -> None:
        pending = ""
        while True:
            chunk = await queue.get()
            if chunk is None:
                break
            pending += chunk
            *lines, pending = pending.split("\n")
            for line in lines:
                self._emit(tag, line)
        if pending:
            self._emit(tag, pending)

    def _emit(self, tag: str, line: str) -> None:
        if self.debug_logging:
            self.line_sink(f"{tag}: {line.rstrip()}")
