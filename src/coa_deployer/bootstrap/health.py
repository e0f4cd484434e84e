"""Workload readiness polling.

This module waits for a deployment in the deployer namespace to report at
least one ready replica.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from kubernetes.client.exceptions import ApiException

from ..shared.cancel import CancellationSignal
from ..shared.logging import get_logger
from ..shared.retry import WORKLOAD_READY_POLICY, RetryPolicy, SleepFunc, retry_async
from .k8s import ClusterApi

logger = get_logger(__name__)


class ReadinessState(Enum):
    """Poller state machine: POLLING -> READY | TIMED_OUT."""

    POLLING = "polling"
    READY = "ready"
    TIMED_OUT = "timed_out"


@dataclass
class ReadinessResult:
    """Outcome of waiting for a workload."""

    workload: str
    state: ReadinessState
    attempts: int = 0
    ready_replicas: int = 0
    elapsed_seconds: float = 0.0
    timeout_seconds: float | None = None

    @property
    def ready(self) -> bool:
        return self.state == ReadinessState.READY


class WorkloadNotReady(Exception):
    """Raised by a single poll attempt; consumed by the retry driver."""


class WorkloadReadinessPoller:
    """Poll deployment status until a workload has a ready replica."""

    def __init__(
        self,
        cluster: ClusterApi,
        namespace: str,
        policy: RetryPolicy = WORKLOAD_READY_POLICY,
        sleep: SleepFunc | None = None,
        cancel: CancellationSignal | None = None,
    ):
        """Initialize poller.

        Args:
            cluster: Cluster API facade.
            namespace: Namespace holding the workloads.
            policy: Attempt budget and delay; this alone bounds the wait.
            sleep: Delay function (default: cancellable asyncio sleep).
            cancel: Optional cancellation signal.
        """
        self.cluster = cluster
        self.namespace = namespace
        self.policy = policy
        self.cancel = cancel or CancellationSignal()
        self._sleep = sleep or (lambda delay: self.cancel.sleep(delay, "wait for workload"))

    async def wait_for_workload(
        self,
        workload: str,
        timeout_seconds: float | None = None,
        on_attempt: Callable[[int, int, int], None] | None = None,
    ) -> ReadinessResult:
        """Poll until ``workload`` is ready or the attempt budget runs out.

        ``timeout_seconds`` is advisory: it is recorded in the result and a
        warning is logged once it has passed, but polling only ends when a
        replica is ready or every attempt in the policy has been made.

        Args:
            workload: Deployment name, matched case-insensitively.
            timeout_seconds: Caller's expected upper bound on the wait.
            on_attempt: Optional callback(attempt, max_attempts, ready_replicas).

        Returns:
            ReadinessResult in state READY or TIMED_OUT.
        """
        start = time.monotonic()
        attempts = 0
        ready_replicas = 0
        warned = False

        async def attempt() -> int:
            nonlocal attempts, ready_replicas, warned
            attempts += 1
            states = await asyncio.to_thread(self.cluster.list_workloads, self.namespace)
            match = next((s for s in states if s.name.lower() == workload.lower()), None)
            ready_replicas = match.ready_replicas if match else 0

            if on_attempt:
                on_attempt(attempts, self.policy.max_attempts, ready_replicas)

            if ready_replicas < 1:
                elapsed = time.monotonic() - start
                if timeout_seconds is not None and elapsed > timeout_seconds and not warned:
                    warned = True
                    logger.warning(
                        "Advisory timeout passed, continuing within attempt budget",
                        workload=workload,
                        timeout_seconds=timeout_seconds,
                        attempt=attempts,
                    )
                raise WorkloadNotReady(workload)
            return ready_replicas

        def log_retry(attempt_no: int, exc: BaseException) -> None:
            logger.debug("Workload not ready yet", workload=workload, attempt=attempt_no, reason=str(exc))

        try:
            await retry_async(
                attempt,
                self.policy,
                retry_on=(WorkloadNotReady, ApiException),
                sleep=self._sleep,
                on_retry=log_retry,
            )
            state = ReadinessState.READY
            logger.info("Workload ready", workload=workload, attempts=attempts, ready_replicas=ready_replicas)
        except (WorkloadNotReady, ApiException):
            state = ReadinessState.TIMED_OUT
            logger.warning("Workload not ready after attempt budget", workload=workload, attempts=attempts)

        return ReadinessResult(
            workload=workload,
            state=state,
            attempts=attempts,
            ready_replicas=ready_replicas,
            elapsed_seconds=time.monotonic() - start,
            timeout_seconds=timeout_seconds,
        )
