"""Fixed-delay retry driver shared by the readiness poller and the command executor."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

T = TypeVar("T")

SleepFunc = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget with a constant delay between attempts.

    No exponential growth and no jitter: the worst-case wait is
    ``(max_attempts - 1) * delay_seconds`` plus the attempts themselves.
    """

    max_attempts: int
    delay_seconds: float

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.delay_seconds < 0:
            raise ValueError("delay_seconds must not be negative")

    @property
    def max_wait_seconds(self) -> float:
        """Total delay spent between attempts when every attempt fails."""
        return (self.max_attempts - 1) * self.delay_seconds


# Workload readiness: 12 attempts, 15 seconds apart
WORKLOAD_READY_POLICY = RetryPolicy(max_attempts=12, delay_seconds=15.0)

# Exec channel negotiation: 8 attempts, 5 seconds apart
CHANNEL_EXEC_POLICY = RetryPolicy(max_attempts=8, delay_seconds=5.0)


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    sleep: SleepFunc = asyncio.sleep,
    on_retry: Callable[[int, BaseException], None] | None = None,
) -> T:
    """Run ``operation`` until it succeeds or the attempt budget is spent.

    Only exceptions matching ``retry_on`` are retried; anything else
    propagates immediately. When the budget is exhausted the last exception
    is re-raised unchanged.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt.
        policy: Attempt budget and delay.
        retry_on: Exception types that count as transient.
        sleep: Awaitable delay function (injected by tests).
        on_retry: Optional callback(attempt, exception) after each failed attempt.

    Returns:
        The value returned by the first successful attempt.
    """
    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await operation()
        except retry_on as exc:
            if on_retry:
                on_retry(attempt, exc)
            if attempt == policy.max_attempts:
                raise
            await sleep(policy.delay_seconds)

    raise AssertionError("unreachable")  # pragma: no cover
