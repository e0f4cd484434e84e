"""Cooperative cancellation for long-running deployer operations."""

from __future__ import annotations

import asyncio
import contextlib

from ..errors import OperationCancelledError


class CancellationSignal:
    """A single cancel flag threaded through blob, credential and polling waits.

    Raising the signal aborts the next wait point that checks it. It never
    interrupts a command that is already streaming inside an exec channel.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self, operation: str) -> None:
        if self._event.is_set():
            raise OperationCancelledError(operation)

    async def sleep(self, delay: float, operation: str = "wait") -> None:
        """Sleep for ``delay`` seconds, waking early if cancelled."""
        self.raise_if_cancelled(operation)
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        self.raise_if_cancelled(operation)
