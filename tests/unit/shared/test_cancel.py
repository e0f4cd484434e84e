"""Unit tests for coa_deployer.shared.cancel module."""

import asyncio

import pytest

from coa_deployer.errors import OperationCancelledError
from coa_deployer.shared.cancel import CancellationSignal


class TestCancellationSignal:
    """Tests for CancellationSignal."""

    def test_initially_clear(self):
        """Test a new signal is not cancelled."""
        signal = CancellationSignal()
        assert not signal.cancelled
        signal.raise_if_cancelled("anything")

    def test_raise_if_cancelled(self):
        """Test the error names the interrupted operation."""
        signal = CancellationSignal()
        signal.cancel()

        with pytest.raises(OperationCancelledError) as exc_info:
            signal.raise_if_cancelled("upload values")

        assert "upload values" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_sleep_completes(self):
        """Test sleep returns normally when not cancelled."""
        await CancellationSignal().sleep(0.01)

    @pytest.mark.asyncio
    async def test_sleep_wakes_on_cancel(self):
        """Test a long sleep ends as soon as the signal is raised."""
        signal = CancellationSignal()

        async def cancel_soon():
            await asyncio.sleep(0.01)
            signal.cancel()

        with pytest.raises(OperationCancelledError):
            await asyncio.wait_for(asyncio.gather(signal.sleep(60, "wait"), cancel_soon()), timeout=5)
