"""
Simulated network and ledger info poller.
"""
import asyncio
import random

import pytest

from nexus_ledger.config import NetworkConfig
from nexus_ledger.network import (
    ConnectionStatus,
    LedgerInfoPoller,
    SimulatedNetwork,
)


async def no_sleep(delay):
    pass


@pytest.fixture
def network():
    return SimulatedNetwork(NetworkConfig(connect_delay=0), rng=random.Random(1), sleep=no_sleep)


class TestSimulatedNetwork:
    @pytest.mark.asyncio
    async def test_connect(self, network):
        assert network.status_label == "Disconnected"
        assert await network.connect()
        assert network.status is ConnectionStatus.CONNECTED
        assert network.status_label == "Connected: wss://s.altnet.rippletest.net:51233"

    @pytest.mark.asyncio
    async def test_cancelled_connect_stays_disconnected(self):
        network = SimulatedNetwork(NetworkConfig(connect_delay=10))
        task = asyncio.create_task(network.connect())
        await asyncio.sleep(0)
        assert network.status is ConnectionStatus.CONNECTING
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert network.status is ConnectionStatus.DISCONNECTED

    @pytest.mark.asyncio
    async def test_ledger_info_ranges(self, network):
        for _ in range(20):
            info = await network.get_ledger_info()
            assert 85_000_000 <= info.ledger_index < 85_000_100
            assert 10 <= info.tx_count < 60
            assert info.total_coins == "99,989,500,000"


class TestPoller:
    @pytest.mark.asyncio
    async def test_polls_and_stops(self, network):
        updates = []
        poller = LedgerInfoPoller(network, interval=0.01, on_update=updates.append)
        poller.start()
        await asyncio.sleep(0.05)
        await poller.stop()

        count = len(updates)
        assert count >= 1
        assert poller.latest == updates[-1]
        assert not poller.is_running

        await asyncio.sleep(0.05)
        assert len(updates) == count

    @pytest.mark.asyncio
    async def test_errors_do_not_kill_loop(self, network):
        calls = 0
        real = network.get_ledger_info

        async def flaky():
            nonlocal calls
            calls += 1
            if calls == 1:
                raise RuntimeError("boom")
            return await real()

        network.get_ledger_info = flaky
        poller = LedgerInfoPoller(network, interval=0.01)
        poller.start()
        await asyncio.sleep(0.05)
        await poller.stop()
        assert poller.updates >= 1

    @pytest.mark.asyncio
    async def test_stop_before_start(self, network):
        poller = LedgerInfoPoller(network)
        await poller.stop()
        assert poller.latest is None

    @pytest.mark.asyncio
    async def test_poll_once(self, network):
        poller = LedgerInfoPoller(network)
        info = await poller.poll_once()
        assert poller.latest == info
        assert poller.updates == 1
