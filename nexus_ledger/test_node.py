"""
Node composition and lifecycle.
"""
import pytest

from nexus_ledger.compliance import ComplianceState
from nexus_ledger.config import Config
from nexus_ledger.ledger_state import AuditStatus
from nexus_ledger.node import LedgerNode


@pytest.fixture
def config():
    config = Config.default()
    config.network.connect_delay = 0
    config.polling.interval = 0.01
    config.submission.min_latency = 0
    config.submission.max_latency = 0
    return config


class TestLedgerNode:
    @pytest.mark.asyncio
    async def test_start_and_stop(self, config):
        node = LedgerNode(config)
        await node.start()
        assert node.network.is_connected
        await node.poller.poll_once()
        status = node.get_status()
        assert status['ledger_index'] is not None
        assert status['pools'] == ["XRP/USD"]

        await node.stop()
        assert not node.poller.is_running
        assert not node.network.is_connected

    @pytest.mark.asyncio
    async def test_demo_sequence_validates(self, config):
        node = LedgerNode(config)
        await node.run_demo()
        recent = node.state.audit_log(limit=6)
        assert all(entry.status is AuditStatus.VALIDATED for entry in recent)
        asset = node.state.find_asset("NXS", "rDemo...Issuer")
        assert asset.flags.require_auth
        assert node.state.get_holder(asset.id, "rDemo...Holder").balance == "250.00"

    def test_compliance_workflow_for_asset(self, config):
        node = LedgerNode(config)
        workflow = node.compliance("1")
        assert workflow.issuer == "rK...ColdWallet"
        assert workflow.state is ComplianceState.IDLE
