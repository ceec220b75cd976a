"""
Main entry point for running a simulated ledger node.
"""
import asyncio
import argparse
import logging
import signal
from pathlib import Path
from typing import Optional

from nexus_ledger.compiler import OrderSide, TemplateCompiler, TrustSetMode
from nexus_ledger.compliance import ComplianceWorkflow
from nexus_ledger.config import Config
from nexus_ledger.genesis import COLD_WALLET, build_state, default_genesis, load_genesis
from nexus_ledger.ledger_state import LedgerState
from nexus_ledger.monitoring import Monitor
from nexus_ledger.network import LedgerInfo, LedgerInfoPoller, SimulatedNetwork
from nexus_ledger.submission import SubmissionPipeline

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class LedgerNode:
    """Wires the store, compiler, pipeline, network and poller together."""

    def __init__(self, config: Config, state: Optional[LedgerState] = None, notifier=None):
        self.config = config
        self.state = state if state is not None else build_state(default_genesis())

        self.monitor = Monitor(config.monitoring.host, config.monitoring.port) if config.monitoring.enabled else None
        self.compiler = TemplateCompiler(config.fees)
        self.pipeline = SubmissionPipeline(
            self.state,
            config.submission,
            notifier=notifier,
            monitor=self.monitor,
        )
        self.network = SimulatedNetwork(config.network)
        self.poller = LedgerInfoPoller(
            self.network,
            interval=config.polling.interval,
            on_update=self._on_ledger_info,
        )
        self.running = False

    def _on_ledger_info(self, info: LedgerInfo):
        logger.debug(f"Ledger #{info.ledger_index}: {info.tx_count} txs")
        if self.monitor:
            self.monitor.record_ledger_info(info)

    def compliance(self, asset_id: str) -> ComplianceWorkflow:
        asset = self.state.require_asset(asset_id)
        return ComplianceWorkflow(self.state, self.compiler, self.pipeline, asset.id, asset.issuer)

    async def start(self):
        self.running = True
        logger.info("Starting ledger node...")
        if self.monitor:
            self.monitor.start_server()
            self.monitor.update_state(self.state)
        await self.network.connect()
        self.poller.start()

    async def stop(self):
        """Stops the poller before anything it touches goes away."""
        if not self.running:
            return
        logger.info("Stopping ledger node...")
        self.running = False
        await self.poller.stop()
        self.network.disconnect()
        if self.monitor:
            self.monitor.stop_server()
        logger.info("Node stopped successfully")

    def get_status(self) -> dict:
        latest = self.poller.latest
        return {
            'network': self.network.status_label,
            'ledger_index': latest.ledger_index if latest else None,
            'assets': len(self.state.list_assets()),
            'pools': [pool.pair for pool in self.state.list_pools()],
            'pipeline': self.pipeline.get_stats(),
        }

    async def run_demo(self):
        """Walks one asset through issuance, authorization and trading."""
        issuer = "rDemo...Issuer"
        holder = "rDemo...Holder"
        for template in self.compiler.compile_account_set(issuer, require_auth=True, default_ripple=True):
            await self.pipeline.submit(template)
        await self.pipeline.submit(self.compiler.compile_issuance(issuer, "NXS", "1000000"))
        await self.pipeline.submit(
            self.compiler.compile_trust_set(issuer, holder, "NXS", "0", TrustSetMode.AUTHORIZE)
        )
        await self.pipeline.submit(self.compiler.compile_issuance(issuer, "NXS", "250", destination=holder))
        await self.pipeline.submit(
            self.compiler.compile_offer_create(holder, OrderSide.BUY, "100", "0.55", "USD", COLD_WALLET)
        )
        for entry in self.state.audit_log(limit=5):
            logger.info(f"[{entry.status.value}] {entry.type}: {entry.details}")

    async def _status_reporter(self, interval: float = 60):
        while self.running:
            await asyncio.sleep(interval)
            try:
                status = self.get_status()
                logger.info("=== Node Status ===")
                logger.info(f"Network: {status['network']}")
                logger.info(f"Ledger: {status['ledger_index']}")
                logger.info(f"Audit log: {status['pipeline']['audit_log_size']} entries")
                logger.info("==================")
            except Exception as e:
                logger.error(f"Error in status reporter: {e}", exc_info=True)


async def main():
    parser = argparse.ArgumentParser(description='Run a simulated ledger node')
    parser.add_argument('--config', type=str, help='Path to config file')
    parser.add_argument('--genesis', type=str, help='Path to genesis file')
    parser.add_argument('--metrics', action='store_true', help='Serve Prometheus metrics')
    parser.add_argument('--demo', action='store_true', help='Submit a demo transaction sequence and exit')

    args = parser.parse_args()

    if args.config and Path(args.config).exists():
        config = Config.from_file(args.config)
    else:
        config = Config.default()
    if args.metrics:
        config.monitoring.enabled = True

    state = load_genesis(args.genesis) if args.genesis else None
    node = LedgerNode(config, state)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Received shutdown signal")
        stop_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, signal_handler)

    await node.start()
    reporter = asyncio.create_task(node._status_reporter())
    try:
        if args.demo:
            await node.run_demo()
        else:
            await stop_event.wait()
    finally:
        reporter.cancel()
        await node.stop()


if __name__ == '__main__':
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Exiting...")
