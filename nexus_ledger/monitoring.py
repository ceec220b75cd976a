# nexus_ledger/monitoring.py
import time
import psutil
from prometheus_client import Counter, Gauge, Histogram, CollectorRegistry
from prometheus_client.exposition import make_wsgi_app
from wsgiref.simple_server import make_server, WSGIServer
from socketserver import ThreadingMixIn
import threading
import logging

from nexus_ledger.amm_state import format_fraction

logger = logging.getLogger(__name__)


class ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    """Serves metrics from a background thread."""
    allow_reuse_address = True


class Monitor:
    """
    Prometheus metrics for the submission pipeline and the ledger state.

    The HTTP endpoint is optional; metrics are collected into the monitor's
    own registry either way.
    """

    def __init__(self, host="127.0.0.1", port=9090):
        self.host = host
        self.port = port
        self.server = None
        self.thread = None

        self.last_time = time.time()
        self.last_tx_count = 0

        # Isolated registry per monitor
        self.registry = CollectorRegistry()

        self.tx_counter = Counter('ledger_submissions_total', 'Submissions by type and outcome', ['tx_type', 'status'], registry=self.registry)
        self.tx_latency = Histogram('ledger_submission_latency_seconds', 'Submit-to-commit latency', registry=self.registry)
        self.audit_log_size = Gauge('ledger_audit_log_size', 'Entries in the audit log', registry=self.registry)
        self.asset_count = Gauge('ledger_asset_count', 'Issued assets', registry=self.registry)
        self.frozen_lines = Gauge('ledger_frozen_trust_lines', 'Frozen trust lines across all assets', registry=self.registry)
        self.amm_k = Gauge('amm_invariant_k', 'Constant product k', ['pair'], registry=self.registry)
        self.amm_price = Gauge('amm_price', 'Pool price in quote units', ['pair'], registry=self.registry)
        self.tps = Gauge('ledger_tps', 'Committed transactions per second', registry=self.registry)
        self.ledger_index = Gauge('ledger_index_current', 'Last polled ledger index', registry=self.registry)
        self.cpu_usage = Gauge('system_cpu_percent', 'Current CPU usage percent', registry=self.registry)
        self.memory_usage = Gauge('system_memory_percent', 'Current memory usage percent', registry=self.registry)

    def start_server(self):
        """Serves ``self.registry`` over HTTP from a daemon thread."""
        try:
            self.server = make_server(self.host, self.port, make_wsgi_app(self.registry), ThreadingWSGIServer)
        except OSError as e:
            logger.error(f"Metrics endpoint could not bind {self.host}:{self.port}: {e}")
            raise
        self.thread = threading.Thread(target=self.server.serve_forever, daemon=True)
        self.thread.start()
        logger.info(f"Prometheus server started on http://{self.host}:{self.port}")

    def stop_server(self):
        if self.server:
            self.server.shutdown()
            self.server.server_close()
            self.server = None
            logger.info("Prometheus server stopped.")

    def record_submission(self, tx_type: str, status: str, latency: float):
        self.tx_counter.labels(tx_type=tx_type, status=status).inc()
        self.tx_latency.observe(latency)

    def record_ledger_info(self, info):
        self.ledger_index.set(info.ledger_index)

    def update_state(self, state):
        """Refresh gauges from a ledger state."""
        tx_count = len(state)
        self.audit_log_size.set(tx_count)

        now = time.time()
        elapsed = now - self.last_time
        if elapsed > 0:
            self.tps.set((tx_count - self.last_tx_count) / elapsed)
        self.last_tx_count = tx_count
        self.last_time = now

        assets = state.list_assets()
        self.asset_count.set(len(assets))
        self.frozen_lines.set(sum(
            1 for asset in assets for holder in state.list_holders(asset.id) if holder.is_frozen
        ))

        for pool in state.list_pools():
            self.amm_k.labels(pair=pool.pair).set(float(format_fraction(pool.invariant)))
            self.amm_price.labels(pair=pool.pair).set(float(pool.current_price))

        self.cpu_usage.set(psutil.cpu_percent())
        self.memory_usage.set(psutil.virtual_memory().percent)
