"""
Simulated network connection and the ledger summary poller.

No transport is opened; ``connect`` only waits out the configured delay and
the endpoint is shown as a status label.
"""
import asyncio
import logging
import random
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from nexus_ledger.config import NetworkConfig

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class ConnectionStatus(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(frozen=True)
class LedgerInfo:
    ledger_index: int
    close_time: str
    tx_count: int
    total_coins: str

    def to_dict(self) -> dict:
        return {
            'ledger_index': self.ledger_index,
            'close_time': self.close_time,
            'tx_count': self.tx_count,
            'total_coins': self.total_coins,
        }


class SimulatedNetwork:
    def __init__(self, config: Optional[NetworkConfig] = None,
                 rng: Optional[random.Random] = None,
                 sleep: Optional[Callable] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self.config = config or NetworkConfig()
        self.rng = rng or random.Random()
        self.sleep = sleep or asyncio.sleep
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.status = ConnectionStatus.DISCONNECTED

    @property
    def is_connected(self) -> bool:
        return self.status is ConnectionStatus.CONNECTED

    @property
    def status_label(self) -> str:
        if self.is_connected:
            return f"Connected: {self.config.endpoint}"
        return self.status.value.capitalize()

    async def connect(self) -> bool:
        self.status = ConnectionStatus.CONNECTING
        try:
            await self.sleep(self.config.connect_delay)
        except asyncio.CancelledError:
            self.status = ConnectionStatus.DISCONNECTED
            raise
        self.status = ConnectionStatus.CONNECTED
        logger.info(f"Connected to {self.config.endpoint}")
        return True

    def disconnect(self):
        self.status = ConnectionStatus.DISCONNECTED

    async def get_ledger_info(self) -> LedgerInfo:
        """Fabricated ledger summary near the configured base index."""
        return LedgerInfo(
            ledger_index=self.config.base_ledger_index + self.rng.randrange(100),
            close_time=self.clock().isoformat(),
            tx_count=self.rng.randrange(50) + 10,
            total_coins=self.config.total_coins,
        )


class LedgerInfoPoller:
    """
    Re-reads the ledger summary every ``interval`` seconds.

    ``stop`` must be awaited before the owner is torn down; once it returns,
    no further update is delivered.
    """

    def __init__(self, network: SimulatedNetwork, interval: float = 4.0,
                 on_update: Optional[Callable[[LedgerInfo], None]] = None,
                 sleep: Optional[Callable] = None):
        self.network = network
        self.interval = interval
        self.on_update = on_update
        self.sleep = sleep or asyncio.sleep
        self.latest: Optional[LedgerInfo] = None
        self.updates = 0
        self.is_running = False
        self._task: Optional[asyncio.Task] = None

    def start(self):
        if self._task is not None and not self._task.done():
            return
        self.is_running = True
        self._task = asyncio.create_task(self._poll_loop())
        logger.info(f"Ledger poller started (every {self.interval}s)")

    async def stop(self):
        self.is_running = False
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Ledger poller stopped")

    async def poll_once(self) -> LedgerInfo:
        info = await self.network.get_ledger_info()
        self._deliver(info)
        return info

    def _deliver(self, info: LedgerInfo):
        self.latest = info
        self.updates += 1
        if self.on_update:
            self.on_update(info)

    async def _poll_loop(self):
        while self.is_running:
            try:
                info = await self.network.get_ledger_info()
                if not self.is_running:
                    break
                self._deliver(info)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error polling ledger info: {e}", exc_info=True)

            await self.sleep(self.interval)
