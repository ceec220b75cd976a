"""
Configuration management for the ledger simulator.
"""
import json
import os
from dataclasses import dataclass, asdict

from nexus_ledger.core import AMM_CREATE_FEE, BASE_FEE


@dataclass
class NetworkConfig:
    """Network configuration. The endpoint is only shown as a status label."""
    endpoint: str = "wss://s.altnet.rippletest.net:51233"
    connect_delay: float = 0.8
    base_ledger_index: int = 85_000_000
    total_coins: str = "99,989,500,000"


@dataclass
class SubmissionConfig:
    """Simulated consensus latency and ledger rule enforcement."""
    min_latency: float = 0.6
    max_latency: float = 1.5
    enforce_ledger_rules: bool = True
    fault_injection_rate: float = 0.0


@dataclass
class FeeConfig:
    """Transaction costs in drops."""
    base_fee: str = BASE_FEE
    amm_create_fee: str = AMM_CREATE_FEE


@dataclass
class PollingConfig:
    """Ledger summary polling."""
    interval: float = 4.0


@dataclass
class MonitoringConfig:
    """Monitoring configuration."""
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 9090


@dataclass
class Config:
    """Main configuration."""
    network: NetworkConfig
    submission: SubmissionConfig
    fees: FeeConfig
    polling: PollingConfig
    monitoring: MonitoringConfig

    @classmethod
    def default(cls) -> 'Config':
        """Create default configuration."""
        return cls(
            network=NetworkConfig(),
            submission=SubmissionConfig(),
            fees=FeeConfig(),
            polling=PollingConfig(),
            monitoring=MonitoringConfig()
        )

    @classmethod
    def from_file(cls, path: str) -> 'Config':
        """Load configuration from JSON file."""
        with open(path, 'r') as f:
            data = json.load(f)

        return cls(
            network=NetworkConfig(**data.get('network', {})),
            submission=SubmissionConfig(**data.get('submission', {})),
            fees=FeeConfig(**data.get('fees', {})),
            polling=PollingConfig(**data.get('polling', {})),
            monitoring=MonitoringConfig(**data.get('monitoring', {}))
        )

    def to_file(self, path: str):
        """Save configuration to JSON file."""
        os.makedirs(os.path.dirname(path) or '.', exist_ok=True)
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            'network': asdict(self.network),
            'submission': asdict(self.submission),
            'fees': asdict(self.fees),
            'polling': asdict(self.polling),
            'monitoring': asdict(self.monitoring)
        }
