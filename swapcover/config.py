"""
Configuration management for a settlement deployment.
"""
import json
import os
from typing import Optional
from dataclasses import dataclass, asdict


@dataclass
class ChainConfig:
    """Execution environment configuration."""
    chain_id: int = 1
    db_path: Optional[str] = None  # None keeps state in memory


@dataclass
class IncentiveConfig:
    """Initial incentive parameters of the layer."""
    reward_divisor: int = 1000
    gasless_fee_divisor: int = 100
    fixed_bonus: int = 0
    incentives_enabled: bool = True
    reference_assets: list = None  # hex-encoded addresses

    def __post_init__(self):
        if self.reference_assets is None:
            self.reference_assets = []

    def reference_asset_addresses(self) -> list[bytes]:
        return [bytes.fromhex(asset.removeprefix("0x")) for asset in self.reference_assets]


@dataclass
class MonitoringConfig:
    """Monitoring configuration."""
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 9090


@dataclass
class Config:
    """Main configuration."""
    chain: ChainConfig
    incentives: IncentiveConfig
    monitoring: MonitoringConfig

    @classmethod
    def default(cls) -> 'Config':
        """Create default configuration."""
        return cls(
            chain=ChainConfig(),
            incentives=IncentiveConfig(),
            monitoring=MonitoringConfig()
        )

    @classmethod
    def from_file(cls, path: str) -> 'Config':
        """Load configuration from JSON file."""
        with open(path, 'r') as f:
            data = json.load(f)

        return cls(
            chain=ChainConfig(**data.get('chain', {})),
            incentives=IncentiveConfig(**data.get('incentives', {})),
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
            'chain': asdict(self.chain),
            'incentives': asdict(self.incentives),
            'monitoring': asdict(self.monitoring)
        }
