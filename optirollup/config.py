"""
Configuration management for the rollup verifier.
"""
import json
import os
from dataclasses import dataclass, asdict, field

from .errors import ConfigError


@dataclass
class TreeConfig:
    """Merkle tree configuration."""
    state_depth: int = 32
    pubkey_depth: int = 32

    def __post_init__(self):
        if self.state_depth <= 0 or self.pubkey_depth <= 0:
            raise ConfigError("Tree depths must be positive")


@dataclass
class SignatureConfig:
    """Signature domain configuration."""
    domain: str = "00" * 32  # hex

    @property
    def domain_bytes(self) -> bytes:
        return bytes.fromhex(self.domain)


@dataclass
class TokenConfig:
    """Token registry configuration."""
    registered_tokens: list = field(default_factory=lambda: [0])


@dataclass
class MonitoringConfig:
    """Monitoring configuration."""
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 9090


@dataclass
class Config:
    """Main configuration."""
    tree: TreeConfig
    signature: SignatureConfig
    tokens: TokenConfig
    monitoring: MonitoringConfig

    @classmethod
    def default(cls) -> 'Config':
        """Create default configuration."""
        return cls(
            tree=TreeConfig(),
            signature=SignatureConfig(),
            tokens=TokenConfig(),
            monitoring=MonitoringConfig()
        )

    @classmethod
    def from_dict(cls, data: dict) -> 'Config':
        try:
            return cls(
                tree=TreeConfig(**data.get('tree', {})),
                signature=SignatureConfig(**data.get('signature', {})),
                tokens=TokenConfig(**data.get('tokens', {})),
                monitoring=MonitoringConfig(**data.get('monitoring', {}))
            )
        except TypeError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    @classmethod
    def from_file(cls, path: str) -> 'Config':
        """Load configuration from JSON file."""
        try:
            with open(path, 'r') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Cannot load configuration from {path}: {e}") from e
        return cls.from_dict(data)

    def to_file(self, path: str):
        """Save configuration to JSON file."""
        os.makedirs(os.path.dirname(path) or '.', exist_ok=True)
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            'tree': asdict(self.tree),
            'signature': asdict(self.signature),
            'tokens': asdict(self.tokens),
            'monitoring': asdict(self.monitoring)
        }
