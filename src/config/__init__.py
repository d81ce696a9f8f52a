"""
Configuration loader: reads config.yaml, validates it against a JSON Schema,
resolves secrets and contract addresses from env vars.
"""

from config.loader import (
    AssetConfig,
    ConfigError,
    ContractsConfig,
    KeeperConfig,
    LedgerConfig,
    LoggingConfig,
    NetworkConfig,
    OracleConfig,
    RetryConfig,
    ScanConfig,
    TimingConfig,
    load_config,
)

__all__ = [
    "AssetConfig",
    "ConfigError",
    "ContractsConfig",
    "KeeperConfig",
    "LedgerConfig",
    "LoggingConfig",
    "NetworkConfig",
    "OracleConfig",
    "RetryConfig",
    "ScanConfig",
    "TimingConfig",
    "load_config",
]
