"""
Config loader: YAML file -> validated, frozen dataclass tree.

The YAML file holds only non-secret values and is checked against a JSON
Schema. The signing secret and contract addresses are resolved from
environment variables (KEEPER_SECRET_KEY, MARKET_CONTRACT_ID, ...), which
override anything in the file.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import jsonschema
import yaml

from ledger.errors import DEFAULT_DOMAIN_ERROR_CODES

logger = logging.getLogger("keeper.config")

NETWORKS = {
    "testnet": ("https://soroban-testnet.stellar.org", "Test SDF Network ; September 2015"),
    "futurenet": ("https://rpc-futurenet.stellar.org", "Test SDF Future Network ; October 2022"),
    "mainnet": ("", "Public Global Stellar Network ; September 2015"),
}

CONFIG_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "network": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "name": {"enum": sorted(NETWORKS)},
                "rpc_url": {"type": "string"},
                "passphrase": {"type": "string"},
            },
        },
        "contracts": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "market": {"type": "string"},
                "oracle": {"type": "string"},
                "vault": {"type": "string"},
            },
        },
        "timing": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "poll_interval": {"type": "number", "exclusiveMinimum": 0},
                "funding_interval": {"type": "number", "exclusiveMinimum": 0},
                "oracle_interval": {"type": "number", "exclusiveMinimum": 0},
            },
        },
        "retry": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "max_retries": {"type": "integer", "minimum": 1},
                "retry_delay": {"type": "number", "minimum": 0},
                "domain_error_codes": {
                    "type": "object",
                    "additionalProperties": {"type": ["string", "null"]},
                },
            },
        },
        "ledger": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "poll_interval": {"type": "number", "exclusiveMinimum": 0},
                "max_poll_attempts": {"type": "integer", "minimum": 1},
                "base_fee": {"type": "integer", "minimum": 100},
                "tx_timeout": {"type": "integer", "minimum": 1},
            },
        },
        "scan": {
            "type": "object",
            "additionalProperties": False,
            "properties": {"workers": {"type": "integer", "minimum": 1}},
        },
        "oracle": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "enabled": {"type": "boolean"},
                "feed_url": {"type": "string"},
            },
        },
        "assets": {
            "type": "array",
            "items": {
                "type": "object",
                "additionalProperties": False,
                "required": ["symbol"],
                "properties": {
                    "symbol": {"type": "string", "minLength": 1},
                    "feed_symbol": {"type": "string"},
                    "decimals": {"type": "integer", "minimum": 0, "maximum": 18},
                },
            },
        },
        "logging": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "structured": {"type": "boolean"},
                "level": {"enum": ["DEBUG", "INFO", "WARNING", "ERROR"]},
            },
        },
    },
}


class ConfigError(Exception):
    """Raised when keeper configuration is missing or invalid. Fatal at startup."""


@dataclass(frozen=True)
class NetworkConfig:
    name: str = "testnet"
    rpc_url: str = NETWORKS["testnet"][0]
    passphrase: str = NETWORKS["testnet"][1]


@dataclass(frozen=True)
class ContractsConfig:
    market: str = ""
    oracle: str = ""
    vault: str = ""


@dataclass(frozen=True)
class TimingConfig:
    poll_interval: float = 10.0
    funding_interval: float = 3600.0
    oracle_interval: float = 30.0


@dataclass(frozen=True)
class RetryConfig:
    max_retries: int = 3
    retry_delay: float = 2.0
    domain_error_codes: Mapping[int, str | None] = field(
        default_factory=lambda: dict(DEFAULT_DOMAIN_ERROR_CODES)
    )


@dataclass(frozen=True)
class LedgerConfig:
    poll_interval: float = 1.0
    max_poll_attempts: int = 30
    base_fee: int = 10_000_000
    tx_timeout: int = 300


@dataclass(frozen=True)
class ScanConfig:
    workers: int = 4


@dataclass(frozen=True)
class OracleConfig:
    enabled: bool = True
    feed_url: str = "https://api.binance.com"


@dataclass(frozen=True)
class AssetConfig:
    symbol: str
    feed_symbol: str
    decimals: int = 7


@dataclass(frozen=True)
class LoggingConfig:
    structured: bool = True
    level: str = "INFO"


@dataclass(frozen=True)
class KeeperConfig:
    network: NetworkConfig = NetworkConfig()
    contracts: ContractsConfig = ContractsConfig()
    secret_key: str = field(default="", repr=False)
    timing: TimingConfig = TimingConfig()
    retry: RetryConfig = RetryConfig()
    ledger: LedgerConfig = LedgerConfig()
    scan: ScanConfig = ScanConfig()
    oracle: OracleConfig = OracleConfig()
    assets: tuple[AssetConfig, ...] = (AssetConfig("XLM", "XLMUSDT", 7),)
    logging: LoggingConfig = LoggingConfig()

    @property
    def oracle_active(self) -> bool:
        return self.oracle.enabled and bool(self.contracts.oracle) and bool(self.assets)

    def validate(self) -> None:
        """Raise ConfigError if anything required to run the loop is missing."""
        missing = []
        if not self.network.rpc_url:
            missing.append("RPC_URL (network.rpc_url)")
        if not self.network.passphrase:
            missing.append("NETWORK_PASSPHRASE (network.passphrase)")
        if not self.contracts.market:
            missing.append("MARKET_CONTRACT_ID (contracts.market)")
        if not self.secret_key:
            missing.append("KEEPER_SECRET_KEY")
        if missing:
            raise ConfigError("Missing required configuration: " + ", ".join(missing))


def _env(name: str, fallback: Any) -> Any:
    value = os.environ.get(name, "").strip()
    return value if value else fallback


def _domain_codes(raw: Mapping[Any, Any]) -> dict[int, str | None]:
    """Contract error code -> variant name; keys may arrive as YAML ints or strings."""
    codes = {}
    for key, name in raw.items():
        code = int(key)
        if code < 0:
            raise ValueError(f"retry.domain_error_codes: negative code {code}")
        codes[code] = name or None
    return codes


def _check_intervals(timing: TimingConfig) -> None:
    for name in ("poll_interval", "funding_interval", "oracle_interval"):
        if getattr(timing, name) <= 0:
            raise ValueError(f"timing.{name} must be positive, got {getattr(timing, name)}")


def _build_config(raw: Mapping[str, Any]) -> KeeperConfig:
    """Convert a validated raw dict plus env overrides into the frozen tree."""
    net_raw = raw.get("network", {})
    net_name = net_raw.get("name", "testnet")
    default_rpc, default_passphrase = NETWORKS[net_name]
    network = NetworkConfig(
        name=net_name,
        rpc_url=_env("RPC_URL", net_raw.get("rpc_url", default_rpc)),
        passphrase=_env("NETWORK_PASSPHRASE", net_raw.get("passphrase", default_passphrase)),
    )

    c_raw = raw.get("contracts", {})
    contracts = ContractsConfig(
        market=_env("MARKET_CONTRACT_ID", c_raw.get("market", "")),
        oracle=_env("ORACLE_CONTRACT_ID", c_raw.get("oracle", "")),
        vault=_env("VAULT_CONTRACT_ID", c_raw.get("vault", "")),
    )

    t_raw = raw.get("timing", {})
    timing = TimingConfig(
        poll_interval=float(_env("POLL_INTERVAL_SECONDS", t_raw.get("poll_interval", 10.0))),
        funding_interval=float(t_raw.get("funding_interval", 3600.0)),
        oracle_interval=float(t_raw.get("oracle_interval", 30.0)),
    )
    _check_intervals(timing)

    r_raw = raw.get("retry", {})
    retry = RetryConfig(
        max_retries=int(r_raw.get("max_retries", 3)),
        retry_delay=float(r_raw.get("retry_delay", 2.0)),
        domain_error_codes=_domain_codes(r_raw.get("domain_error_codes", DEFAULT_DOMAIN_ERROR_CODES)),
    )

    l_raw = raw.get("ledger", {})
    ledger = LedgerConfig(
        poll_interval=float(l_raw.get("poll_interval", 1.0)),
        max_poll_attempts=int(l_raw.get("max_poll_attempts", 30)),
        base_fee=int(l_raw.get("base_fee", 10_000_000)),
        tx_timeout=int(l_raw.get("tx_timeout", 300)),
    )

    o_raw = raw.get("oracle", {})
    oracle = OracleConfig(
        enabled=bool(o_raw.get("enabled", True)),
        feed_url=str(o_raw.get("feed_url", "https://api.binance.com")),
    )

    if "assets" in raw:
        assets = tuple(
            AssetConfig(
                symbol=a["symbol"],
                feed_symbol=a.get("feed_symbol", f"{a['symbol']}USDT"),
                decimals=int(a.get("decimals", 7)),
            )
            for a in raw["assets"]
        )
    else:
        assets = KeeperConfig().assets

    log_raw = raw.get("logging", {})
    logging_cfg = LoggingConfig(
        structured=bool(log_raw.get("structured", True)),
        level=str(log_raw.get("level", "INFO")),
    )

    return KeeperConfig(
        network=network,
        contracts=contracts,
        secret_key=_env("KEEPER_SECRET_KEY", ""),
        timing=timing,
        retry=retry,
        ledger=ledger,
        scan=ScanConfig(workers=int(raw.get("scan", {}).get("workers", 4))),
        oracle=oracle,
        assets=assets,
        logging=logging_cfg,
    )


def load_config(path: str | Path = "config.yaml") -> KeeperConfig:
    """
    Load keeper configuration from a YAML file and the environment.

    Environment variables take precedence over the file:
      - KEEPER_SECRET_KEY (never read from the file)
      - MARKET_CONTRACT_ID, ORACLE_CONTRACT_ID, VAULT_CONTRACT_ID
      - RPC_URL, NETWORK_PASSPHRASE, POLL_INTERVAL_SECONDS

    The result is not validated for completeness; call ``validate()``
    before starting the loop.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Config file is not valid YAML: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigError(f"Config file must be a YAML mapping, got {type(raw).__name__}")

    try:
        jsonschema.validate(instance=raw, schema=CONFIG_SCHEMA)
    except jsonschema.ValidationError as exc:
        location = ".".join(str(p) for p in exc.absolute_path) or "<root>"
        raise ConfigError(f"Config validation failed at {location}: {exc.message}") from exc

    try:
        cfg = _build_config(raw)
    except ValueError as exc:
        raise ConfigError(f"Invalid configuration value: {exc}") from exc
    logger.debug("Loaded config from %s (network=%s)", config_path, cfg.network.name)
    return cfg
