"""Tests for CLI commands using click CliRunner. No network; the ledger is in-memory."""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

import cli.main as main_module
from cli.main import cli
from conftest import KEEPER, FakeLedger
from keeper.scheduler import KeeperScheduler


@pytest.fixture
def env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("KEEPER_SECRET_KEY", "SSECRET")
    monkeypatch.setenv("MARKET_CONTRACT_ID", "CMARKET")
    monkeypatch.delenv("ORACLE_CONTRACT_ID", raising=False)
    monkeypatch.delenv("RPC_URL", raising=False)
    monkeypatch.delenv("POLL_INTERVAL_SECONDS", raising=False)


@pytest.fixture
def tmp_config(tmp_path: Path) -> Path:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
network:
  name: testnet
timing:
  poll_interval: 10
  funding_interval: 3600
retry:
  max_retries: 2
  retry_delay: 0
logging:
  structured: false
"""
    )
    return config_path


@pytest.fixture
def ledger(monkeypatch: pytest.MonkeyPatch) -> FakeLedger:
    fake = FakeLedger()
    monkeypatch.setattr(main_module, "_build_client", lambda cfg: fake)
    return fake


def test_missing_config_exits_1(tmp_path: Path, env: None) -> None:
    result = CliRunner().invoke(cli, ["--config", str(tmp_path / "missing.yaml"), "scan"])
    assert result.exit_code == 1
    assert "Configuration error" in result.output


def test_missing_secret_exits_1(tmp_config: Path, env: None, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("KEEPER_SECRET_KEY")
    result = CliRunner().invoke(cli, ["--config", str(tmp_config), "sweep"])
    assert result.exit_code == 1
    assert "KEEPER_SECRET_KEY" in result.output


def test_cli_scan(tmp_config: Path, env: None, ledger: FakeLedger) -> None:
    ledger.add_position(1, liquidatable=True)
    ledger.add_position(2)
    ledger.add_order(5, triggered=True)
    ledger.add_order(6, triggered=True, order_type=1, has_position=True, position_id=40)

    result = CliRunner().invoke(cli, ["--config", str(tmp_config), "scan"])
    assert result.exit_code == 0, result.output
    assert "Liquidatable positions : 1" in result.output
    assert "Executable orders      : 5" in result.output
    assert "Orphaned orders        : 6" in result.output
    assert ledger.writes == []


def test_cli_scan_empty(tmp_config: Path, env: None, ledger: FakeLedger) -> None:
    result = CliRunner().invoke(cli, ["--config", str(tmp_config), "scan"])
    assert result.exit_code == 0, result.output
    assert "Liquidatable positions : (none)" in result.output


def test_cli_sweep(tmp_config: Path, env: None, ledger: FakeLedger) -> None:
    ledger.add_position(1, liquidatable=True)
    ledger.add_order(5, triggered=True)

    result = CliRunner().invoke(cli, ["--config", str(tmp_config), "sweep", "--funding"])
    assert result.exit_code == 0, result.output
    assert "[OK] liquidate 1" in result.output
    assert "[OK] execute_order 5" in result.output
    assert [m for m, _ in ledger.writes] == ["liquidate", "execute_order", "apply_funding"]

    stats = json.loads(result.output[result.output.index("{\n"):])
    assert stats["liquidations_executed"] == 1
    assert stats["orders_executed"] == 1
    assert stats["funding_applications"] == 1
    assert stats["total_rewards_earned"] == "5"


def test_cli_sweep_oracle_disabled(tmp_config: Path, env: None, ledger: FakeLedger) -> None:
    result = CliRunner().invoke(cli, ["--config", str(tmp_config), "sweep", "--oracle"])
    assert result.exit_code == 0, result.output
    assert "Oracle updates disabled" in result.output


def test_cli_run_registers_jobs(
    tmp_config: Path, env: None, ledger: FakeLedger, monkeypatch: pytest.MonkeyPatch
) -> None:
    seen = {}

    def one_pass(self: KeeperScheduler, **kwargs) -> None:
        for job in self.jobs.values():
            job.callback()
            seen[job.name] = job.interval

    monkeypatch.setattr(KeeperScheduler, "run_forever", one_pass)
    ledger.add_position(3, liquidatable=True)

    result = CliRunner().invoke(cli, ["--config", str(tmp_config), "run"])
    assert result.exit_code == 0, result.output
    assert seen == {"sweep": 10.0, "funding": 3600.0}
    assert KEEPER in result.output
    assert "Shutting down after 1 cycle(s)" in result.output
    assert ledger.write_count("liquidate") == 1


def test_cli_health(tmp_config: Path, env: None, ledger: FakeLedger) -> None:
    result = CliRunner().invoke(cli, ["--config", str(tmp_config), "health"])
    assert result.exit_code == 0, result.output
    assert "[OK] config" in result.output
    assert "[OK] rpc" in result.output
    assert "Health: HEALTHY" in result.output


def test_cli_health_unhealthy_rpc(
    tmp_config: Path, env: None, ledger: FakeLedger, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(ledger, "health", lambda: "unreachable")
    result = CliRunner().invoke(cli, ["--config", str(tmp_config), "health"])
    assert result.exit_code == 1
    assert "[FAIL] rpc" in result.output


def test_cli_health_bad_config(tmp_path: Path, env: None) -> None:
    result = CliRunner().invoke(cli, ["--config", str(tmp_path / "missing.yaml"), "health"])
    assert result.exit_code == 1
    assert "[FAIL] config" in result.output


def test_zero_poll_interval_env_exits_1(tmp_config: Path, env: None, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("POLL_INTERVAL_SECONDS", "0")
    result = CliRunner().invoke(cli, ["--config", str(tmp_config), "run"])
    assert result.exit_code == 1
    assert "poll_interval" in result.output
