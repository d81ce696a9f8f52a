"""
CLI entry point: keeper run | scan | sweep | health.

Every command loads config from --config (default config.yaml) plus the
environment. Exit code 1 on configuration errors, 0 otherwise.
"""

import json
import logging
import sys

import click
from dotenv import load_dotenv

from config import ConfigError, KeeperConfig, load_config

load_dotenv()

logger = logging.getLogger("keeper")


def _setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s  %(message)s",
        stream=sys.stderr,
    )
    logging.getLogger().setLevel(level)


def _load(ctx: click.Context, *, require_complete: bool = True) -> KeeperConfig:
    """Load config or exit 1. Missing address / key is fatal before any work."""
    try:
        cfg = load_config(ctx.obj["config_path"])
        if require_complete:
            cfg.validate()
    except ConfigError as exc:
        click.echo(f"Configuration error: {exc}", err=True)
        raise SystemExit(1)
    logging.getLogger().setLevel(cfg.logging.level)
    return cfg


def _build_client(cfg: KeeperConfig):
    from ledger import SorobanLedgerClient

    try:
        return SorobanLedgerClient(
            cfg.network.rpc_url,
            cfg.network.passphrase,
            cfg.secret_key,
            base_fee=cfg.ledger.base_fee,
            tx_timeout=cfg.ledger.tx_timeout,
            poll_interval=cfg.ledger.poll_interval,
            max_poll_attempts=cfg.ledger.max_poll_attempts,
            domain_error_codes=cfg.retry.domain_error_codes,
        )
    except ValueError as exc:
        click.echo(f"Configuration error: invalid signing key ({exc})", err=True)
        raise SystemExit(1)


def _build_runner(cfg: KeeperConfig, client, events=None):
    from data import get_binance_fetcher
    from keeper import CycleRunner, OracleUpdater, RetryPolicy
    from ledger import MarketGateway

    market = MarketGateway(client, cfg.contracts.market, cfg.contracts.oracle)
    retry = RetryPolicy(max_retries=cfg.retry.max_retries, retry_delay=cfg.retry.retry_delay)
    oracle = None
    if cfg.oracle_active:
        oracle = OracleUpdater(market, get_binance_fetcher(cfg.oracle.feed_url), cfg.assets, retry)
    return CycleRunner(
        market,
        retry=retry,
        oracle=oracle,
        events=events,
        scan_workers=cfg.scan.workers,
    )


@click.group()
@click.option("--config", "config_path", default="config.yaml", help="Path to config file.")
@click.pass_context
def cli(ctx: click.Context, config_path: str) -> None:
    """keeper: liquidations, order execution, funding and oracle upkeep for the perp market."""
    _setup_logging()
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


# ---------- keeper run ----------


@cli.command()
@click.pass_context
def run(ctx: click.Context) -> None:
    """Run the keeper until SIGINT / SIGTERM."""
    cfg = _load(ctx)
    from cli.structured_log import StructuredEventLogger
    from keeper import KeeperScheduler

    client = _build_client(cfg)
    events = StructuredEventLogger(client.public_key, enabled=cfg.logging.structured)
    runner = _build_runner(cfg, client, events)

    scheduler = KeeperScheduler()
    scheduler.add_job("sweep", cfg.timing.poll_interval, runner.run_sweep)
    scheduler.add_job("funding", cfg.timing.funding_interval, runner.run_funding)
    if runner.has_oracle:
        scheduler.add_job("oracle", cfg.timing.oracle_interval, runner.run_oracle_update)

    click.echo(f"Keeper {client.public_key} on {cfg.network.name} ({cfg.network.rpc_url})")
    click.echo(f"  Market: {cfg.contracts.market}")
    click.echo(f"  Oracle: {cfg.contracts.oracle or '(none)'}  |  Ctrl+C to stop")
    events.startup(cfg.network.name, cfg.contracts.market, list(scheduler.jobs))

    scheduler.run_forever()

    snapshot = runner.stats.snapshot()
    events.shutdown(**snapshot)
    click.echo(f"\nShutting down after {snapshot['cycles']} cycle(s). Goodbye.")


# ---------- keeper scan ----------


@cli.command()
@click.pass_context
def scan(ctx: click.Context) -> None:
    """Read-only scan: list liquidatable positions and executable orders. No writes."""
    cfg = _load(ctx)
    from keeper import OrderScanner, PositionScanner
    from ledger import MarketGateway

    client = _build_client(cfg)
    market = MarketGateway(client, cfg.contracts.market, cfg.contracts.oracle)

    liquidatable = PositionScanner(market, workers=cfg.scan.workers).scan_liquidatable()
    orders = OrderScanner(market, workers=cfg.scan.workers).scan_executable()

    click.echo(f"Liquidatable positions : {_ids(liquidatable)}")
    click.echo(f"Executable orders      : {_ids(orders.executable)}")
    click.echo(f"Orphaned orders        : {_ids(orders.orphaned)}")


def _ids(ids: list[int]) -> str:
    return ", ".join(str(i) for i in ids) if ids else "(none)"


# ---------- keeper sweep ----------


@cli.command()
@click.option("--funding", is_flag=True, default=False, help="Also apply funding once.")
@click.option("--oracle", is_flag=True, default=False, help="Also push oracle prices once.")
@click.pass_context
def sweep(ctx: click.Context, funding: bool, oracle: bool) -> None:
    """Run exactly one sweep (liquidations, then orders) and print stats."""
    cfg = _load(ctx)
    client = _build_client(cfg)
    runner = _build_runner(cfg, client)

    if oracle:
        if runner.has_oracle:
            runner.run_oracle_update()
        else:
            click.echo("Oracle updates disabled (no oracle contract or oracle.enabled=false).")
    report = runner.run_sweep()
    if funding:
        runner.run_funding()

    if report is not None:
        for action in report.actions:
            r = action.result
            outcome = "OK" if r.success else (r.kind.value if r.kind else "FAILED")
            click.echo(f"  [{outcome}] {action.kind} {action.target}"
                       + (f"  tx={r.tx_hash}" if r.tx_hash else "")
                       + (f"  {r.error}" if r.error else ""))
    click.echo(json.dumps(runner.stats.snapshot(), indent=2))


# ---------- keeper health ----------


@cli.command()
@click.pass_context
def health(ctx: click.Context) -> None:
    """Check config and RPC reachability.

    Exit code 0 = healthy, 1 = unhealthy. Designed for Docker HEALTHCHECK.
    """
    checks: list[tuple[str, bool, str]] = []

    try:
        cfg = load_config(ctx.obj["config_path"])
        cfg.validate()
        checks.append(("config", True, f"loaded ({cfg.network.name}, market={cfg.contracts.market})"))
    except ConfigError as e:
        checks.append(("config", False, str(e)))
        _print_health(checks)
        raise SystemExit(1)

    try:
        client = _build_client(cfg)
        status = client.health()
        checks.append(("rpc", status.lower() == "healthy", f"{cfg.network.rpc_url}: {status}"))
    except Exception as e:
        checks.append(("rpc", False, str(e)))

    checks.append((
        "oracle",
        True,
        "enabled" if cfg.oracle_active else "disabled (no oracle contract or oracle.enabled=false)",
    ))

    _print_health(checks)
    healthy = all(ok for _, ok, _ in checks)
    raise SystemExit(0 if healthy else 1)


def _print_health(checks: list[tuple[str, bool, str]]) -> None:
    for name, ok, detail in checks:
        status = "OK" if ok else "FAIL"
        click.echo(f"  [{status}] {name}: {detail}")
    healthy = all(ok for _, ok, _ in checks)
    click.echo(f"\nHealth: {'HEALTHY' if healthy else 'UNHEALTHY'}")


if __name__ == "__main__":
    cli()
