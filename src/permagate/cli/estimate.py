"""Cost commands for the permagate CLI.

Commands:
- estimate: Price local files and show the rail each would be charged on
- topup: Estimate credits received for converting tokens
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import click

from permagate.cli.config import load_gate_config
from permagate.client import NetworkOracle
from permagate.core.config import GateConfig
from permagate.core.types import PaymentPreference
from permagate.queue import (
    BalanceGate,
    CostEstimator,
    LocalChange,
    OracleError,
    PendingUpload,
    PriceCache,
    RailSelection,
    build_cost_breakdown,
    estimate_top_up,
    format_file_size,
    format_token_amount,
    is_too_large,
)

logger = logging.getLogger(__name__)


async def _fetch_balances(oracle: NetworkOracle) -> tuple[float, float]:
    """Return (credit, token) balances, zero where the oracle fails."""
    credit = token = 0.0
    try:
        credit = await oracle.get_credit_balance()
    except OracleError as e:
        click.echo(f"Warning: credit balance unavailable ({e})", err=True)
    try:
        token = await oracle.get_token_balance()
    except OracleError as e:
        click.echo(f"Warning: token balance unavailable ({e})", err=True)
    return credit, token


async def _estimate(
    config: GateConfig,
    files: list[Path],
    credit_balance: float | None,
    token_balance: float | None,
    offline: bool,
) -> None:
    oracle = None if offline else NetworkOracle.from_config(config)
    try:
        cache = PriceCache(oracle, config)
        snapshot = await cache.snapshot()
        if cache.warning:
            click.echo(f"Warning: {cache.warning}", err=True)

        if credit_balance is None or token_balance is None:
            fetched = (0.0, 0.0)
            if oracle is not None and config.wallet_address:
                fetched = await _fetch_balances(oracle)
            if credit_balance is None:
                credit_balance = fetched[0]
            if token_balance is None:
                token_balance = fetched[1]
    finally:
        if oracle is not None:
            await oracle.aclose()

    estimator = CostEstimator()
    gate = BalanceGate(config.free_threshold_bytes)
    items = []
    too_large = []
    for path in files:
        item = PendingUpload.from_change(LocalChange(str(path), path.stat().st_size))
        if is_too_large(item, config.max_file_size_bytes):
            too_large.append(item)
            continue
        estimate = estimator.estimate(
            item,
            config.free_threshold_bytes,
            snapshot.credit_rate,
            snapshot.token_price_for_bytes,
        )
        item.estimated_cost = estimate.estimated_cost
        item.estimated_turbo_cost = estimate.estimated_turbo_cost
        items.append(item)

    def select(item: PendingUpload) -> RailSelection:
        return gate.select_rail(
            item, credit_balance, token_balance, config.payment_preference
        )

    for item in items:
        selection = select(item)
        status = "ok" if selection.sufficient else "BLOCKED"
        click.echo(
            f"{format_file_size(item.file_size):>10}  "
            f"{format_token_amount(item.estimated_cost)} tokens  "
            f"{format_token_amount(item.estimated_turbo_cost or 0.0)} credits  "
            f"{selection.rail.value:<6}  {status:<7}  {item.local_path}"
        )
        if not selection.sufficient:
            click.echo(f"    {selection.reason}")

    breakdown = build_cost_breakdown(items, select)
    click.echo("")
    click.echo(f"Files: {breakdown.total_files}")
    click.echo(f"  Free:    {breakdown.free_files}")
    click.echo(
        f"  Credits: {breakdown.credit_files} "
        f"({format_token_amount(breakdown.total_credit_cost)} credits)"
    )
    click.echo(
        f"  Tokens:  {breakdown.token_files} "
        f"({format_token_amount(breakdown.total_token_cost)} tokens)"
    )
    for item in too_large:
        click.echo(
            f"Too large: {item.local_path} ({format_file_size(item.file_size)}, "
            f"limit {format_file_size(config.max_file_size_bytes)})"
        )
    if snapshot.is_fallback:
        click.echo("Prices are estimates (oracle unavailable).")


@click.command()
@click.argument(
    "paths",
    nargs=-1,
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option("--credit-balance", type=float, help="Credit balance to check against.")
@click.option("--token-balance", type=float, help="Token balance to check against.")
@click.option(
    "--preference",
    type=click.Choice([p.value for p in PaymentPreference]),
    help="Override the configured payment preference.",
)
@click.option("--offline", is_flag=True, help="Use fallback prices; no network calls.")
def estimate(
    paths: tuple[Path, ...],
    credit_balance: float | None,
    token_balance: float | None,
    preference: str | None,
    offline: bool,
) -> None:
    """Estimate what publishing PATHS would cost."""
    config = load_gate_config()
    if preference:
        config.payment_preference = PaymentPreference(preference)
    logger.debug("Estimating %d files (offline=%s)", len(paths), offline)
    asyncio.run(_estimate(config, list(paths), credit_balance, token_balance, offline))


async def _credit_rate(config: GateConfig, offline: bool) -> float:
    oracle = None if offline else NetworkOracle.from_config(config)
    try:
        cache = PriceCache(oracle, config)
        snapshot = await cache.snapshot()
        if cache.warning:
            click.echo(f"Warning: {cache.warning}", err=True)
        return snapshot.credit_rate
    finally:
        if oracle is not None:
            await oracle.aclose()


@click.command()
@click.argument("amount", type=float)
@click.option("--fee-rate", type=float, help="Override the configured conversion fee rate.")
@click.option("--offline", is_flag=True, help="Use the fallback credit rate; no network calls.")
def topup(amount: float, fee_rate: float | None, offline: bool) -> None:
    """Estimate credits received for converting AMOUNT tokens."""
    config = load_gate_config()
    rate = config.conversion_fee_rate if fee_rate is None else fee_rate
    credit_rate = asyncio.run(_credit_rate(config, offline))
    try:
        result = estimate_top_up(amount, rate, credit_rate)
    except ValueError as e:
        raise click.ClickException(str(e)) from e

    click.echo(f"Converting: {format_token_amount(result.token_amount)} tokens")
    click.echo(f"Fee (~{rate:.0%}): {format_token_amount(result.fee)} tokens")
    click.echo(f"After fee: {format_token_amount(result.net_tokens)} tokens")
    click.echo(
        f"You receive ~{format_token_amount(result.net_credits)} credits "
        f"(at {credit_rate:g} credits per token)"
    )
