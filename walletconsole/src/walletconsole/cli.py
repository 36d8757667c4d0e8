"""
Wallet console CLI - build unsigned PSBTs, estimate fees, decode transactions
and inspect address UTXOs.
"""

from __future__ import annotations

import asyncio
import sys

import typer
from loguru import logger
from pydantic import ValidationError

from psbtcore.address import InvalidAddressError
from psbtcore.builder import PSBTBuildError, PSBTBuilder
from psbtcore.decode import DecodeError, decode_payload
from psbtcore.fees import estimate_fee, estimate_vsize
from psbtcore.models import Output, UtxoInput
from psbtcore.network import resolve_network

from walletconsole.config import get_settings
from walletconsole.indexer import IndexerClient, IndexerError
from walletconsole.rate_limiter import RateLimitExceeded, SlidingWindowRateLimiter
from walletconsole.service import FetchInProgressError, UtxoService
from walletconsole.utxos import UtxoBuckets, UtxoWithStatus

app = typer.Typer(
    name="wallet-console",
    help="Unsigned PSBT construction and UTXO inspection",
    add_completion=False,
)


def setup_logging(level: str = "INFO") -> None:
    """Configure loguru logging."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
    )


def parse_input_spec(spec: str) -> UtxoInput:
    """Parse TXID:VOUT:VALUE[:ADDRESS]."""
    parts = spec.split(":")
    if len(parts) not in (3, 4):
        raise typer.BadParameter(f"Expected TXID:VOUT:VALUE[:ADDRESS], got {spec!r}")
    txid, vout, value = parts[:3]
    address = parts[3] if len(parts) == 4 else ""
    try:
        return UtxoInput(txid=txid, vout=int(vout), value=int(value), address=address)
    except (ValueError, ValidationError) as e:
        raise typer.BadParameter(f"Invalid input {spec!r}: {e}") from e


def parse_output_spec(spec: str) -> Output:
    """Parse ADDRESS:AMOUNT."""
    address, sep, amount = spec.rpartition(":")
    if not sep or not address:
        raise typer.BadParameter(f"Expected ADDRESS:AMOUNT, got {spec!r}")
    try:
        return Output(address=address, amount=int(amount))
    except ValueError as e:
        raise typer.BadParameter(f"Invalid output {spec!r}: {e}") from e


@app.command()
def build(
    inputs: list[str] = typer.Option(
        ..., "--input", "-i", help="UTXO to spend as TXID:VOUT:VALUE:ADDRESS (repeatable)"
    ),
    outputs: list[str] = typer.Option(
        ..., "--output", "-o", help="Payment as ADDRESS:AMOUNT in sats (repeatable)"
    ),
    change_address: str = typer.Option(..., "--change-address", "-c", help="Change address"),
    fee_rate: float | None = typer.Option(None, "--fee-rate", "-f", help="Fee rate in sat/vB"),
    chain: str | None = typer.Option(None, "--chain", help="Chain identifier"),
    as_base64: bool = typer.Option(False, "--base64", help="Print the PSBT as base64"),
    log_level: str | None = typer.Option(None, "--log-level", "-l"),
) -> None:
    """Build an unsigned PSBT from selected UTXOs."""
    settings = get_settings()
    setup_logging(log_level or settings.log_level)

    if fee_rate is None:
        fee_rate = settings.default_fee_rate
    if fee_rate < settings.min_fee_rate:
        logger.error(f"Fee rate must be at least {settings.min_fee_rate} sat/vB")
        raise typer.Exit(1)

    utxos = [parse_input_spec(spec) for spec in inputs]
    payments = [parse_output_spec(spec) for spec in outputs]
    network = resolve_network(chain or settings.chain)

    try:
        result = PSBTBuilder(network=network).build(utxos, payments, change_address, fee_rate)
    except PSBTBuildError as e:
        logger.error(f"Failed to build PSBT: {e}")
        raise typer.Exit(1)

    typer.echo(result.to_base64() if as_base64 else result.to_hex())
    typer.echo(f"Fee:    {result.fee:,} sats")
    typer.echo(f"Change: {result.change_amount:,} sats")


@app.command("estimate-fee")
def estimate_fee_command(
    num_inputs: int = typer.Option(1, "--inputs", "-n", min=0, help="Number of inputs"),
    num_outputs: int = typer.Option(1, "--outputs", "-m", min=0, help="Number of outputs"),
    fee_rate: float = typer.Option(1.0, "--fee-rate", "-f", min=0.0, help="Fee rate in sat/vB"),
) -> None:
    """Estimate the fee of a transaction shape."""
    vsize = estimate_vsize(num_inputs, num_outputs)
    fee = estimate_fee(range(num_inputs), range(num_outputs), fee_rate)
    typer.echo(f"Virtual size: {vsize} vB")
    typer.echo(f"Fee:          {fee:,} sats")


@app.command()
def decode(
    payload: str = typer.Argument(..., help="PSBT (hex or base64) or raw transaction (hex)"),
    chain: str | None = typer.Option(None, "--chain", help="Chain used to render addresses"),
) -> None:
    """Decode a PSBT or raw transaction."""
    settings = get_settings()
    setup_logging(settings.log_level)

    try:
        decoded = decode_payload(payload, resolve_network(chain or settings.chain))
    except DecodeError as e:
        logger.error(str(e))
        raise typer.Exit(1)

    typer.echo(decoded.model_dump_json(indent=2))


@app.command()
def utxos(
    address: str = typer.Argument(..., help="Address to inspect"),
    with_status: bool = typer.Option(
        False, "--with-status", "-s", help="Fetch spent/locked status of each UTXO"
    ),
    chain: str | None = typer.Option(None, "--chain", help="Chain identifier"),
    log_level: str | None = typer.Option(None, "--log-level", "-l"),
) -> None:
    """List the UTXOs of an address, split into spendable, locked and spent."""
    settings = get_settings()
    setup_logging(log_level or settings.log_level)

    try:
        buckets = asyncio.run(_fetch_utxos(address, with_status, chain or settings.chain))
    except (
        InvalidAddressError,
        RateLimitExceeded,
        FetchInProgressError,
        IndexerError,
    ) as e:
        logger.error(f"Failed to fetch UTXOs: {e}")
        raise typer.Exit(1)

    _print_bucket("Spendable", buckets.spendable, buckets.total_spendable)
    _print_bucket("Locked", buckets.locked, buckets.total_locked)
    _print_bucket("Spent", buckets.spent, buckets.total_spent)


async def _fetch_utxos(address: str, with_status: bool, chain: str) -> UtxoBuckets:
    settings = get_settings()
    async with IndexerClient(
        settings.indexer_url,
        secret_token=settings.indexer_secret_token,
        timeout=settings.request_timeout,
    ) as indexer:
        service = UtxoService(
            indexer,
            SlidingWindowRateLimiter(
                settings.rate_limit_max_calls,
                settings.rate_limit_window_seconds,
                settings.rate_limit_max_keys,
            ),
            network=resolve_network(chain),
            status_batch_size=settings.status_batch_size,
        )
        return await service.fetch_utxos(address, with_status=with_status)


def _print_bucket(title: str, utxos: list[UtxoWithStatus], total: int) -> None:
    typer.echo(f"\n{title}: {len(utxos)} UTXO(s), {total:,} sats ({total / 1e8:.8f} BTC)")
    for utxo in utxos:
        line = f"  {utxo.outpoint}  {utxo.value:>15,} sats"
        if utxo.status is not None:
            line += f"  [{utxo.status.status}]"
        if utxo.utxo.inscriptions:
            line += f"  inscriptions={len(utxo.utxo.inscriptions)}"
        if utxo.utxo.runes:
            line += f"  runes={len(utxo.utxo.runes)}"
        typer.echo(line)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
