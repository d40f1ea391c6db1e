"""
assetrewards/cli.py

Command line interface for the rewards engine.

Every command prints a JSON document. Rewards errors print
{"error": ..., "message": ...} and exit with status 1.

Usage:
    assetrewards --storage-dir ./data schedule 1000 EVR STOCK1 --height 120000
    assetrewards record-snapshot snapshot.json
    assetrewards calculate <reward_id> --electrumx host:50002
    ASSETREWARDS_WIF=... assetrewards execute <reward_id> --electrumx host:50002
"""

import asyncio
import dataclasses
import json
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

import click

from .config import RewardsConfig
from .electrumx import ElectrumXClient, ElectrumXError, parse_server
from .errors import InvalidParameterError, RewardsError
from .rewards import PayoutLedger, RequestStore, RewardsController, SnapshotStore
from .rewards.snapshots import OwnershipSnapshot
from .storage import open_backend

logger = logging.getLogger("assetrewards.cli")


LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


def _echo(document: Any) -> None:
    click.echo(json.dumps(document, indent=2, sort_keys=True))


def _fail(ctx: click.Context, error: Exception) -> None:
    _echo({"error": type(error).__name__, "message": str(error)})
    ctx.exit(1)


def _electrumx_client(servers, use_ssl: bool) -> ElectrumXClient:
    return ElectrumXClient([parse_server(s) for s in servers], use_ssl=use_ssl)


def _asset_units_source(
    funding_units: Optional[int], client: Optional[ElectrumXClient]
) -> Callable[[str], int]:
    """Decimal places of a funding asset, from --funding-units or the server."""

    def units(asset_name: str) -> int:
        if funding_units is not None:
            return funding_units
        if client is None:
            raise InvalidParameterError(
                f"Decimal places of {asset_name} unknown; "
                f"pass --funding-units or an --electrumx server"
            )
        found = client.get_asset_units(asset_name)
        if found is None:
            raise InvalidParameterError(f"Asset {asset_name} not found on the ElectrumX server")
        return found

    return units


def _run(
    ctx: click.Context,
    operation: Callable[[RewardsController], Awaitable[Any]],
    transfer_builder=None,
    chain_height: Optional[Callable[[], int]] = None,
    asset_units: Optional[Callable[[str], Optional[int]]] = None,
) -> None:
    config: RewardsConfig = ctx.obj

    async def runner():
        backend = open_backend(config.storage_dir)
        controller = RewardsController(
            config,
            RequestStore(backend),
            PayoutLedger(backend),
            SnapshotStore(backend),
            transfer_builder=transfer_builder,
            chain_height=chain_height,
            asset_units=asset_units,
        )
        return await operation(controller)

    try:
        result = asyncio.run(runner())
    except (RewardsError, ElectrumXError, ValueError) as e:
        logger.debug(f"Command failed: {e}")
        _fail(ctx, e)
    else:
        _echo(result)


# ============================================================================
# COMMAND GROUP
# ============================================================================

@click.group()
@click.option(
    "--storage-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory holding the reward tables (default: ~/.assetrewards/storage)",
)
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    show_default=True,
)
@click.option(
    "--enable-rewards/--disable-rewards",
    default=None,
    help="Override ASSETREWARDS_ENABLED",
)
@click.option("--native-currency", default=None, help="Ticker paid through the native path")
@click.option("--batch-size", type=int, default=None, help="Recipients per transaction")
@click.pass_context
def cli(ctx, storage_dir, log_level, enable_rewards, native_currency, batch_size):
    """Scheduled pro-rata rewards for asset holders."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    config = RewardsConfig.from_env()
    overrides = {}
    if storage_dir is not None:
        overrides["storage_dir"] = storage_dir
    if enable_rewards is not None:
        overrides["enabled"] = enable_rewards
    if native_currency:
        overrides["native_currency"] = native_currency
    if batch_size is not None:
        overrides["batch_size"] = batch_size

    try:
        ctx.obj = dataclasses.replace(config, **overrides)
    except ValueError as e:
        raise click.BadParameter(str(e))


electrumx_option = click.option(
    "--electrumx",
    "servers",
    multiple=True,
    help="ElectrumX server host[:port], repeatable",
)
ssl_option = click.option("--ssl/--no-ssl", "use_ssl", default=True, show_default=True)


# ============================================================================
# REQUESTS
# ============================================================================

@cli.command()
@click.argument("amount")
@click.argument("funding_asset")
@click.argument("target_asset")
@click.option("--exceptions", default="", help="Comma-separated addresses excluded from payout")
@click.option("--wallet-name", default="", help="Funding wallet used at execution")
@click.option("--height", type=int, default=None, help="Current chain height")
@electrumx_option
@ssl_option
@click.pass_context
def schedule(ctx, amount, funding_asset, target_asset, exceptions, wallet_name, height, servers, use_ssl):
    """Schedule a reward at the current height plus the offset."""
    client = None
    if height is None and servers:
        client = _electrumx_client(servers, use_ssl)

    try:
        _run(
            ctx,
            lambda c: c.schedule(
                amount,
                funding_asset,
                target_asset,
                exception_addresses=exceptions,
                wallet_name=wallet_name,
                current_height=height,
            ),
            chain_height=client.get_block_height if client else None,
        )
    finally:
        if client is not None:
            client.close()


@cli.command()
@click.argument("reward_id")
@click.pass_context
def get(ctx, reward_id):
    """Show a scheduled reward."""
    _run(ctx, lambda c: c.get(reward_id))


@cli.command()
@click.argument("reward_id")
@click.pass_context
def cancel(ctx, reward_id):
    """Remove a scheduled reward (its payout entry stays)."""
    _run(ctx, lambda c: c.cancel(reward_id))


# ============================================================================
# PAYOUTS
# ============================================================================

@cli.command()
@click.argument("reward_id")
@click.option(
    "--funding-units",
    type=click.IntRange(0, 8),
    default=None,
    help="Decimal places of a token funding asset (default: ask --electrumx)",
)
@electrumx_option
@ssl_option
@click.pass_context
def calculate(ctx, reward_id, funding_units, servers, use_ssl):
    """
    Compute the payout list from the ownership snapshot.

    Token-funded rewards are truncated to the funding asset's decimal
    places, taken from --funding-units or looked up on an ElectrumX server.
    """
    client = None
    if funding_units is None and servers:
        client = _electrumx_client(servers, use_ssl)

    try:
        _run(
            ctx,
            lambda c: c.calculate(reward_id),
            asset_units=_asset_units_source(funding_units, client),
        )
    finally:
        if client is not None:
            client.close()


@cli.command("get-payments")
@click.argument("reward_id")
@click.pass_context
def get_payments(ctx, reward_id):
    """Show the payout entry with per-payment status."""
    _run(ctx, lambda c: c.get_payments(reward_id))


@cli.command("cancel-payments")
@click.argument("reward_id")
@click.pass_context
def cancel_payments(ctx, reward_id):
    """Remove a payout entry (the request stays)."""
    _run(ctx, lambda c: c.cancel_payments(reward_id))


@cli.command()
@click.argument("reward_id")
@click.option("--wif", envvar="ASSETREWARDS_WIF", required=True, help="Funding wallet key (WIF)")
@click.option("--wallet-name", default="", help="Funding wallet name (default: the request's)")
@click.option("--network", default="mainnet", show_default=True)
@electrumx_option
@ssl_option
@click.pass_context
def execute(ctx, reward_id, wif, wallet_name, network, servers, use_ssl):
    """Send every pending payment of a reward."""
    from .blockchain.tx_builder import EvrmoreTransferBuilder, FundingWallet

    if not servers:
        raise click.UsageError("At least one --electrumx server is required")

    client = _electrumx_client(servers, use_ssl)
    try:
        try:
            builder = EvrmoreTransferBuilder(client)
            builder.register_wallet(
                FundingWallet.from_wif(wallet_name, wif, network=network), default=True
            )
        except ImportError as e:
            logger.error(f"Cannot build transfers: {e}")
            _fail(ctx, e)
        _run(ctx, lambda c: c.execute(reward_id, wallet_name), transfer_builder=builder)
    finally:
        client.close()


# ============================================================================
# SNAPSHOTS AND MAINTENANCE
# ============================================================================

def _load_snapshot(path: Path) -> OwnershipSnapshot:
    data = json.loads(path.read_text())
    owners = data.get("owners", [])
    if isinstance(owners, dict):
        data = dict(data, owners=[
            {"address": addr, "amount_owned": amount} for addr, amount in owners.items()
        ])
    return OwnershipSnapshot.from_dict(data)


@cli.command("record-snapshot")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def record_snapshot(ctx, path):
    """
    Store an ownership snapshot from a JSON file.

    The file holds asset_name, height and owners, either as a list of
    {address, amount_owned} or as an {address: amount} mapping. Amounts
    are base units.
    """
    try:
        snapshot = _load_snapshot(path)
    except (ValueError, KeyError, TypeError) as e:
        raise click.BadParameter(f"Malformed snapshot file: {e}")

    async def record(controller: RewardsController):
        await controller.snapshots.record(snapshot)
        return {
            "asset_name": snapshot.asset_name,
            "height": snapshot.height,
            "owner_count": len(snapshot.owners),
            "total_supply": snapshot.total_supply,
        }

    _run(ctx, record)


@cli.command()
@click.option("--height", type=int, default=None, help="Current chain height")
@electrumx_option
@ssl_option
@click.pass_context
def reconcile(ctx, height, servers, use_ssl):
    """Report gaps between the request and payout tables."""
    if height is None:
        if not servers:
            raise click.UsageError("Pass --height or an --electrumx server")
        client = _electrumx_client(servers, use_ssl)
        try:
            height = client.get_block_height()
        except ElectrumXError as e:
            _fail(ctx, e)
        finally:
            client.close()

    _run(ctx, lambda c: c.reconcile(height))


def main():
    cli(prog_name="assetrewards")


if __name__ == "__main__":
    main()
