#!/usr/bin/env python3
"""
Bridge Ledger CLI

Command-line interface for inspecting a holder's bridge history and
cancelling awaiting bridge-out deposits.

Usage:
    bridge-ledger history <owner> [--family FAMILY] [--json]
    bridge-ledger summary <owner> [--json]
    bridge-ledger cancel <deposit_id> --account <address> [--yes]
"""

import asyncio
import json
from typing import Any, Callable, Dict, Optional

import click
from eth_utils import is_address
from rich.console import Console
from rich.table import Table

from .. import __version__
from ..config import LedgerConfig, load_config
from ..contracts.boundary import BridgeVaultBoundary
from ..exceptions import (
    BridgeLedgerError,
    CancelError,
    ConfigurationError,
    ConfirmationTimeoutError,
    RefreshError,
)
from ..ledger import (
    BatchDetailFetcher,
    CancellationCoordinator,
    LedgerSnapshot,
    PaginatedEnumerator,
    RecordFamily,
    RefreshOrchestrator,
)
from ..ledger.presentation import entry_row, summary_lines, tx_url
from ..logger import LogManager
from ..rpc import JsonRpcClient, RpcBridgeVault


FAMILY_CHOICES = {
    "out": RecordFamily.BRIDGE_OUT,
    "in": RecordFamily.BRIDGE_IN,
    "wrap": RecordFamily.WRAP_OP,
}

STATUS_STYLES = {
    "amber": "yellow",
    "red": "red",
    "blue": "blue",
    "green": "green",
    "default": "white",
}


def rpc_vault_factory(config: LedgerConfig) -> BridgeVaultBoundary:
    """Build the JSON-RPC vault described by *config*."""
    config.validate()
    client = JsonRpcClient(config.rpc.url, timeout=config.rpc.timeout)
    return RpcBridgeVault(client, config.contract.address, poll_interval=config.cancel.poll_interval)


def build_orchestrator(vault: BridgeVaultBoundary, config: LedgerConfig) -> RefreshOrchestrator:
    history = config.history
    return RefreshOrchestrator(
        vault,
        enumerator=PaginatedEnumerator(
            vault,
            page_size=history.page_size,
            max_pages=history.max_pages,
            call_timeout=config.rpc.timeout,
        ),
        fetcher=BatchDetailFetcher(
            vault,
            batch_size=history.batch_size,
            batch_delay=history.batch_delay,
            call_timeout=config.rpc.timeout,
        ),
    )


def validate_address(ctx, param, value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    if not is_address(value):
        raise click.BadParameter(f"not a valid address: {value}")
    return value


def _echo_issues(snapshot: LedgerSnapshot) -> None:
    if snapshot.complete:
        return
    click.echo(click.style("Warning: history may be incomplete", fg="yellow"), err=True)
    for issue in snapshot.issues:
        click.echo(
            click.style(f"  {issue.family.display_name} [{issue.stage}]: {issue.detail}", fg="yellow"),
            err=True,
        )


async def _refresh(factory: Callable[[LedgerConfig], BridgeVaultBoundary], config: LedgerConfig, owner: str) -> LedgerSnapshot:
    vault = factory(config)
    try:
        return await build_orchestrator(vault, config).refresh(owner)
    finally:
        await vault.close()


def _load_snapshot(ctx: click.Context, owner: str) -> LedgerSnapshot:
    obj: Dict[str, Any] = ctx.obj
    try:
        return asyncio.run(_refresh(obj["vault_factory"], obj["config"], owner))
    except RefreshError as e:
        raise click.ClickException(f"Could not load history: {e}")
    except ConfigurationError as e:
        raise click.ClickException(f"Configuration error: {e}")


@click.group()
@click.version_option(version=__version__, prog_name="bridge-ledger")
@click.option("--config", "-c", "config_path", type=click.Path(dir_okay=False), help="Path to bridge-ledger.toml")
@click.option("--rpc-url", help="JSON-RPC endpoint (overrides config)")
@click.option("--contract", callback=validate_address, help="Bridge vault address (overrides config)")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging level",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[str], rpc_url: Optional[str], contract: Optional[str], log_level: Optional[str]):
    """Bridge Ledger Command Line Interface

    Rebuilds bridge-out, bridge-in and wrap/unwrap history from the bridge
    vault contract.
    """
    obj = ctx.ensure_object(dict)
    if log_level:
        LogManager().set_level(log_level)

    if "config" not in obj:
        try:
            obj["config"] = load_config(config_path)
        except ConfigurationError as e:
            raise click.ClickException(str(e))
    config: LedgerConfig = obj["config"]
    if rpc_url:
        config.rpc.url = rpc_url
    if contract:
        config.contract.address = contract
    obj.setdefault("vault_factory", rpc_vault_factory)


@cli.command("history")
@click.argument("owner", callback=validate_address)
@click.option("--family", "-f", type=click.Choice(sorted(FAMILY_CHOICES)), help="Only show one record family")
@click.option("--json", "as_json", is_flag=True, help="Output raw JSON")
@click.pass_context
def history_cmd(ctx: click.Context, owner: str, family: Optional[str], as_json: bool):
    """Show the merged bridge history of OWNER, newest first.

    Examples:

        bridge-ledger history 0xAbC...123

        bridge-ledger history 0xAbC...123 --family out --json
    """
    snapshot = _load_snapshot(ctx, owner)
    entries = snapshot.by_family(FAMILY_CHOICES[family]) if family else list(snapshot)

    if as_json:
        data = snapshot.to_dict()
        data["entries"] = [e.to_dict() for e in entries]
        click.echo(json.dumps(data, indent=2))
        return

    _echo_issues(snapshot)
    if not entries:
        click.echo("No bridge history found.")
        return

    table = Table(title=f"Bridge history of {owner}")
    for column in ("Ref", "Type", "Amount", "Chain", "Counterparty", "Status", "Time", "Proof/Ref"):
        table.add_column(column, justify="right" if column == "Amount" else "left")
    for entry in entries:
        row = entry_row(entry)
        style = STATUS_STYLES.get(row["color"], "white")
        table.add_row(
            row["ref"],
            row["type"],
            row["amount"],
            row["chain"],
            row["counterparty"],
            f"[{style}]{row['status']}[/{style}]",
            row["time"],
            row["reference"],
        )
    Console().print(table)


@cli.command("summary")
@click.argument("owner", callback=validate_address)
@click.option("--json", "as_json", is_flag=True, help="Output raw JSON")
@click.pass_context
def summary_cmd(ctx: click.Context, owner: str, as_json: bool):
    """Show per-family record counts for OWNER."""
    snapshot = _load_snapshot(ctx, owner)
    summary = snapshot.summary()

    if as_json:
        click.echo(json.dumps({"owner": owner, "complete": snapshot.complete, **summary.to_dict()}, indent=2))
        return

    _echo_issues(snapshot)
    for line in summary_lines(summary):
        click.echo(line)


async def _cancel(factory, config: LedgerConfig, deposit_id: int, account: str, precheck: bool):
    vault = factory(config)
    try:
        coordinator = CancellationCoordinator(
            vault,
            account,
            orchestrator=build_orchestrator(vault, config),
            confirmation_timeout=config.cancel.confirmation_timeout,
            precheck=precheck,
            call_timeout=config.rpc.timeout,
        )
        return await coordinator.cancel(deposit_id)
    finally:
        await vault.close()


@cli.command("cancel")
@click.argument("deposit_id", type=click.IntRange(min=0))
@click.option("--account", "-a", callback=validate_address, help="Depositor account that signs the cancel")
@click.option("--timeout", type=click.FloatRange(min=0, min_open=True), help="Seconds to wait for confirmation")
@click.option("--no-precheck", is_flag=True, help="Skip reading the deposit status before submitting")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def cancel_cmd(ctx: click.Context, deposit_id: int, account: Optional[str], timeout: Optional[float], no_precheck: bool, yes: bool):
    """Cancel an Awaiting bridge-out deposit.

    The transaction is sent with eth_sendTransaction, so ACCOUNT must be
    managed (unlocked) by the node or wallet behind the RPC endpoint.

    Examples:

        bridge-ledger cancel 7 --account 0xAbC...123
    """
    config: LedgerConfig = ctx.obj["config"]
    account = account or config.cancel.account or None
    if timeout:
        config.cancel.confirmation_timeout = timeout

    if not yes:
        click.confirm(f"Cancel bridge-out deposit #{deposit_id} from {account or '<no account>'}?", abort=True)

    try:
        outcome = asyncio.run(
            _cancel(ctx.obj["vault_factory"], config, deposit_id, account, precheck=not no_precheck)
        )
    except ConfirmationTimeoutError as e:
        click.echo(click.style(str(e), fg="yellow"), err=True)
        if e.tx_hash:
            click.echo(f"TX: {tx_url(e.tx_hash)}", err=True)
        ctx.exit(2)
    except CancelError as e:
        raise click.ClickException(str(e))
    except BridgeLedgerError as e:
        raise click.ClickException(f"Cancel failed: {e}")

    click.echo(click.style(f"✓ Deposit #{deposit_id} canceled", fg="green", bold=True))
    click.echo(f"TX Hash: {outcome.tx_hash}")
    if outcome.snapshot is not None:
        entry = outcome.snapshot.find(RecordFamily.BRIDGE_OUT, deposit_id)
        if entry is not None:
            click.echo(f"Status: {entry.status.label}")


def main():
    cli(prog_name="bridge-ledger")


if __name__ == "__main__":
    main()
