"""Stack Tracker CLI."""

import logging
from pathlib import Path

import click

from .config import Config, get_config
from .errors import HoldingsError
from .models import (
    METAL_LABELS,
    METAL_SYMBOLS,
    METALS,
    PRODUCT_TYPES,
    WEIGHT_CONVERSIONS,
    Holding,
    HoldingFormData,
)
from .remote.store import RemoteHoldingsStore, build_remote_backend
from .storage.blobs import JsonBlobStorage
from .storage.exports import export_to_csv
from .storage.local_store import LocalHoldingsStore
from .sync.coordinator import SyncCoordinator
from .sync.pending import PendingActionLog
from .sync.providers import Connectivity, SessionIdentity, probe_url


def build_coordinator(config: Config, offline: bool = False) -> SyncCoordinator:
    """Wire the stores and collaborators for one CLI invocation."""
    storage = JsonBlobStorage(config.data_dir)
    if offline:
        online = False
    elif config.uses_http_remote:
        online = probe_url(config.remote_url, timeout=config.request_timeout)
    else:
        online = True

    return SyncCoordinator(
        local=LocalHoldingsStore(storage, config.holdings_key),
        remote=RemoteHoldingsStore(build_remote_backend(config)),
        pending=PendingActionLog(storage, config.pending_key),
        identity=SessionIdentity(config),
        connectivity=Connectivity(online=online),
    )


def _coordinator(ctx: click.Context) -> SyncCoordinator:
    if "coordinator" not in ctx.obj:
        coordinator = build_coordinator(ctx.obj["config"], offline=ctx.obj["offline"])
        ctx.obj["coordinator"] = coordinator
        ctx.call_on_close(coordinator.close)
        ctx.call_on_close(coordinator.remote.close)
    return ctx.obj["coordinator"]


def _fail(error: HoldingsError) -> click.ClickException:
    return click.ClickException(str(error))


def _print_holdings(holdings: list[Holding], title: str) -> None:
    """Print holdings as a rich table."""
    from rich.console import Console
    from rich.table import Table

    console = Console()
    table = Table(title=title)
    table.add_column("ID", style="dim")
    table.add_column("Metal", style="cyan")
    table.add_column("Type")
    table.add_column("Oz/item", justify="right")
    table.add_column("Qty", justify="right")
    table.add_column("Total oz", justify="right")
    table.add_column("Price/item", justify="right")
    table.add_column("Purchased")
    table.add_column("Notes", style="dim")

    for h in holdings:
        table.add_row(
            h.id,
            METAL_LABELS.get(h.metal, h.metal),
            h.type,
            f"{h.weight:.4f}",
            str(h.quantity),
            f"{h.total_oz:.4f}",
            f"${h.purchase_price:,.2f}",
            h.purchase_date,
            h.notes or "-",
        )

    console.print(table)


def _status_line(coordinator: SyncCoordinator) -> str:
    user = coordinator.identity.user_id or "not signed in"
    pending = len(coordinator.pending)
    return f"[{coordinator.status_label()}] user: {user}, pending changes: {pending}"


def holding_options(func):
    """Shared options for commands that take holding form fields."""
    options = [
        click.option("--metal", type=click.Choice(METALS), required=True, help="Metal"),
        click.option("--type", "type_", required=True, help="Product type, e.g. 'American Eagle' (see 'types')"),
        click.option("--weight", type=float, required=True, help="Weight per item"),
        click.option(
            "--unit",
            type=click.Choice(list(WEIGHT_CONVERSIONS)),
            default="oz",
            show_default=True,
            help="Unit of --weight",
        ),
        click.option("--quantity", type=int, default=1, show_default=True, help="Number of items"),
        click.option("--price", type=float, required=True, help="Purchase price per item"),
        click.option("--date", "purchase_date", default=None, help="Purchase date (YYYY-MM-DD)"),
        click.option("--notes", default=None, help="Optional notes"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _form(metal, type_, weight, unit, quantity, price, purchase_date, notes) -> HoldingFormData:
    form = HoldingFormData(
        metal=metal,
        type=type_,
        weight=weight,
        weight_unit=unit,
        quantity=quantity,
        purchase_price=price,
        notes=notes,
    )
    if purchase_date:
        form.purchase_date = purchase_date
    return form


@click.group()
@click.option("--offline", is_flag=True, help="Do not contact the remote store")
@click.option("-v", "--verbose", is_flag=True, help="Show sync log messages")
@click.pass_context
def cli(ctx: click.Context, offline: bool, verbose: bool) -> None:
    """Stack Tracker - precious-metal holdings, online or offline."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["config"] = get_config()
    ctx.obj["offline"] = offline


@cli.command("list")
@click.pass_context
def list_holdings(ctx: click.Context) -> None:
    """List holdings from the current source of truth."""
    coordinator = _coordinator(ctx)
    try:
        holdings = coordinator.list()
    except HoldingsError as e:
        raise _fail(e)

    click.echo(_status_line(coordinator))
    if not holdings:
        click.echo("No holdings yet. Use 'add' to record one.")
        return
    _print_holdings(holdings, "Holdings")


@cli.command("add")
@holding_options
@click.pass_context
def add(ctx: click.Context, **fields) -> None:
    """Record a new holding."""
    coordinator = _coordinator(ctx)
    try:
        coordinator.refresh()
        holding = coordinator.add(_form(**fields))
    except HoldingsError as e:
        raise _fail(e)

    click.echo(f"Added {holding.quantity} x {holding.type} ({holding.total_oz:.4f} oz) [{holding.id}]")
    if coordinator.has_pending_changes:
        click.echo("Change saved locally and queued for sync.")


@cli.command("edit")
@click.argument("holding_id")
@holding_options
@click.pass_context
def edit(ctx: click.Context, holding_id: str, **fields) -> None:
    """Replace the fields of an existing holding."""
    coordinator = _coordinator(ctx)
    try:
        coordinator.refresh()
        holding = coordinator.update(holding_id, _form(**fields))
    except HoldingsError as e:
        raise _fail(e)

    click.echo(f"Updated {holding.type} [{holding.id}]")


@cli.command("delete")
@click.argument("holding_id")
@click.option("--yes", is_flag=True, help="Skip confirmation")
@click.pass_context
def delete(ctx: click.Context, holding_id: str, yes: bool) -> None:
    """Delete a holding."""
    if not yes and not click.confirm(f"Delete holding {holding_id}?", default=False):
        click.echo("Aborted.")
        return

    coordinator = _coordinator(ctx)
    try:
        coordinator.refresh()
        coordinator.delete(holding_id)
    except HoldingsError as e:
        raise _fail(e)

    click.echo(f"Deleted {holding_id}")


@cli.command("totals")
@click.pass_context
def totals(ctx: click.Context) -> None:
    """Show total ounces and cost per metal."""
    from rich.console import Console
    from rich.table import Table

    coordinator = _coordinator(ctx)
    try:
        coordinator.refresh()
    except HoldingsError as e:
        raise _fail(e)

    table = Table(title="Totals by Metal")
    table.add_column("Metal", style="cyan")
    table.add_column("Total oz", justify="right")
    table.add_column("Total cost", justify="right")
    for metal, entry in coordinator.get_totals_by_metal().items():
        label = f"{METAL_LABELS.get(metal, metal)} ({METAL_SYMBOLS.get(metal, '?')})"
        table.add_row(label, f"{entry.total_oz:.4f}", f"${entry.total_cost:,.2f}")

    Console().print(table)


@cli.command("types")
@click.option("--metal", type=click.Choice(METALS), default=None, help="Only this metal")
def types(metal: str | None) -> None:
    """List common product types to use with --type."""
    for name in [metal] if metal else METALS:
        click.echo(f"{METAL_LABELS[name]}: {', '.join(PRODUCT_TYPES[name])}")


@cli.command("export")
@click.option("--output", type=click.Path(file_okay=False), default=None, help="Output directory")
@click.pass_context
def export(ctx: click.Context, output: str | None) -> None:
    """Export the current holdings to CSV."""
    config = ctx.obj["config"]
    coordinator = _coordinator(ctx)
    try:
        holdings = coordinator.refresh()
    except HoldingsError as e:
        raise _fail(e)

    if not holdings:
        click.echo("Nothing to export.")
        return

    output_dir = Path(output) if output else config.exports_dir
    csv_path = export_to_csv(holdings, output_dir)
    click.echo(f"Exported {len(holdings)} holding(s) to {csv_path}")


@cli.command("import")
@click.argument("csv_file", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def import_csv(ctx: click.Context, csv_file: str) -> None:
    """Import holdings from a CSV file, merging with existing ones."""
    coordinator = _coordinator(ctx)
    text = Path(csv_file).read_text(encoding="utf-8")
    try:
        coordinator.refresh()
        imported = coordinator.import_csv(text)
    except HoldingsError as e:
        raise _fail(e)

    click.echo(f"Imported {len(imported)} holding(s)")


@cli.command("sync")
@click.pass_context
def sync(ctx: click.Context) -> None:
    """Replay queued changes against the remote store."""
    coordinator = _coordinator(ctx)
    if not coordinator.signed_in:
        click.echo("Not signed in; holdings are stored on this device only.")
        return
    if not coordinator.is_online:
        click.echo("Offline; queued changes will be sent when the remote store is reachable.")
        return

    try:
        result = coordinator.sync()
    except HoldingsError as e:
        raise _fail(e)

    click.echo(f"Replayed {result.applied} change(s), {len(coordinator.pending)} still pending.")


@cli.command("status")
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show sign-in, connectivity and queue status."""
    coordinator = _coordinator(ctx)
    click.echo(_status_line(coordinator))
    for action in coordinator.pending.list():
        click.echo(f"  {action.enqueued_at}  {action.type:<6}  {action.holding_id or '-'}")


@cli.command("login")
@click.option("--user", "user_id", required=True, help="User id to scope remote holdings by")
@click.pass_context
def login(ctx: click.Context, user_id: str) -> None:
    """Sign in as a user. Local holdings migrate on the next online read."""
    identity = SessionIdentity(ctx.obj["config"])
    try:
        identity.sign_in(user_id.strip())
    except ValueError as e:
        raise click.ClickException(str(e))
    click.echo(f"Signed in as {identity.user_id}")


@cli.command("logout")
@click.pass_context
def logout(ctx: click.Context) -> None:
    """Sign out. Holdings entered afterwards stay on this device."""
    identity = SessionIdentity(ctx.obj["config"])
    identity.sign_out()
    click.echo("Signed out.")


@cli.command("clear-local")
@click.option("--yes", is_flag=True, help="Skip confirmation")
@click.pass_context
def clear_local(ctx: click.Context, yes: bool) -> None:
    """Remove every holding stored on this device."""
    if not yes and not click.confirm("Remove all local holdings?", default=False):
        click.echo("Aborted.")
        return

    coordinator = _coordinator(ctx)
    try:
        coordinator.local.clear_all()
    except HoldingsError as e:
        raise _fail(e)
    click.echo("Local holdings cleared.")


def main() -> None:
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
