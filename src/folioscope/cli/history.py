"""History subcommand - daily snapshots of portfolio totals."""

from datetime import date

from rich.panel import Panel
from rich.table import Table

from ..snapshots import calculate_max_drawdown
from .common import build_service, console, format_money, format_signed


def register_subcommand(subparsers):
    """Register the history subcommand and its save/list actions.

    Args:
        subparsers: The argparse subparsers action to add the command to.
    """
    parser = subparsers.add_parser(
        "history",
        help="Save or list daily portfolio snapshots",
        description="Record today's portfolio totals or list recent snapshots.",
    )
    actions = parser.add_subparsers(title="actions", dest="action", required=True)

    save = actions.add_parser("save", help="Value the portfolio and record today's totals")
    save.add_argument("--date", "-d", help="Record for this date (YYYY-MM-DD) instead of today")
    save.set_defaults(func=run_save)

    listing = actions.add_parser("list", help="List recent snapshots, newest first")
    listing.add_argument("--days", type=int, default=30, help="Window in days (default: 30)")
    listing.set_defaults(func=run_list)


def run_save(args):
    on_date = date.fromisoformat(args.date) if args.date else None
    service = build_service(args)
    with service.store:
        snapshot = service.save_snapshot(on_date)

    console.print(
        f"[green]Saved snapshot for {snapshot.snapshot_date}: "
        f"value {snapshot.total_value:,.2f}, P/L {snapshot.profit_loss:,.2f}[/green]"
    )
    return 0


def run_list(args):
    if args.days < 0:
        console.print("[red]Error: --days must not be negative[/red]")
        return 1

    service = build_service(args)
    with service.store:
        snapshots = service.history(args.days)

    if not snapshots:
        console.print(f"No snapshots in the last {args.days} days")
        return 0

    table = Table(title=f"Portfolio History (last {args.days} days)")
    table.add_column("Date", style="cyan", justify="left")
    table.add_column("Total Value", style="green", justify="right")
    table.add_column("Total Cost", style="yellow", justify="right")
    table.add_column("Profit/Loss", justify="right")

    for snapshot in snapshots:
        table.add_row(
            snapshot.snapshot_date.isoformat(),
            format_money(snapshot.total_value),
            format_money(snapshot.total_cost),
            format_signed(snapshot.profit_loss),
        )

    console.print(table)

    if len(snapshots) >= 2:
        drawdown, peak, trough = calculate_max_drawdown(snapshots)
        if peak is not None:
            console.print(Panel(
                f"Max drawdown: [red]{drawdown * 100:.2f}%[/red] ({peak} → {trough})",
                title="Drawdown",
            ))
    return 0
