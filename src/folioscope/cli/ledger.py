"""Ledger subcommands: add, delete, transactions and holdings."""

from rich.table import Table

from .common import build_service, console, format_money


def register_subcommand(subparsers):
    """Register the ledger subcommands.

    Args:
        subparsers: The argparse subparsers action to add the commands to.
    """
    add = subparsers.add_parser(
        "add",
        help="Record a BUY or SELL transaction",
        description="Record a transaction and recompute the holding for its ticker.",
    )
    add.add_argument("ticker", help="Ticker symbol, e.g. AAPL or VOLV-B")
    add.add_argument("type", help="BUY or SELL (KÖP/SÄLJ accepted)")
    add.add_argument("quantity", help="Number of shares")
    add.add_argument("price", help="Price per share")
    add.add_argument("--date", "-d", help="Trade date as YYYY-MM-DD (default: today)")
    add.add_argument(
        "--currency",
        dest="transaction_currency",
        metavar="CODE",
        help="Currency of the price (default: SEK)",
    )
    add.add_argument("--name", "-n", dest="company_name", help="Company name to show in reports")
    add.set_defaults(func=run_add)

    delete = subparsers.add_parser(
        "delete",
        help="Delete a transaction by id",
        description="Delete a transaction and recompute the holding for its ticker.",
    )
    delete.add_argument("id", type=int, help="Transaction id as shown by 'transactions'")
    delete.set_defaults(func=run_delete)

    transactions = subparsers.add_parser(
        "transactions",
        help="List recorded transactions",
        description="List transactions, newest first.",
    )
    transactions.add_argument("--ticker", "-t", help="Only show transactions for this ticker")
    transactions.set_defaults(func=run_transactions)

    holdings = subparsers.add_parser(
        "holdings",
        help="List current holdings",
        description="List holdings derived from the transaction ledger, at cost.",
    )
    holdings.add_argument(
        "--rebuild",
        action="store_true",
        help="Recompute every holding from the ledger first",
    )
    holdings.set_defaults(func=run_holdings)


def run_add(args):
    service = build_service(args)
    with service.store:
        txn = service.add_transaction(
            args.ticker,
            args.type,
            args.quantity,
            args.price,
            transaction_date=args.date,
            currency=args.transaction_currency,
            company_name=args.company_name,
        )
        holding = service.store.get_holding(txn.ticker)

    console.print(
        f"[green]Recorded #{txn.id}: {txn.transaction_type.value} {txn.quantity} {txn.ticker} "
        f"@ {txn.price} {txn.currency.value} on {txn.transaction_date}[/green]"
    )
    if holding is None:
        console.print(f"No position left in {txn.ticker}")
    else:
        console.print(
            f"Holding: {holding.quantity} {holding.ticker} @ {holding.average_price:,.2f} {holding.currency.value}"
        )
    return 0


def run_delete(args):
    service = build_service(args)
    with service.store:
        txn = service.delete_transaction(args.id)
    console.print(f"[green]Deleted #{txn.id}: {txn.transaction_type.value} {txn.quantity} {txn.ticker}[/green]")
    return 0


def run_transactions(args):
    service = build_service(args)
    with service.store:
        transactions = service.list_transactions(args.ticker)

    if not transactions:
        console.print("No transactions recorded")
        return 0

    table = Table(title="Transactions")
    table.add_column("ID", style="dim", justify="right")
    table.add_column("Date", justify="left")
    table.add_column("Ticker", style="cyan", justify="left")
    table.add_column("Type", justify="left")
    table.add_column("Quantity", style="magenta", justify="right")
    table.add_column("Price", justify="right")
    table.add_column("Total", style="yellow", justify="right")

    for txn in transactions:
        kind = txn.transaction_type.value
        table.add_row(
            str(txn.id),
            txn.transaction_date.isoformat(),
            txn.ticker,
            f"[green]{kind}[/green]" if kind == "BUY" else f"[red]{kind}[/red]",
            f"{txn.quantity:,}",
            format_money(txn.price, txn.currency.value),
            format_money(txn.total_value, txn.currency.value),
        )

    console.print(table)
    return 0


def run_holdings(args):
    service = build_service(args)
    with service.store:
        if args.rebuild:
            service.rebuild_holdings()
        holdings = service.list_holdings()

    if not holdings:
        console.print("No holdings")
        return 0

    table = Table(title="Holdings at Cost")
    table.add_column("Ticker", style="cyan", justify="left")
    table.add_column("Name", justify="left")
    table.add_column("Quantity", style="magenta", justify="right")
    table.add_column("Average Price", justify="right")
    table.add_column("Cost Basis", style="yellow", justify="right")

    for holding in holdings:
        table.add_row(
            holding.ticker,
            holding.company_name or "",
            f"{holding.quantity:,}",
            format_money(holding.average_price, holding.currency.value),
            format_money(holding.cost_basis, holding.currency.value),
        )

    console.print(table)
    return 0
