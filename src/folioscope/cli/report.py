#!/usr/bin/env python3
"""Report subcommand - Value the portfolio with live quotes."""

import json

from rich.panel import Panel
from rich.table import Table

from ..valuation import allocation_by
from .common import build_service, console, format_money, format_signed


def register_subcommand(subparsers):
    """Register the report subcommand with the argument parser.

    Args:
        subparsers: The argparse subparsers action to add the command to.
    """
    parser = subparsers.add_parser(
        "report",
        help="Display portfolio valuation report",
        description=(
            "Value every holding with live quotes in the reporting currency. Holdings "
            "without a quote are valued at their average cost."
        ),
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the valuation as JSON instead of tables",
    )
    parser.set_defaults(func=run)


def run(args):
    """Display holdings valuation, allocation and totals.

    Args:
        args: Parsed argparse namespace with store, currency and json attributes.

    Returns:
        int: Exit code (0 for success, 1 for errors).
    """
    service = build_service(args)
    with service.store:
        valuation = service.valuation()

    if args.json:
        print(json.dumps(valuation.to_dict(), indent=2))
        return 0

    currency = valuation.currency.value
    local_now = valuation.as_of.astimezone()

    holdings_table = Table(title=f"Portfolio on {local_now.strftime('%Y-%m-%d %H:%M %Z')}")
    holdings_table.add_column("Ticker", style="cyan", justify="left")
    holdings_table.add_column("Quantity", style="magenta", justify="right")
    holdings_table.add_column("Unit Price\n(Book → Market)", justify="right")
    holdings_table.add_column(f"Market Value ({currency})", style="green", justify="right")
    holdings_table.add_column(f"Profit/Loss ({currency})", justify="right")
    holdings_table.add_column("P/L %", justify="right")
    holdings_table.add_column("Today %", justify="right")
    holdings_table.add_column("Allocation", justify="right")

    for h in valuation.holdings:
        market = f"{h.current_price:,.2f}"
        if h.price_is_stale:
            market = f"[dim]{market}*[/dim]"
        holdings_table.add_row(
            h.ticker,
            f"{h.quantity:,}",
            f"[yellow]{h.average_price:,.2f}[/yellow] → {market}",
            format_money(h.market_value),
            format_signed(h.profit_loss),
            format_signed(h.profit_loss_percent, "%"),
            format_signed(h.change_percent, "%"),
            f"{h.allocation_percent:.1f}%",
        )

    console.print(holdings_table)

    if valuation.holdings:
        currency_table = Table(title="Allocation by Currency")
        currency_table.add_column("Currency", style="cyan", justify="left")
        currency_table.add_column("Allocation", justify="right")
        by_currency = allocation_by(
            valuation, lambda h: (h.native_currency or valuation.currency).value
        )
        for code, percent in by_currency.items():
            currency_table.add_row(code, f"{percent:.1f}%")
        console.print(currency_table)

    if valuation.stale_tickers:
        console.print(
            f"[yellow]* No quote for {', '.join(valuation.stale_tickers)}; valued at average cost[/yellow]"
        )
    if valuation.uses_fallback_rates:
        rates = ", ".join(
            f"{r.from_currency.value}/{r.to_currency.value} {r.rate} ({r.source.value})"
            for r in valuation.exchange_rates
            if r.is_fallback
        )
        console.print(f"[yellow]Live exchange rates unavailable, using {rates}[/yellow]")

    console.print(
        Panel(
            f"[bold green]Total Value: {format_money(valuation.total_value, currency)}[/bold green]\n"
            f"Total Cost: {format_money(valuation.total_cost, currency)}\n"
            f"Profit/Loss: {format_signed(valuation.profit_loss)} ({format_signed(valuation.profit_loss_percent, '%')})\n"
            f"Today: {format_signed(valuation.daily_change)} ({format_signed(valuation.daily_change_percent, '%')})\n"
            f"Dividend Yield: {valuation.dividend_yield:.2f}%",
            title="Summary",
        )
    )

    return 0
