"""Quotes subcommand - latest prices for a list of tickers."""

from rich.markup import escape
from rich.table import Table

from ..quotes import parse_tickers
from .common import build_service, console, format_money, format_signed


def register_subcommand(subparsers):
    parser = subparsers.add_parser(
        "quotes",
        help="Show latest quotes",
        description="Fetch latest quotes concurrently. Tickers that fail are listed with their error.",
    )
    parser.add_argument(
        "tickers",
        nargs="?",
        help="Comma-delimited tickers, e.g. AAPL,MSFT,VOLV-B (default: current holdings)",
    )
    parser.set_defaults(func=run)


def run(args):
    service = build_service(args)
    if args.tickers:
        tickers = parse_tickers(args.tickers)
        if not tickers:
            console.print("[red]Error: No tickers given[/red]")
            return 1
        quotes = service.fetch_quotes(tickers)
    else:
        with service.store:
            quotes = service.fetch_quotes()

    if not quotes:
        console.print("No holdings to quote")
        return 0

    table = Table(title="Quotes")
    table.add_column("Ticker", style="cyan", justify="left")
    table.add_column("Price", style="green", justify="right")
    table.add_column("Change", justify="right")
    table.add_column("Change %", justify="right")
    table.add_column("Day Range", justify="right")
    table.add_column("Volume", justify="right")

    for ticker, quote in quotes.items():
        if not quote.is_usable:
            table.add_row(ticker, f"[red]{escape(quote.error_message or 'unavailable')}[/red]", "", "", "", "")
            continue
        if quote.day_low is not None and quote.day_high is not None:
            day_range = f"{quote.day_low:,.2f} - {quote.day_high:,.2f}"
        else:
            day_range = "N/A"
        table.add_row(
            ticker,
            format_money(quote.price, quote.currency.value),
            format_signed(quote.change),
            format_signed(quote.change_percent, "%"),
            day_range,
            f"{quote.volume:,}" if quote.volume is not None else "N/A",
        )

    console.print(table)
    return 0
