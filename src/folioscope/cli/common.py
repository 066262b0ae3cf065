"""Helpers shared by the CLI subcommands."""

from dataclasses import replace
from decimal import Decimal
from pathlib import Path

from rich.console import Console

from ..config import Settings
from ..currency import parse_currency
from ..service import PortfolioService

console = Console()


def settings_from_args(args) -> Settings:
    """Environment settings with the global command line overrides applied."""
    settings = Settings.from_env()
    if getattr(args, "store", None):
        settings = replace(settings, store_path=Path(args.store))
    if getattr(args, "currency", None):
        settings = replace(settings, reporting_currency=parse_currency(args.currency))
    return settings


def build_service(args) -> PortfolioService:
    """Service for the parsed arguments. Its store still has to be opened."""
    return PortfolioService.from_settings(settings_from_args(args))


def format_money(value: Decimal | None, currency: str = "") -> str:
    if value is None:
        return "N/A"
    text = f"{value:,.2f}"
    return f"{text} {currency}" if currency else text


def format_signed(value: Decimal | None, suffix: str = "") -> str:
    """Green for gains, red for losses."""
    if value is None:
        return "N/A"
    if value >= 0:
        return f"[green]+{value:,.2f}{suffix}[/green]"
    return f"[red]{value:,.2f}{suffix}[/red]"
