#!/usr/bin/env python3
"""Main entry point for the folioscope CLI."""

import argparse
import logging
import sys

from dotenv import load_dotenv
from rich.markup import escape

from ..errors import FolioscopeError
from ..logging_utils import configure_logging
from .common import console

load_dotenv()

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="folioscope",
        description="folioscope - transaction ledger and live valuation for a stock portfolio",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  folioscope add AAPL BUY 10 150 --currency USD      Record a purchase
  folioscope holdings                                Show current holdings
  folioscope report                                  Value the portfolio in SEK
  folioscope -c USD report --json                    Valuation as JSON in USD
  folioscope history save                            Record today's totals
        """,
    )
    parser.add_argument(
        "--store",
        "-s",
        metavar="FILE",
        help="Portfolio store file (default: FOLIOSCOPE_STORE or .folioscope/portfolio.json)",
    )
    parser.add_argument(
        "--currency",
        "-c",
        help="Reporting currency (default: FOLIOSCOPE_CURRENCY or SEK)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="count",
        default=0,
        help="Log progress (-v) or debug output (-vv)",
    )

    subparsers = parser.add_subparsers(
        title="commands",
        dest="command",
        help="Available commands",
    )

    # Import subcommand modules and register them
    from .ledger import register_subcommand as register_ledger
    from .spreadsheet import register_subcommand as register_spreadsheet
    from .quotes import register_subcommand as register_quotes
    from .report import register_subcommand as register_report
    from .history import register_subcommand as register_history
    from .version import register_subcommand as register_version

    register_ledger(subparsers)
    register_spreadsheet(subparsers)
    register_quotes(subparsers)
    register_report(subparsers)
    register_history(subparsers)
    register_version(subparsers)

    return parser


def main(argv=None):
    """Parse CLI arguments and dispatch to the appropriate subcommand.

    Returns:
        int: Exit code (0 for success, 1 for errors).
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose >= 2:
        configure_logging(logging.DEBUG)
    elif args.verbose == 1:
        configure_logging(logging.INFO)
    else:
        configure_logging()

    # If no command specified, show help
    if args.command is None:
        parser.print_help()
        return 0

    try:
        return args.func(args)
    except FolioscopeError as e:
        logger.debug("Command %s failed", args.command, exc_info=True)
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        return 1
    except ValueError as e:
        # Bad settings or arguments that the service rejects before validation
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        return 1


if __name__ == "__main__":
    sys.exit(main())
