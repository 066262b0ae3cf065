"""Import and export of the ledger as Excel workbooks."""

from ..spreadsheets import load_transactions_from_excel, save_transactions_to_excel
from .common import build_service, console


def register_subcommand(subparsers):
    """Register the import and export subcommands.

    Args:
        subparsers: The argparse subparsers action to add the commands to.
    """
    importer = subparsers.add_parser(
        "import",
        help="Import transactions from an Excel file",
        description=(
            "Record every row of an Excel file with the columns TICKER, DATE, TYPE, "
            "QUANTITY, PRICE and optionally CURRENCY and COMPANY NAME."
        ),
    )
    importer.add_argument("filename", help="Path to the Excel file")
    importer.set_defaults(func=run_import)

    exporter = subparsers.add_parser(
        "export",
        help="Export all transactions to an Excel file",
        description="Write the full ledger to an Excel file readable by 'import'.",
    )
    exporter.add_argument("filename", help="Path of the Excel file to write")
    exporter.set_defaults(func=run_export)


def run_import(args):
    try:
        transactions = load_transactions_from_excel(args.filename)
    except FileNotFoundError:
        console.print(f"[red]Error: File '{args.filename}' not found[/red]")
        return 1

    service = build_service(args)
    with service.store:
        recorded = service.import_transactions(transactions)

    console.print(f"[green]Imported {len(recorded)} transactions from {args.filename}[/green]")
    return 0


def run_export(args):
    service = build_service(args)
    with service.store:
        transactions = service.list_transactions(newest_first=False)

    save_transactions_to_excel(transactions, args.filename)
    console.print(f"[green]Exported {len(transactions)} transactions to {args.filename}[/green]")
    return 0
