"""Import and export of the transaction ledger as Excel workbooks."""

from decimal import Decimal
from pathlib import Path
import logging

import pandas as pd
from openpyxl import Workbook

from .currency import Currency
from .errors import ValidationError
from .transactions import Transaction, new_transaction, sort_key

logger = logging.getLogger(__name__)

HEADERS = ["TICKER", "DATE", "TYPE", "QUANTITY", "PRICE", "CURRENCY", "COMPANY NAME"]
REQUIRED_COLUMNS = {"TICKER", "DATE", "TYPE", "QUANTITY", "PRICE"}


def load_transactions_from_excel(file_path: str | Path, default_currency: Currency = Currency.SEK) -> list[Transaction]:
    """
    Load transactions from an Excel file.

    Args:
        file_path: Path to the workbook.
        default_currency: Currency for rows with an empty CURRENCY cell.

    Returns:
        Validated transactions without ids, in file order.

    Expected Excel columns (order independent, case insensitive):
        - TICKER: Ticker symbol
        - DATE: Trade date
        - TYPE: BUY or SELL (KÖP/SÄLJ accepted)
        - QUANTITY: Number of shares
        - PRICE: Price per share
        - CURRENCY: Optional currency code
        - COMPANY NAME: Optional display name

    Raises:
        FileNotFoundError: If the file does not exist.
        ValidationError: If a column is missing or a row is malformed; the
            message names the spreadsheet row.
    """
    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"Transaction file not found: {path}")

    df = pd.read_excel(path)
    df.columns = [str(c).strip().upper() for c in df.columns]

    missing_columns = REQUIRED_COLUMNS - set(df.columns)
    if missing_columns:
        raise ValidationError(f"Missing required columns: {sorted(missing_columns)}")

    transactions: list[Transaction] = []
    for index, row in df.iterrows():
        # Header is row 1 in the sheet
        sheet_row = int(index) + 2  # type: ignore[arg-type]
        currency_value = row.get("CURRENCY")
        company_value = row.get("COMPANY NAME")
        raw_date = row["DATE"]
        try:
            transactions.append(new_transaction(
                ticker=str(row["TICKER"]) if pd.notna(row["TICKER"]) else "",
                transaction_type=str(row["TYPE"]),
                quantity=Decimal(str(row["QUANTITY"])) if pd.notna(row["QUANTITY"]) else None,  # type: ignore[arg-type]
                price=Decimal(str(row["PRICE"])) if pd.notna(row["PRICE"]) else None,  # type: ignore[arg-type]
                transaction_date=pd.to_datetime(raw_date).date() if pd.notna(raw_date) else "",
                currency=str(currency_value) if pd.notna(currency_value) and currency_value else default_currency,
                company_name=str(company_value) if pd.notna(company_value) and company_value else None,
            ))
        except ValidationError as e:
            raise ValidationError(f"Row {sheet_row}: {e}") from e

    logger.info("Loaded %d transactions from %s", len(transactions), path)
    return transactions


def save_transactions_to_excel(transactions: list[Transaction], file_path: str | Path) -> None:
    """
    Save transactions to an Excel file, ordered by date then id.

    The workbook has the columns read by load_transactions_from_excel.
    """
    wb = Workbook()
    ws = wb.active
    ws.title = "Transactions"

    for col, header in enumerate(HEADERS, start=1):
        ws.cell(row=1, column=col, value=header)

    for row, txn in enumerate(sorted(transactions, key=sort_key), start=2):
        ws.cell(row=row, column=1, value=txn.ticker)
        ws.cell(row=row, column=2, value=txn.transaction_date.isoformat())
        ws.cell(row=row, column=3, value=txn.transaction_type.value)
        ws.cell(row=row, column=4, value=float(txn.quantity))
        ws.cell(row=row, column=5, value=float(txn.price))
        ws.cell(row=row, column=6, value=txn.currency.value)
        ws.cell(row=row, column=7, value=txn.company_name)

    wb.save(file_path)
