from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Union

from .currency import Currency, parse_currency
from .errors import ValidationError


class TransactionType(Enum):
    """Enumeration of supported portfolio transaction types."""

    BUY = "BUY"
    SELL = "SELL"

    @classmethod
    def parse(cls, value: Union[str, "TransactionType"]) -> "TransactionType":
        """Parse a transaction type, accepting any case and the Swedish KÖP/SÄLJ labels."""
        if isinstance(value, TransactionType):
            return value
        label = str(value).strip().upper()
        aliases = {"KÖP": cls.BUY, "SÄLJ": cls.SELL}
        if label in aliases:
            return aliases[label]
        try:
            return cls(label)
        except ValueError:
            raise ValidationError(f"Unknown transaction type: {value!r}") from None


@dataclass(frozen=True)
class Transaction:
    """A single BUY or SELL of a ticker. Never mutated once stored."""

    ticker: str
    transaction_type: TransactionType
    quantity: Decimal
    price: Decimal
    transaction_date: date
    currency: Currency = Currency.SEK
    id: int | None = None
    created_at: datetime | None = None
    company_name: str | None = None

    @property
    def total_value(self) -> Decimal:
        return self.quantity * self.price

    def with_identity(self, transaction_id: int, created_at: datetime) -> "Transaction":
        """Return a copy carrying the id and creation time assigned by a store."""
        return replace(self, id=transaction_id, created_at=created_at)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "ticker": self.ticker,
            "type": self.transaction_type.value,
            "quantity": str(self.quantity),
            "price": str(self.price),
            "currency": self.currency.value,
            "date": self.transaction_date.isoformat(),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "company_name": self.company_name,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Transaction":
        created_at = data.get("created_at")
        return cls(
            ticker=data["ticker"],
            transaction_type=TransactionType.parse(data["type"]),
            quantity=Decimal(str(data["quantity"])),
            price=Decimal(str(data["price"])),
            transaction_date=date.fromisoformat(data["date"]),
            currency=Currency(data.get("currency") or Currency.SEK.value),
            id=data.get("id"),
            created_at=datetime.fromisoformat(created_at) if created_at else None,
            company_name=data.get("company_name"),
        )

    def __repr__(self):
        return (
            f"Transaction(id={self.id}, ticker={self.ticker}, date={self.transaction_date}, "
            f"type={self.transaction_type.value}, quantity={self.quantity}, price={self.price}, "
            f"currency={self.currency.value})"
        )


def sort_key(txn: Transaction) -> tuple[date, int]:
    """Reduction order: transaction date, then id. Unstored transactions sort last on a date."""
    return (txn.transaction_date, txn.id if txn.id is not None else 2**63)


def _to_decimal(value: Any, field_name: str) -> Decimal:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"Missing required field: {field_name}")
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError(f"Invalid {field_name}: {value!r}") from None
    if not number.is_finite():
        raise ValidationError(f"Invalid {field_name}: {value!r}")
    return number


def _to_date(value: Any) -> date:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError("Missing required field: date")
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(str(value).strip()).date()
    except ValueError:
        raise ValidationError(f"Invalid date: {value!r}") from None


def validate_transaction(txn: Transaction) -> Transaction:
    """Check a transaction before it is stored or reduced.

    Returns:
        The same transaction, for chaining.

    Raises:
        ValidationError: For a blank ticker, a non-positive quantity or price,
            or a missing date.
    """
    if not txn.ticker or not txn.ticker.strip():
        raise ValidationError("Missing required field: ticker")
    if not isinstance(txn.transaction_type, TransactionType):
        raise ValidationError(f"Unknown transaction type: {txn.transaction_type!r}")
    if txn.quantity is None or txn.quantity <= 0:
        raise ValidationError(f"Quantity must be positive, got {txn.quantity} for {txn.ticker}")
    if txn.price is None or txn.price <= 0:
        raise ValidationError(f"Price must be positive, got {txn.price} for {txn.ticker}")
    if txn.transaction_date is None:
        raise ValidationError("Missing required field: date")
    return txn


def new_transaction(
    ticker: str,
    transaction_type: Union[str, TransactionType],
    quantity: Union[str, int, float, Decimal],
    price: Union[str, int, float, Decimal],
    transaction_date: Union[str, date, datetime, None] = None,
    currency: Union[str, Currency, None] = None,
    company_name: str | None = None,
) -> Transaction:
    """Build a validated transaction from loosely typed input.

    Args:
        ticker: Ticker symbol; stripped and upper-cased.
        transaction_type: BUY/SELL (any case) or KÖP/SÄLJ.
        quantity: Number of shares, must be positive.
        price: Price per share in ``currency``, must be positive.
        transaction_date: Trade date as a date or ISO string. Defaults to today.
        currency: Currency code. Defaults to SEK.
        company_name: Optional display name.

    Raises:
        ValidationError: If any field is missing or malformed.
    """
    if ticker is None or not str(ticker).strip():
        raise ValidationError("Missing required field: ticker")
    try:
        parsed_currency = parse_currency(currency)
    except ValueError as e:
        raise ValidationError(str(e)) from None

    txn = Transaction(
        ticker=str(ticker).strip().upper(),
        transaction_type=TransactionType.parse(transaction_type),
        quantity=_to_decimal(quantity, "quantity"),
        price=_to_decimal(price, "price"),
        transaction_date=_to_date(transaction_date if transaction_date is not None else date.today()),
        currency=parsed_currency,
        company_name=company_name.strip() if company_name and company_name.strip() else None,
    )
    return validate_transaction(txn)
