"""Tests for transaction parsing and validation."""

from datetime import date, datetime
from decimal import Decimal

import pytest

from folioscope.currency import Currency
from folioscope.errors import ValidationError
from folioscope.transactions import Transaction, TransactionType, new_transaction, sort_key, validate_transaction


def test_new_transaction_normalizes_input():
    """Verify ticker, type, numbers and date are parsed from loose input."""
    txn = new_transaction(" aapl ", "buy", "10", 150.25, "2024-03-01", "usd", "Apple Inc.")

    assert txn.ticker == "AAPL"
    assert txn.transaction_type == TransactionType.BUY
    assert txn.quantity == Decimal("10")
    assert txn.price == Decimal("150.25")
    assert txn.transaction_date == date(2024, 3, 1)
    assert txn.currency == Currency.USD
    assert txn.company_name == "Apple Inc."
    assert txn.total_value == Decimal("1502.50")


def test_new_transaction_defaults():
    """Verify the date defaults to today and the currency to SEK."""
    txn = new_transaction("VOLV-B", TransactionType.SELL, 5, 250)

    assert txn.transaction_date == date.today()
    assert txn.currency == Currency.SEK
    assert txn.id is None


def test_swedish_type_labels():
    """Verify KÖP and SÄLJ map to BUY and SELL."""
    assert TransactionType.parse("KÖP") == TransactionType.BUY
    assert TransactionType.parse("sälj") == TransactionType.SELL


@pytest.mark.parametrize(
    "kwargs, message",
    [
        ({"ticker": ""}, "ticker"),
        ({"transaction_type": "HOLD"}, "Unknown transaction type"),
        ({"quantity": 0}, "Quantity must be positive"),
        ({"quantity": "-3"}, "Quantity must be positive"),
        ({"price": 0}, "Price must be positive"),
        ({"price": "abc"}, "Invalid price"),
        ({"quantity": None}, "Missing required field: quantity"),
        ({"transaction_date": "not-a-date"}, "Invalid date"),
        ({"currency": "XYZ"}, "Unsupported currency"),
    ],
)
def test_invalid_input_is_rejected(kwargs, message):
    """Verify each malformed field raises ValidationError naming the problem."""
    fields = {"ticker": "AAPL", "transaction_type": "BUY", "quantity": 1, "price": 100}
    fields.update(kwargs)
    with pytest.raises(ValidationError, match=message):
        new_transaction(**fields)


def test_validate_transaction_rejects_direct_construction():
    """Verify a dataclass built by hand is still validated before use."""
    txn = Transaction("AAPL", TransactionType.BUY, Decimal("-1"), Decimal("10"), date(2024, 1, 1))
    with pytest.raises(ValidationError):
        validate_transaction(txn)


def test_sort_key_orders_by_date_then_id():
    """Verify same-day transactions fall back to id order and unsaved ones sort last."""
    day = date(2024, 1, 1)
    first = Transaction("A", TransactionType.BUY, Decimal("1"), Decimal("1"), day, id=2)
    second = Transaction("A", TransactionType.BUY, Decimal("1"), Decimal("1"), day, id=7)
    unsaved = Transaction("A", TransactionType.SELL, Decimal("1"), Decimal("1"), day)
    earlier = Transaction("A", TransactionType.BUY, Decimal("1"), Decimal("1"), date(2023, 12, 31), id=9)

    ordered = sorted([unsaved, second, earlier, first], key=sort_key)

    assert ordered == [earlier, first, second, unsaved]


def test_dict_round_trip_keeps_identity():
    """Verify stored transactions survive serialization with id and created_at."""
    created = datetime(2024, 1, 2, 9, 30)
    txn = new_transaction("MSFT", "SELL", "2.5", "400", "2024-01-02", "USD").with_identity(4, created)

    restored = Transaction.from_dict(txn.to_dict())

    assert restored == txn
    assert txn.to_dict()["type"] == "SELL"
