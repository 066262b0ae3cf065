"""Tests for reducing a ticker's transaction history to its holding."""

from datetime import date
from decimal import Decimal

import pytest

from folioscope.currency import Currency
from folioscope.errors import ConsistencyError, ValidationError
from folioscope.holdings import (
    Holding,
    derive_holdings,
    fold_transactions,
    realized_profit_loss,
    rebuild_holdings,
    recompute_holding,
    reduce_transactions,
)
from folioscope.store import InMemoryStore
from folioscope.transactions import Transaction, TransactionType


def make_txn(kind, quantity, price, day, txn_id=None, ticker="AAPL", currency=Currency.USD):
    return Transaction(
        ticker=ticker,
        transaction_type=TransactionType(kind),
        quantity=Decimal(str(quantity)),
        price=Decimal(str(price)),
        transaction_date=date(2024, 1, day),
        currency=currency,
        id=txn_id,
    )


def test_weighted_average_after_two_buys_and_a_sell():
    """Verify a partial SELL keeps the average price and realizes the gain."""
    history = [
        make_txn("BUY", 10, 100, 1, 1),
        make_txn("BUY", 10, 120, 2, 2),
        make_txn("SELL", 5, 150, 3, 3),
    ]

    holding = reduce_transactions(history)

    assert holding is not None
    assert holding.quantity == Decimal("15")
    assert holding.average_price == Decimal("110")
    assert holding.cost_basis == Decimal("1650")
    assert holding.currency == Currency.USD
    assert realized_profit_loss(history) == Decimal("200")


def test_result_does_not_depend_on_input_order():
    """Verify transactions are folded by date, not by list position."""
    history = [
        make_txn("SELL", 5, 150, 3, 3),
        make_txn("BUY", 10, 120, 2, 2),
        make_txn("BUY", 10, 100, 1, 1),
    ]

    holding = reduce_transactions(history)

    assert holding.quantity == Decimal("15")
    assert holding.average_price == Decimal("110")


def test_selling_everything_leaves_no_holding():
    """Verify a full SELL returns None and zeroes the cost basis."""
    history = [make_txn("BUY", 10, 100, 1, 1), make_txn("SELL", 10, 90, 2, 2)]

    position = fold_transactions(history)

    assert reduce_transactions(history) is None
    assert position.quantity == 0
    assert position.cost_basis == 0
    assert position.realized_profit_loss == Decimal("-100")


def test_buy_after_closing_starts_a_fresh_average():
    """Verify cost from a closed position does not leak into the next one."""
    history = [
        make_txn("BUY", 10, 100, 1, 1),
        make_txn("SELL", 10, 130, 2, 2),
        make_txn("BUY", 4, 50, 3, 3),
    ]

    holding = reduce_transactions(history)

    assert holding.quantity == Decimal("4")
    assert holding.average_price == Decimal("50")


def test_oversell_is_rejected():
    """Verify a SELL larger than the position raises ConsistencyError."""
    history = [make_txn("BUY", 5, 100, 1, 1), make_txn("SELL", 6, 100, 2, 2)]

    with pytest.raises(ConsistencyError, match="only 5 held"):
        reduce_transactions(history)


def test_backdated_sell_before_buy_is_rejected():
    """Verify a SELL dated before the BUY that would cover it is rejected."""
    history = [make_txn("BUY", 5, 100, 10, 1), make_txn("SELL", 5, 100, 2, 2)]

    with pytest.raises(ConsistencyError):
        reduce_transactions(history)


def test_same_day_order_follows_id():
    """Verify a same-day SELL recorded before its BUY is inconsistent."""
    sell_first = [make_txn("SELL", 5, 100, 1, 1), make_txn("BUY", 5, 100, 1, 2)]
    buy_first = [make_txn("BUY", 5, 100, 1, 1), make_txn("SELL", 5, 100, 1, 2)]

    with pytest.raises(ConsistencyError):
        reduce_transactions(sell_first)
    assert reduce_transactions(buy_first) is None


def test_allow_short_permits_oversell_without_a_holding():
    """Verify short positions are accepted on request and never become holdings."""
    history = [make_txn("BUY", 5, 100, 1, 1), make_txn("SELL", 8, 120, 2, 2)]

    position = fold_transactions(history, allow_short=True)

    assert position.quantity == Decimal("-3")
    assert position.cost_basis == 0
    assert position.realized_profit_loss == Decimal("100")
    assert position.to_holding() is None


def test_buy_covering_a_short_only_costs_the_long_part():
    """Verify covering a short position starts the average from the long remainder."""
    history = [
        make_txn("SELL", 3, 100, 1, 1),
        make_txn("BUY", 5, 80, 2, 2),
    ]

    holding = reduce_transactions(history, allow_short=True)

    assert holding.quantity == Decimal("2")
    assert holding.average_price == Decimal("80")


def test_mixed_currencies_are_inconsistent():
    """Verify one ticker cannot be recorded in two currencies."""
    history = [make_txn("BUY", 1, 100, 1, 1), make_txn("BUY", 1, 900, 2, 2, currency=Currency.SEK)]

    with pytest.raises(ConsistencyError, match="recorded in USD"):
        reduce_transactions(history)


def test_mixed_tickers_are_rejected():
    """Verify a fold covers exactly one ticker."""
    history = [make_txn("BUY", 1, 100, 1, 1), make_txn("BUY", 1, 100, 2, 2, ticker="MSFT")]

    with pytest.raises(ConsistencyError, match="several tickers"):
        fold_transactions(history)


def test_invalid_transaction_is_rejected_before_folding():
    """Verify malformed transactions raise ValidationError, not ConsistencyError."""
    history = [make_txn("BUY", 1, 100, 1, 1), make_txn("BUY", 1, 0, 2, 2)]

    with pytest.raises(ValidationError, match="Price must be positive"):
        reduce_transactions(history)


def test_derive_holdings_groups_by_ticker():
    """Verify a mixed ledger yields one holding per ticker still held."""
    ledger = [
        make_txn("BUY", 2, 300, 1, 1, ticker="MSFT"),
        make_txn("BUY", 10, 100, 1, 2),
        make_txn("BUY", 1, 50, 1, 3, ticker="ERIC-B", currency=Currency.SEK),
        make_txn("SELL", 1, 60, 2, 4, ticker="ERIC-B", currency=Currency.SEK),
    ]

    holdings = derive_holdings(ledger)

    assert sorted(holdings) == ["AAPL", "MSFT"]
    assert holdings["MSFT"].cost_basis == Decimal("600")


def test_recompute_holding_is_idempotent():
    """Verify recomputing from the store gives the same holding every time."""
    store = InMemoryStore()
    store.insert_transaction(make_txn("BUY", 10, 100, 1))
    store.insert_transaction(make_txn("BUY", 10, 120, 2))

    first = recompute_holding(store, "AAPL")
    second = recompute_holding(store, "AAPL")

    assert (first.quantity, first.average_price) == (second.quantity, second.average_price)
    assert store.get_holding("AAPL").average_price == Decimal("110")


def test_rebuild_drops_holdings_without_transactions():
    """Verify a stale cached holding is removed when its ticker has no history."""
    store = InMemoryStore()
    store.upsert_holding(Holding("GONE", Decimal("1"), Decimal("1")))
    store.insert_transaction(make_txn("BUY", 3, 10, 1))

    holdings = rebuild_holdings(store)

    assert list(holdings) == ["AAPL"]
    assert [h.ticker for h in store.list_holdings()] == ["AAPL"]
