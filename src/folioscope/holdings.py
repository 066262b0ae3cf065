"""Derive current holdings from the transaction ledger.

Holdings are a cache over the transactions: a holding is always recomputed
from the complete, ordered history of its ticker, never patched with a single
transaction. Cost basis follows the weighted-average cost method, so selling
shares leaves the average price of the remaining shares unchanged.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Iterable
import logging

from .currency import Currency
from .errors import ConsistencyError
from .transactions import Transaction, TransactionType, sort_key, validate_transaction

if TYPE_CHECKING:
    from .store import PortfolioStore

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass
class Holding:
    """Current position in one ticker. Only exists while quantity is positive."""

    ticker: str
    quantity: Decimal
    average_price: Decimal
    currency: Currency = Currency.SEK
    company_name: str | None = None
    updated_at: datetime | None = None

    @property
    def cost_basis(self) -> Decimal:
        return self.quantity * self.average_price

    def to_dict(self) -> dict[str, object]:
        return {
            "ticker": self.ticker,
            "quantity": str(self.quantity),
            "average_price": str(self.average_price),
            "currency": self.currency.value,
            "company_name": self.company_name,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "Holding":
        updated_at = data.get("updated_at")
        return cls(
            ticker=str(data["ticker"]),
            quantity=Decimal(str(data["quantity"])),
            average_price=Decimal(str(data["average_price"])),
            currency=Currency(str(data.get("currency") or Currency.SEK.value)),
            company_name=data.get("company_name") or None,  # type: ignore[arg-type]
            updated_at=datetime.fromisoformat(str(updated_at)) if updated_at else None,
        )

    def __repr__(self):
        return f"Holding(ticker={self.ticker}, quantity={self.quantity}, average_price={self.average_price})"


@dataclass
class LedgerPosition:
    """Running state while folding a ticker's transactions."""

    ticker: str
    quantity: Decimal = ZERO
    cost_basis: Decimal = ZERO
    realized_profit_loss: Decimal = ZERO
    currency: Currency | None = None
    company_name: str | None = None
    transaction_count: int = 0

    @property
    def average_price(self) -> Decimal:
        if self.quantity <= 0:
            return ZERO
        return self.cost_basis / self.quantity

    def to_holding(self) -> Holding | None:
        """The holding this position represents, or None if nothing is held."""
        if self.quantity <= 0:
            return None
        return Holding(
            ticker=self.ticker,
            quantity=self.quantity,
            average_price=self.average_price,
            currency=self.currency or Currency.SEK,
            company_name=self.company_name,
            updated_at=datetime.now(),
        )

    def apply(self, txn: Transaction, allow_short: bool = False) -> None:
        """Fold one transaction into the position.

        Raises:
            ConsistencyError: On a currency mismatch, or a SELL larger than the
                current quantity when ``allow_short`` is False.
        """
        if self.currency is None:
            self.currency = txn.currency
        elif txn.currency != self.currency:
            raise ConsistencyError(
                f"{txn.ticker} is recorded in {self.currency.value} but transaction {txn.id} "
                f"uses {txn.currency.value}"
            )
        if txn.company_name:
            self.company_name = txn.company_name

        quantity = txn.quantity
        price = txn.price

        if txn.transaction_type == TransactionType.BUY:
            if self.quantity < 0:
                # Only the part that lifts the position above zero carries cost
                long_quantity = self.quantity + quantity
                self.cost_basis = long_quantity * price if long_quantity > 0 else ZERO
            else:
                self.cost_basis += quantity * price
            self.quantity += quantity

        elif txn.transaction_type == TransactionType.SELL:
            if quantity > self.quantity and not allow_short:
                raise ConsistencyError(
                    f"Cannot sell {quantity} {txn.ticker} on {txn.transaction_date}: "
                    f"only {max(self.quantity, ZERO)} held"
                )
            sell_from_long = min(quantity, self.quantity) if self.quantity > 0 else ZERO
            if sell_from_long > 0:
                average_cost = self.cost_basis / self.quantity
                self.cost_basis -= sell_from_long * average_cost
                self.realized_profit_loss += sell_from_long * (price - average_cost)
            self.quantity -= quantity
            if self.quantity <= 0:
                self.cost_basis = ZERO

        self.transaction_count += 1


def fold_transactions(
    transactions: Iterable[Transaction],
    allow_short: bool = False,
    ticker: str | None = None,
) -> LedgerPosition:
    """Fold one ticker's transactions, ordered by date then id.

    Args:
        transactions: All transactions for a single ticker, in any order.
        allow_short: Permit SELLs that exceed the held quantity. The resulting
            negative position is not a holding.
        ticker: Ticker name for an empty history.

    Raises:
        ValidationError: If any transaction is malformed. Checked for every
            transaction before folding starts.
        ConsistencyError: If the history mixes tickers or currencies, or a SELL
            exceeds the position and ``allow_short`` is False.
    """
    ordered = sorted((validate_transaction(t) for t in transactions), key=sort_key)

    tickers = {t.ticker for t in ordered}
    if len(tickers) > 1:
        raise ConsistencyError(f"Cannot fold transactions for several tickers at once: {sorted(tickers)}")

    position = LedgerPosition(ticker=ordered[0].ticker if ordered else (ticker or ""))
    for txn in ordered:
        position.apply(txn, allow_short=allow_short)
    return position


def reduce_transactions(transactions: Iterable[Transaction], allow_short: bool = False) -> Holding | None:
    """Reduce a ticker's history to its current holding, or None when nothing is held."""
    return fold_transactions(transactions, allow_short=allow_short).to_holding()


def realized_profit_loss(transactions: Iterable[Transaction], allow_short: bool = False) -> Decimal:
    """Gain realized by SELLs, measured against the average cost at the time of each sale."""
    return fold_transactions(transactions, allow_short=allow_short).realized_profit_loss


def group_by_ticker(transactions: Iterable[Transaction]) -> dict[str, list[Transaction]]:
    grouped: dict[str, list[Transaction]] = defaultdict(list)
    for txn in transactions:
        grouped[txn.ticker].append(txn)
    return dict(grouped)


def derive_holdings(transactions: Iterable[Transaction], allow_short: bool = False) -> dict[str, Holding]:
    """Reduce a mixed-ticker ledger into holdings keyed by ticker."""
    holdings: dict[str, Holding] = {}
    for ticker, ticker_transactions in sorted(group_by_ticker(transactions).items()):
        holding = reduce_transactions(ticker_transactions, allow_short=allow_short)
        if holding is not None:
            holdings[ticker] = holding
    return holdings


def recompute_holding(store: "PortfolioStore", ticker: str, allow_short: bool = False) -> Holding | None:
    """Recompute the holding for ``ticker`` from its full history in ``store``.

    The holding is upserted when something is held and deleted otherwise.
    Running this any number of times gives the same result.
    """
    position = fold_transactions(store.list_transactions(ticker), allow_short=allow_short, ticker=ticker)
    holding = position.to_holding()
    if holding is None:
        store.delete_holding(ticker)
        logger.debug("No position left in %s, holding removed", ticker)
    else:
        store.upsert_holding(holding)
        logger.debug("Recomputed %s from %d transactions", holding, position.transaction_count)
    return holding


def rebuild_holdings(store: "PortfolioStore", allow_short: bool = False) -> dict[str, Holding]:
    """Recompute every holding and drop holdings with no remaining transactions."""
    tickers = set(store.list_tickers())
    for stale in [h.ticker for h in store.list_holdings() if h.ticker not in tickers]:
        store.delete_holding(stale)

    holdings: dict[str, Holding] = {}
    for ticker in sorted(tickers):
        holding = recompute_holding(store, ticker, allow_short=allow_short)
        if holding is not None:
            holdings[ticker] = holding
    return holdings
