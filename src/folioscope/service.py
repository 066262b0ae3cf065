"""Application service tying the ledger, quotes and valuation together."""

from datetime import date, datetime
from decimal import Decimal
from typing import Iterable
import logging
import threading

from .config import Settings
from .currency import CurrencyNormalizer, FixedExchangeRateManager, YFinanceExchangeRateManager
from .errors import TransactionNotFoundError
from .holdings import Holding, fold_transactions, rebuild_holdings, recompute_holding
from .quotes import Quote, QuoteFetcher, YFinanceQuoteProvider
from .snapshots import PortfolioSnapshot, get_history, save_snapshot
from .store import JsonFileStore, PortfolioStore
from .transactions import Transaction, new_transaction, sort_key, validate_transaction
from .valuation import PortfolioValuation, value_portfolio

logger = logging.getLogger(__name__)


class PortfolioService:
    """Records transactions and reports on the resulting portfolio.

    Every mutation is checked against the full history of its ticker before
    it reaches the store, and the ticker's holding is recomputed right after.
    Mutations are serialized, so two concurrent SELLs cannot both pass the
    check against the same position.
    """

    def __init__(
        self,
        store: PortfolioStore,
        fetcher: QuoteFetcher,
        normalizer: CurrencyNormalizer | None = None,
        allow_short: bool = False,
    ):
        self.store = store
        self.fetcher = fetcher
        self.normalizer = normalizer
        self.allow_short = allow_short
        self._lock = threading.RLock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "PortfolioService":
        """Build a service backed by the JSON store and Yahoo Finance.

        The store is returned unopened; callers use the service's store as a
        context manager.
        """
        fetcher = QuoteFetcher(
            YFinanceQuoteProvider(),
            timeout=settings.quote_timeout,
            max_workers=settings.max_workers,
        )
        normalizer = CurrencyNormalizer(
            reporting_currency=settings.reporting_currency,
            live=YFinanceExchangeRateManager(),
            fallback=FixedExchangeRateManager(),
        )
        return cls(JsonFileStore(settings.store_path), fetcher, normalizer, allow_short=settings.allow_short)

    def _check_history(self, transactions: Iterable[Transaction], ticker: str) -> None:
        fold_transactions(transactions, allow_short=self.allow_short, ticker=ticker)

    def add_transaction(self, ticker, transaction_type, quantity, price, transaction_date=None,
                        currency=None, company_name=None) -> Transaction:
        """Validate and record a transaction, then refresh its holding.

        Raises:
            ValidationError: If a field is missing or malformed.
            ConsistencyError: If the ticker's history, including this
                transaction at its date, would sell more than is held or mix
                currencies.
        """
        txn = new_transaction(ticker, transaction_type, quantity, price, transaction_date, currency, company_name)
        return self.record(txn)

    def record(self, txn: Transaction) -> Transaction:
        """Record an already built transaction. See :meth:`add_transaction`."""
        validate_transaction(txn)
        with self._lock:
            history = self.store.list_transactions(txn.ticker)
            self._check_history([*history, txn], txn.ticker)

            stored = self.store.insert_transaction(txn)
            recompute_holding(self.store, stored.ticker, allow_short=self.allow_short)
        logger.info("Recorded %r", stored)
        return stored

    def import_transactions(self, transactions: Iterable[Transaction]) -> list[Transaction]:
        """Record transactions in date order. Stops at the first rejected one."""
        return [self.record(txn) for txn in sorted(transactions, key=sort_key)]

    def delete_transaction(self, transaction_id: int) -> Transaction:
        """Remove a transaction and refresh its holding.

        Raises:
            TransactionNotFoundError: If no transaction has ``transaction_id``.
            ConsistencyError: If the remaining history would become invalid,
                e.g. deleting a BUY that a later SELL depends on.
        """
        with self._lock:
            txn = self.store.get_transaction(transaction_id)
            if txn is None:
                raise TransactionNotFoundError(transaction_id)

            remaining = [t for t in self.store.list_transactions(txn.ticker) if t.id != transaction_id]
            self._check_history(remaining, txn.ticker)

            self.store.delete_transaction(transaction_id)
            recompute_holding(self.store, txn.ticker, allow_short=self.allow_short)
        logger.info("Deleted %r", txn)
        return txn

    def list_transactions(self, ticker: str | None = None, newest_first: bool = True) -> list[Transaction]:
        transactions = self.store.list_transactions(ticker.strip().upper() if ticker else None)
        if newest_first:
            transactions.reverse()
        return transactions

    def list_holdings(self) -> list[Holding]:
        return self.store.list_holdings()

    def rebuild_holdings(self) -> dict[str, Holding]:
        """Recompute every holding from the ledger."""
        with self._lock:
            return rebuild_holdings(self.store, allow_short=self.allow_short)

    def realized_profit_loss(self, ticker: str) -> Decimal:
        ticker = ticker.strip().upper()
        return fold_transactions(
            self.store.list_transactions(ticker), allow_short=self.allow_short, ticker=ticker
        ).realized_profit_loss

    def fetch_quotes(self, tickers: str | Iterable[str] | None = None) -> dict[str, Quote]:
        """Fetch quotes for ``tickers``, or for every held ticker when omitted."""
        if tickers is None:
            tickers = [h.ticker for h in self.list_holdings()]
        return self.fetcher.fetch(tickers)

    def valuation(self, as_of: datetime | None = None) -> PortfolioValuation:
        holdings = self.list_holdings()
        quotes = self.fetch_quotes([h.ticker for h in holdings])
        return value_portfolio(holdings, quotes, normalizer=self.normalizer, as_of=as_of)

    def save_snapshot(self, on_date: date | None = None) -> PortfolioSnapshot:
        """Value the portfolio now and record the totals for ``on_date`` (default: today)."""
        return save_snapshot(self.store, self.valuation(), on_date or date.today())

    def history(self, days: int = 30) -> list[PortfolioSnapshot]:
        return get_history(self.store, days=days)
